# src/sitepulse/analytics/sinks/mixpanel.py
"""Mixpanel sink (ingestion HTTP API).

Enabled when SITEPULSE_MIXPANEL_TOKEN is set. Context fields map onto
Mixpanel's reserved ``$`` properties so its built-in reports pick them up.
identify() updates the people profile and switches the distinct id for
later events.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar

import httpx

from sitepulse.analytics.errors import SinkConfigurationError
from sitepulse.analytics.formatting import flatten_properties
from sitepulse.analytics.sinks.base import HttpSink
from sitepulse.contracts.events import isoformat_utc

if TYPE_CHECKING:
    from sitepulse.contracts.events import AnalyticsEvent

DEFAULT_API_HOST = "https://api.mixpanel.com"
PAGE_VIEW_EVENT = "$mp_web_page_view"

_CONTEXT_PROPERTIES: tuple[tuple[str, str], ...] = (
    ("browser", "$browser"),
    ("browser_version", "$browser_version"),
    ("os", "$os"),
    ("device_type", "$device"),
    ("page_url", "$current_url"),
    ("referrer", "$referrer"),
    ("screen_width", "$screen_width"),
    ("screen_height", "$screen_height"),
    ("utm_source", "utm_source"),
    ("utm_medium", "utm_medium"),
    ("utm_campaign", "utm_campaign"),
    ("utm_term", "utm_term"),
    ("utm_content", "utm_content"),
)


class MixpanelSink(HttpSink):
    """Send events and profile updates to Mixpanel.

    Configuration options:
        api_host: API base URL (default https://api.mixpanel.com; use
            https://api-eu.mixpanel.com for EU residency)
        timeout: Request timeout in seconds (default 10)
    """

    _name = "mixpanel"
    _OPTIONS: ClassVar[frozenset[str]] = frozenset({"api_host", "timeout"})

    def __init__(self, *, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(client=client)
        self._api_host = DEFAULT_API_HOST
        self._distinct_id: str | None = None

    def _apply_options(self, options: Mapping[str, Any]) -> None:
        super()._apply_options(options)
        api_host = options.get("api_host", DEFAULT_API_HOST)
        if not isinstance(api_host, str) or not api_host.startswith(("http://", "https://")):
            raise SinkConfigurationError(self._name, f"'api_host' must be an http(s) URL, got {api_host!r}")
        self._api_host = api_host.rstrip("/")

    def is_enabled(self) -> bool:
        return self.context.environment.mixpanel_token() is not None

    def build_properties(self, event: AnalyticsEvent, token: str) -> dict[str, Any]:
        properties: dict[str, Any] = dict(flatten_properties(event.properties))
        properties.update(
            {
                "token": token,
                "distinct_id": event.user_id or self._distinct_id or event.anonymous_id,
                "time": int(event.timestamp.timestamp() * 1000),
                "$insert_id": uuid.uuid4().hex,
                "category": str(event.event_category),
                "timestamp": isoformat_utc(event.timestamp),
                "session_id": event.session_id,
            }
        )
        for key, value in (
            ("content_id", event.content_id),
            ("workflow_item_id", event.workflow_item_id),
            ("organization_id", event.organization_id),
        ):
            if value is not None:
                properties[key] = value
        for field_name, property_name in _CONTEXT_PROPERTIES:
            value = getattr(event.context, field_name)
            if value is not None:
                properties[property_name] = str(value) if field_name == "device_type" else value
        return properties

    async def _post(self, operation: str, path: str, body: list[dict[str, Any]]) -> None:
        try:
            response = await self._get_client().post(
                f"{self._api_host}{path}",
                json=body,
                headers={"Accept": "text/plain"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            self._report_failure(operation, e)

    async def _track_as(self, operation: str, name: str, event: AnalyticsEvent, extra: Mapping[str, Any]) -> None:
        token = self.context.environment.mixpanel_token()
        if token is None:
            return
        try:
            properties = self.build_properties(event, token)
            properties.update(flatten_properties(extra))
        except (TypeError, ValueError) as e:
            self._report_failure(operation, e, event_name=name)
            return
        await self._post(operation, "/track", [{"event": name, "properties": properties}])

    async def track(self, event: AnalyticsEvent) -> None:
        await self._track_as("track", event.event_name, event, {})

    async def identify(self, user_id: str, traits: Mapping[str, Any]) -> None:
        token = self.context.environment.mixpanel_token()
        if token is None:
            return
        self._distinct_id = user_id
        try:
            profile = flatten_properties(traits)
        except (TypeError, ValueError) as e:
            self._report_failure("identify", e)
            return
        await self._post(
            "identify",
            "/engage#profile-set",
            [{"$token": token, "$distinct_id": user_id, "$set": profile}],
        )

    async def page(self, name: str, properties: Mapping[str, Any], event: AnalyticsEvent) -> None:
        await self._track_as("page", PAGE_VIEW_EVENT, event, {**properties, "page_name": name})
