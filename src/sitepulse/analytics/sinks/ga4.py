# src/sitepulse/analytics/sinks/ga4.py
"""Google Analytics 4 sink (Measurement Protocol).

Enabled when SITEPULSE_GA_MEASUREMENT_ID is set; SITEPULSE_GA_API_SECRET is
sent along when present. Event parameters are snake_cased and flattened to
primitives. identify() binds a user id and user properties that ride along
on every later hit, which is how the GA4 tag applies ``user_id`` too.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar

import httpx
import structlog

from sitepulse.analytics.errors import SinkConfigurationError
from sitepulse.analytics.formatting import flatten_properties
from sitepulse.analytics.sinks.base import HttpSink

if TYPE_CHECKING:
    from sitepulse.contracts.events import AnalyticsEvent

logger = structlog.get_logger(__name__)

DEFAULT_COLLECT_URL = "https://www.google-analytics.com/mp/collect"


class GA4Sink(HttpSink):
    """Send events to GA4.

    Configuration options:
        collect_url: Measurement Protocol endpoint (default: production
            collect URL; point at /debug/mp/collect to validate payloads)
        timeout: Request timeout in seconds (default 10)
    """

    _name = "ga4"
    _OPTIONS: ClassVar[frozenset[str]] = frozenset({"collect_url", "timeout"})

    def __init__(self, *, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(client=client)
        self._collect_url = DEFAULT_COLLECT_URL
        self._user_id: str | None = None
        self._user_properties: dict[str, str | int | float | bool] = {}

    def _apply_options(self, options: Mapping[str, Any]) -> None:
        super()._apply_options(options)
        collect_url = options.get("collect_url", DEFAULT_COLLECT_URL)
        if not isinstance(collect_url, str) or not collect_url.startswith(("http://", "https://")):
            raise SinkConfigurationError(self._name, f"'collect_url' must be an http(s) URL, got {collect_url!r}")
        self._collect_url = collect_url

    def is_enabled(self) -> bool:
        return self.context.environment.ga_measurement_id() is not None

    def build_params(self, event: AnalyticsEvent) -> dict[str, str | int | float | bool]:
        params = flatten_properties(event.properties, snake_case=True)
        params["event_category"] = str(event.event_category)
        params["session_id"] = event.session_id
        for key, value in (
            ("content_id", event.content_id),
            ("workflow_item_id", event.workflow_item_id),
            ("organization_id", event.organization_id),
            ("page_path", event.context.page_path),
        ):
            if value is not None:
                params[key] = value
        return params

    def build_payload(self, event: AnalyticsEvent, name: str, params: Mapping[str, Any]) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "client_id": event.anonymous_id,
            "timestamp_micros": int(event.timestamp.timestamp() * 1_000_000),
            "events": [{"name": name, "params": dict(params)}],
        }
        user_id = event.user_id or self._user_id
        if user_id is not None:
            payload["user_id"] = user_id
        if self._user_properties:
            payload["user_properties"] = {key: {"value": value} for key, value in self._user_properties.items()}
        return payload

    async def _send(self, operation: str, payload: dict[str, Any], event_name: str) -> None:
        environment = self.context.environment
        measurement_id = environment.ga_measurement_id()
        if measurement_id is None:
            return
        query = {"measurement_id": measurement_id}
        api_secret = environment.ga_api_secret()
        if api_secret is not None:
            query["api_secret"] = api_secret
        try:
            response = await self._get_client().post(self._collect_url, params=query, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            self._report_failure(operation, e, event_name=event_name)

    async def track(self, event: AnalyticsEvent) -> None:
        try:
            payload = self.build_payload(event, event.event_name, self.build_params(event))
        except (TypeError, ValueError) as e:
            self._report_failure("track", e, event_name=event.event_name)
            return
        await self._send("track", payload, event.event_name)

    async def identify(self, user_id: str, traits: Mapping[str, Any]) -> None:
        self._user_id = user_id
        try:
            self._user_properties = flatten_properties(traits, snake_case=True)
        except (TypeError, ValueError) as e:
            self._report_failure("identify", e)
        logger.debug("GA4 user bound", user_property_keys=sorted(self._user_properties))

    async def page(self, name: str, properties: Mapping[str, Any], event: AnalyticsEvent) -> None:
        try:
            params = flatten_properties(properties, snake_case=True)
            params["page_title"] = name
            if event.context.page_url is not None:
                params["page_location"] = event.context.page_url
            if event.context.page_path is not None:
                params["page_path"] = event.context.page_path
            payload = self.build_payload(event, "page_view", params)
        except (TypeError, ValueError) as e:
            self._report_failure("page", e, page_name=name)
            return
        await self._send("page", payload, "page_view")
