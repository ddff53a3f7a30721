# src/sitepulse/analytics/server.py
"""Server-side event recording.

Server code (request handlers, background jobs) records events directly:
no consent gate (the server acts on its own records), no batching, one
POST per event. The session id is "server" unless the caller propagates
the viewer's session. Results are reported, never raised.

Disabled (reported as success) when SITEPULSE_DISABLE_SERVER_ANALYTICS=true.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from sitepulse.analytics.categories import resolve_category
from sitepulse.analytics.formatting import format_event_for_ingest
from sitepulse.analytics.transport import IngestionTransport
from sitepulse.contracts.enums import EventName
from sitepulse.contracts.events import AnalyticsContext, AnalyticsEvent
from sitepulse.core.clock import Clock, SystemClock
from sitepulse.core.config import SinkEnvironment

logger = structlog.get_logger(__name__)

SERVER_SESSION_ID = "server"


@dataclass(frozen=True, slots=True)
class ServerTrackResult:
    """Outcome of one server-side recording attempt."""

    success: bool
    event_id: str | None = None
    error: str | None = None


class ServerTracker:
    """Records server-side events at the ingestion endpoint.

    Args:
        endpoint: Absolute ingestion URL.
        transport: HTTP transport; a private one is created when omitted.
        environment: Live environment view (kill switch).
        clock: Time source for timestamps and billing periods.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        transport: IngestionTransport | None = None,
        environment: SinkEnvironment | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._transport = transport if transport is not None else IngestionTransport()
        self._environment = environment if environment is not None else SinkEnvironment()
        self._clock = clock if clock is not None else SystemClock()

    def is_enabled(self) -> bool:
        return not self._environment.server_analytics_disabled()

    async def track_server_event(
        self,
        event_name: str,
        *,
        properties: Mapping[str, Any] | None = None,
        user_id: str | None = None,
        content_id: str | None = None,
        workflow_item_id: str | None = None,
        organization_id: str | None = None,
        session_id: str | None = None,
        context: AnalyticsContext | Mapping[str, Any] | None = None,
    ) -> ServerTrackResult:
        if not self.is_enabled():
            return ServerTrackResult(success=True)

        event_id = uuid.uuid4().hex
        try:
            now = self._clock.now()
            event = AnalyticsEvent(
                event_name=str(event_name),
                event_category=resolve_category(event_name),
                timestamp=now,
                session_id=session_id or SERVER_SESSION_ID,
                anonymous_id=SERVER_SESSION_ID,
                user_id=user_id,
                content_id=content_id,
                workflow_item_id=workflow_item_id,
                organization_id=organization_id,
                properties=properties or {},
                context=AnalyticsContext().merged_with(context),
            )
            document = format_event_for_ingest(event, sent_at=now)
            document["eventId"] = event_id
            await self._transport.post_json(self._endpoint, {"events": [document]})
        except (httpx.HTTPError, TypeError, ValueError) as e:
            logger.error("Failed to record server event", event_name=str(event_name), error=str(e))
            return ServerTrackResult(success=False, error=str(e))
        return ServerTrackResult(success=True, event_id=event_id)

    async def track_content_event(
        self,
        event_name: str,
        content_id: str,
        *,
        user_id: str | None = None,
        organization_id: str | None = None,
        properties: Mapping[str, Any] | None = None,
    ) -> ServerTrackResult:
        """Content lifecycle events (created, updated, approval, publication)."""
        return await self.track_server_event(
            event_name,
            content_id=content_id,
            user_id=user_id,
            organization_id=organization_id,
            properties=properties,
        )

    async def track_workflow_event(
        self,
        event_name: str,
        workflow_item_id: str,
        *,
        user_id: str | None = None,
        properties: Mapping[str, Any] | None = None,
    ) -> ServerTrackResult:
        return await self.track_server_event(
            event_name,
            workflow_item_id=workflow_item_id,
            user_id=user_id,
            properties=properties,
        )

    async def track_user_auth_event(
        self,
        event_name: str,
        user_id: str,
        *,
        context: AnalyticsContext | Mapping[str, Any] | None = None,
    ) -> ServerTrackResult:
        return await self.track_server_event(event_name, user_id=user_id, context=context)

    async def track_api_call_event(self, endpoint: str, method: str, status_code: int, duration_ms: float) -> ServerTrackResult:
        return await self.track_server_event(
            EventName.API_CALL,
            properties={
                "apiEndpoint": endpoint,
                "apiMethod": method,
                "apiStatusCode": status_code,
                "apiDuration": duration_ms,
            },
        )

    async def track_error_event(
        self,
        error_message: str,
        *,
        error_code: str | None = None,
        context: AnalyticsContext | Mapping[str, Any] | None = None,
    ) -> ServerTrackResult:
        properties: dict[str, Any] = {"errorMessage": error_message}
        if error_code is not None:
            properties["errorCode"] = error_code
        return await self.track_server_event(EventName.ERROR_OCCURRED, properties=properties, context=context)

    async def aclose(self) -> None:
        await self._transport.aclose()
