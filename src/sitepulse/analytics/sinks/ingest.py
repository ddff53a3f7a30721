# src/sitepulse/analytics/sinks/ingest.py
"""First-party ingestion sink with batching and exit-safe delivery.

Events queue locally and leave in batches:
- immediately once the queue reaches ``batch_size``
- otherwise when a single scheduled flush fires ``flush_interval_ms``
  after the first queued event
- on flush() (explicit drain)
- on a lifecycle signal, through the beacon transport

Every drain swaps the queue first, so an event is delivered by at most one
path. A failed batch is dropped; there is no retry. Disabled when
SITEPULSE_DISABLE_INGEST=true.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar

import httpx

from sitepulse.analytics.errors import SinkConfigurationError
from sitepulse.analytics.formatting import build_ingest_payload
from sitepulse.analytics.queue import EventQueue
from sitepulse.analytics.sinks.base import BaseSink, validate_timeout
from sitepulse.analytics.transport import BeaconTransport, IngestionTransport, ThreadedBeacon

if TYPE_CHECKING:
    from sitepulse.contracts.enums import LifecycleSignal
    from sitepulse.contracts.events import AnalyticsEvent
    from sitepulse.core.scheduling import TimerHandle


class IngestSink(BaseSink):
    """Batch events to the first-party ingestion endpoint.

    The endpoint is SITEPULSE_INGEST_ENDPOINT when set, otherwise the
    configured ``ingest_endpoint``. A relative endpoint is resolved against
    the ``base_url`` option, or failing that against the page URL of the
    current client environment.

    Configuration options:
        base_url: Origin for relative endpoints (e.g. https://example.org)
        timeout: Flush request timeout in seconds (default 10)
        beacon_timeout: Exit-time request timeout in seconds (default 2)
    """

    _name = "ingest"
    _OPTIONS: ClassVar[frozenset[str]] = frozenset({"base_url", "timeout", "beacon_timeout"})

    def __init__(
        self,
        *,
        transport: IngestionTransport | None = None,
        beacon: BeaconTransport | None = None,
    ) -> None:
        super().__init__()
        self._transport = transport
        self._beacon = beacon
        self._base_url: str | None = None
        self._queue = EventQueue()
        self._timer: TimerHandle | None = None

    def _apply_options(self, options: Mapping[str, Any]) -> None:
        base_url = options.get("base_url")
        if base_url is not None:
            if not isinstance(base_url, str) or not base_url.startswith(("http://", "https://")):
                raise SinkConfigurationError(self._name, f"'base_url' must be an http(s) URL, got {base_url!r}")
            self._base_url = base_url
        timeout = validate_timeout(self._name, options.get("timeout", 10.0))
        beacon_timeout = validate_timeout(self._name, options.get("beacon_timeout", 2.0), "beacon_timeout")
        if self._transport is None:
            self._transport = IngestionTransport(timeout=timeout)
        if self._beacon is None:
            self._beacon = ThreadedBeacon(timeout=beacon_timeout)

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    @property
    def has_scheduled_flush(self) -> bool:
        return self._timer is not None

    def is_enabled(self) -> bool:
        return not self.context.environment.ingest_disabled()

    def _origin(self) -> str | None:
        if self._base_url is not None:
            return self._base_url
        client_environment = self.context.client_environment
        page_url = client_environment.page_url if client_environment is not None else None
        if not page_url:
            return None
        try:
            return page_url if httpx.URL(page_url).is_absolute_url else None
        except httpx.InvalidURL:
            return None

    def endpoint(self) -> str:
        """Ingestion URL, resolved against base_url or else the current page."""
        endpoint = self.context.environment.ingest_endpoint() or self.context.config.ingest_endpoint
        origin = self._origin()
        if origin is None:
            return endpoint
        return str(httpx.URL(origin).join(endpoint))

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_flush(self) -> None:
        handle: TimerHandle | None = None

        async def fire() -> None:
            # A superseded timer must not drain the next batch early
            if self._timer is handle:
                self._timer = None
                await self.flush()

        handle = self.context.scheduler.call_later(self.context.config.flush_interval_seconds, fire)
        self._timer = handle

    async def track(self, event: AnalyticsEvent) -> None:
        size = self._queue.append(event)
        if size >= self.context.config.batch_size:
            await self.flush()
        elif self._timer is None:
            try:
                self._schedule_flush()
            except RuntimeError as e:
                self._report_failure("schedule", e, pending=size)

    async def flush(self) -> None:
        self._cancel_timer()
        events = self._queue.swap()
        if not events or self._transport is None:
            return
        try:
            payload = build_ingest_payload(events, sent_at=self.context.clock.now())
            await self._transport.post_json(self.endpoint(), payload)
        except (httpx.HTTPError, httpx.InvalidURL, TypeError, ValueError) as e:
            self._report_failure("flush", e, dropped=len(events))

    def on_lifecycle(self, signal: LifecycleSignal) -> None:
        """Hand every pending event to the beacon; the queue ends up empty."""
        self._cancel_timer()
        events = self._queue.swap()
        if not events or self._beacon is None:
            return
        try:
            body = json.dumps(build_ingest_payload(events, sent_at=self.context.clock.now())).encode("utf-8")
            accepted = self._beacon.send(self.endpoint(), body)
        except (TypeError, ValueError, httpx.InvalidURL) as e:
            self._report_failure("beacon", e, signal=str(signal), dropped=len(events))
            return
        if not accepted:
            self._report_failure("beacon", RuntimeError("beacon hand-off refused"), signal=str(signal), dropped=len(events))

    async def aclose(self) -> None:
        self._cancel_timer()
        if self._transport is not None:
            try:
                await self._transport.aclose()
            except httpx.HTTPError as e:
                self._report_failure("aclose", e)
