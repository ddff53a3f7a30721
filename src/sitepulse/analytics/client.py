# src/sitepulse/analytics/client.py
"""AnalyticsClient: the dispatcher in front of every sink.

The client is the only entry point hosts call. For each tracking call it:
1. Applies gating (master switch, analytics consent)
2. Builds the canonical AnalyticsEvent (identity, consent, context)
3. Fans the event out to every active sink concurrently
4. Isolates each sink, so one failure never affects another sink or the caller

A sink is active when its configuration flag is set AND its own
is_enabled() check passes. Both are evaluated per call.

None of the tracking, flushing or lifecycle methods raise.
"""

from __future__ import annotations

import asyncio
import atexit
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

import structlog

from sitepulse.analytics.categories import resolve_category
from sitepulse.analytics.context import PipelineContext
from sitepulse.analytics.protocols import Flushable, Identifiable, LifecycleAware, PageAware, Trackable
from sitepulse.contracts.config import RuntimeAnalyticsConfig
from sitepulse.contracts.enums import LifecycleSignal
from sitepulse.contracts.events import AnalyticsContext, AnalyticsEvent
from sitepulse.core.enrichment import enrich_context

logger = structlog.get_logger(__name__)

PAGE_VIEW_EVENT = "page_view"


class AnalyticsClient:
    """Coordinates event construction and fan-out to configured sinks.

    Example:
        >>> client = create_analytics_client()
        >>> client.context.consent.accept_analytics_only()
        >>> await client.track_event(EventName.MAP_SEARCH, properties={"query": "hydro"})
        >>> await client.flush()
        >>> await client.aclose()
    """

    def __init__(self, context: PipelineContext, sinks: Sequence[Trackable]) -> None:
        """Initialize the client.

        Args:
            context: Shared pipeline state (config, stores, clock, scheduler).
            sinks: Configured sink instances. May be empty (tracking is a no-op).
        """
        self._context = context
        self._sinks = tuple(sinks)
        self._exit_hook_installed = False

        # Health metrics
        self._events_dispatched = 0
        self._events_skipped_disabled = 0
        self._events_blocked_no_consent = 0
        self._events_failed_to_build = 0
        self._sink_failures: dict[str, int] = {}

    @property
    def context(self) -> PipelineContext:
        return self._context

    @property
    def config(self) -> RuntimeAnalyticsConfig:
        return self._context.config

    @property
    def sinks(self) -> tuple[Trackable, ...]:
        return self._sinks

    def get_sink(self, name: str) -> Trackable | None:
        return next((sink for sink in self._sinks if sink.name == name), None)

    def configure(self, **changes: Any) -> RuntimeAnalyticsConfig:
        """Merge ``changes`` into the configuration; later calls win.

        Raises:
            ValueError: On unknown keys or invalid values.
        """
        return self._context.configure(**changes)

    def _is_active(self, sink: Trackable) -> bool:
        if not self._context.config.sink_enabled(sink.name):
            return False
        try:
            return sink.is_enabled()
        except Exception as e:
            self._record_failure(sink.name, "is_enabled", e)
            return False

    def _active_sinks(self, capability: type[Any]) -> list[Any]:
        return [sink for sink in self._sinks if isinstance(sink, capability) and self._is_active(sink)]

    def _record_failure(self, sink_name: str, operation: str, error: BaseException) -> None:
        self._sink_failures[sink_name] = self._sink_failures.get(sink_name, 0) + 1
        logger.warning(
            "Analytics sink failed",
            sink=sink_name,
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
        )

    async def _guarded(self, sink_name: str, operation: str, call: Callable[[], Awaitable[None]]) -> None:
        try:
            await call()
        except Exception as e:
            self._record_failure(sink_name, operation, e)

    async def _fan_out(self, operation: str, calls: Sequence[tuple[str, Callable[[], Awaitable[None]]]]) -> None:
        if calls:
            await asyncio.gather(*(self._guarded(name, operation, call) for name, call in calls))

    def _trace(self, message: str, **fields: Any) -> None:
        if self._context.config.debug:
            logger.info(message, **fields)

    def _gate(self, event_name: str) -> bool:
        """True when tracking may proceed."""
        config = self._context.config
        if not config.enabled:
            self._events_skipped_disabled += 1
            return False
        if config.consent_required and not self._context.consent.has_analytics_consent():
            self._events_blocked_no_consent += 1
            self._trace("Event blocked - no consent", event_name=event_name)
            return False
        return True

    def build_event(
        self,
        event_name: str,
        *,
        properties: Mapping[str, Any] | None = None,
        user_id: str | None = None,
        content_id: str | None = None,
        workflow_item_id: str | None = None,
        organization_id: str | None = None,
        context: AnalyticsContext | Mapping[str, Any] | None = None,
    ) -> AnalyticsEvent:
        """Construct the canonical event without gating or dispatch.

        Raises:
            ValueError: If ``context`` names unknown fields.
        """
        if self._context.config.enrich_context:
            event_context = enrich_context(self._context.client_environment, context)
        else:
            event_context = AnalyticsContext().merged_with(context)
        return AnalyticsEvent(
            event_name=str(event_name),
            event_category=resolve_category(event_name),
            timestamp=self._context.clock.now(),
            session_id=self._context.identity.get_session_id(),
            anonymous_id=self._context.identity.get_anonymous_id(),
            user_id=user_id,
            content_id=content_id,
            workflow_item_id=workflow_item_id,
            organization_id=organization_id,
            properties=properties or {},
            context=event_context,
            consent=self._context.consent.get_consent_state(),
        )

    def _build_or_log(self, event_name: str, **kwargs: Any) -> AnalyticsEvent | None:
        try:
            return self.build_event(event_name, **kwargs)
        except (TypeError, ValueError) as e:
            self._events_failed_to_build += 1
            logger.warning("Analytics event could not be built", event_name=str(event_name), error=str(e))
            return None

    async def track_event(
        self,
        event_name: str,
        *,
        properties: Mapping[str, Any] | None = None,
        user_id: str | None = None,
        content_id: str | None = None,
        workflow_item_id: str | None = None,
        organization_id: str | None = None,
        context: AnalyticsContext | Mapping[str, Any] | None = None,
    ) -> None:
        """Build one event and deliver it to every active sink."""
        if not self._gate(str(event_name)):
            return
        event = self._build_or_log(
            event_name,
            properties=properties,
            user_id=user_id,
            content_id=content_id,
            workflow_item_id=workflow_item_id,
            organization_id=organization_id,
            context=context,
        )
        if event is None:
            return
        self._trace("Tracking event", event_name=event.event_name, category=str(event.event_category))
        sinks: list[Trackable] = self._active_sinks(Trackable)
        await self._fan_out("track", [(sink.name, lambda sink=sink: sink.track(event)) for sink in sinks])
        self._events_dispatched += 1

    async def identify_user(self, user_id: str, traits: Mapping[str, Any] | None = None) -> None:
        """Bind ``user_id`` in every active sink that supports identity.

        Gated on the master switch only.
        """
        if not self._context.config.enabled:
            return
        bound_traits = dict(traits or {})
        sinks = self._active_sinks(Identifiable)
        await self._fan_out(
            "identify",
            [(sink.name, lambda sink=sink: sink.identify(user_id, bound_traits)) for sink in sinks],
        )

    async def track_page_view(self, page_name: str, properties: Mapping[str, Any] | None = None) -> None:
        """Deliver a page view to every active sink with a native page call."""
        if not self._gate(PAGE_VIEW_EVENT):
            return
        page_properties = dict(properties or {})
        event = self._build_or_log(PAGE_VIEW_EVENT, properties={"page_name": page_name, **page_properties})
        if event is None:
            return
        sinks = self._active_sinks(PageAware)
        await self._fan_out(
            "page",
            [(sink.name, lambda sink=sink: sink.page(page_name, page_properties, event)) for sink in sinks],
        )

    async def flush(self) -> None:
        """Drain every active buffering sink."""
        sinks = self._active_sinks(Flushable)
        await self._fan_out("flush", [(sink.name, sink.flush) for sink in sinks])

    def notify_lifecycle(self, signal: LifecycleSignal) -> None:
        """Deliver a host lifecycle signal to every lifecycle-aware sink.

        Synchronous: the host may be torn down right after this returns.
        Sinks disabled by configuration are still notified so that events
        queued before they were disabled are not lost.
        """
        for sink in self._sinks:
            if not isinstance(sink, LifecycleAware):
                continue
            try:
                sink.on_lifecycle(signal)
            except Exception as e:
                self._record_failure(sink.name, "lifecycle", e)

    def install_exit_hook(self) -> None:
        """Deliver LifecycleSignal.SHUTDOWN when the interpreter exits."""
        if self._exit_hook_installed:
            return
        atexit.register(self.notify_lifecycle, LifecycleSignal.SHUTDOWN)
        self._exit_hook_installed = True

    async def aclose(self) -> None:
        """Flush, then release every sink's resources."""
        await self.flush()
        await self._fan_out("aclose", [(sink.name, sink.aclose) for sink in self._sinks])
        if self._exit_hook_installed:
            atexit.unregister(self.notify_lifecycle)
            self._exit_hook_installed = False

    @property
    def health_metrics(self) -> dict[str, Any]:
        """Counters for operational monitoring."""
        return {
            "events_dispatched": self._events_dispatched,
            "events_skipped_disabled": self._events_skipped_disabled,
            "events_blocked_no_consent": self._events_blocked_no_consent,
            "events_failed_to_build": self._events_failed_to_build,
            "sink_failures": dict(self._sink_failures),
            "sink_count": len(self._sinks),
        }
