# src/sitepulse/analytics/protocols.py
"""Sink capability protocols.

Every sink is Trackable. The remaining capabilities are optional; the
dispatcher checks them with isinstance() at dispatch time and skips sinks
that do not implement a capability.

Error contract:
    configure() may raise SinkConfigurationError. Every other method MUST
    NOT raise: sinks catch their own translation and network failures and
    log a diagnostic outside production. The dispatcher still isolates
    each call in case a sink breaks this contract.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sitepulse.analytics.context import PipelineContext
    from sitepulse.contracts.enums import LifecycleSignal
    from sitepulse.contracts.events import AnalyticsEvent


@runtime_checkable
class Trackable(Protocol):
    """Base capability: receives canonical events.

    Lifecycle:
        1. Instantiated by the factory (no-arg constructor)
        2. configure() called once with options and the shared context
        3. is_enabled()/track() called per event
        4. aclose() called at shutdown
    """

    @property
    def name(self) -> str:
        """Sink name used in configuration (e.g. "console", "ga4")."""
        ...

    def configure(self, options: Mapping[str, Any], context: PipelineContext) -> None:
        """Apply sink-specific options.

        Raises:
            SinkConfigurationError: If options are invalid.
        """
        ...

    def is_enabled(self) -> bool:
        """Deployment-side enable check, re-evaluated for every event."""
        ...

    async def track(self, event: AnalyticsEvent) -> None:
        """Translate and deliver one event. Must not raise."""
        ...

    async def aclose(self) -> None:
        """Release network resources. Must not raise."""
        ...


@runtime_checkable
class Identifiable(Protocol):
    """Sink can bind a known user id and traits."""

    async def identify(self, user_id: str, traits: Mapping[str, Any]) -> None: ...


@runtime_checkable
class PageAware(Protocol):
    """Sink has a native page-view call."""

    async def page(self, name: str, properties: Mapping[str, Any], event: AnalyticsEvent) -> None: ...


@runtime_checkable
class Flushable(Protocol):
    """Sink buffers and can be drained on demand."""

    async def flush(self) -> None: ...


@runtime_checkable
class LifecycleAware(Protocol):
    """Sink reacts to the host going away.

    on_lifecycle() is synchronous: when the host is being torn down there
    is no event loop turn left to await anything.
    """

    def on_lifecycle(self, signal: LifecycleSignal) -> None: ...
