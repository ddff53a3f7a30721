# src/sitepulse/analytics/__init__.py
"""Analytics pipeline: dispatcher, sinks and delivery.

Public API:
- AnalyticsClient: gating, event construction and isolated sink fan-out
- PipelineContext: shared configuration, stores, clock and scheduler
- create_analytics_client: discover and configure sinks via pluggy hooks
- ServerTracker: immediate server-side recording

Usage:
    from sitepulse.analytics import create_analytics_client

    client = create_analytics_client()
    client.context.consent.accept_analytics_only()
    await client.track_event("map_search", properties={"query": "hydro"})
    await client.aclose()
"""

from sitepulse.analytics.client import AnalyticsClient
from sitepulse.analytics.context import PipelineContext
from sitepulse.analytics.errors import SinkConfigurationError
from sitepulse.analytics.factory import create_analytics_client, discover_sink_registry
from sitepulse.analytics.hookspecs import hookimpl
from sitepulse.analytics.protocols import Flushable, Identifiable, LifecycleAware, PageAware, Trackable
from sitepulse.analytics.server import ServerTracker, ServerTrackResult

__all__ = [
    "AnalyticsClient",
    "Flushable",
    "Identifiable",
    "LifecycleAware",
    "PageAware",
    "PipelineContext",
    "ServerTrackResult",
    "ServerTracker",
    "SinkConfigurationError",
    "Trackable",
    "create_analytics_client",
    "discover_sink_registry",
    "hookimpl",
]
