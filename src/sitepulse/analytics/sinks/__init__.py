# src/sitepulse/analytics/sinks/__init__.py
"""Built-in analytics sinks.

Sinks are discovered via pluggy hooks. The BuiltinSinksPlugin in this
module registers all built-in sinks.

Available sinks:
- ConsoleSink: Print events to stdout/stderr
- GA4Sink: Google Analytics 4 Measurement Protocol
- MixpanelSink: Mixpanel ingestion API
- IngestSink: First-party ingestion endpoint (batched, exit-safe)
"""

from sitepulse.analytics.hookspecs import hookimpl
from sitepulse.analytics.sinks.console import ConsoleSink
from sitepulse.analytics.sinks.ga4 import GA4Sink
from sitepulse.analytics.sinks.ingest import IngestSink
from sitepulse.analytics.sinks.mixpanel import MixpanelSink


class BuiltinSinksPlugin:
    """Plugin that registers built-in analytics sinks."""

    @hookimpl
    def sitepulse_get_sinks(self) -> list[type]:
        """Return built-in sink classes."""
        return [ConsoleSink, GA4Sink, MixpanelSink, IngestSink]


__all__ = [
    "BuiltinSinksPlugin",
    "ConsoleSink",
    "GA4Sink",
    "IngestSink",
    "MixpanelSink",
]
