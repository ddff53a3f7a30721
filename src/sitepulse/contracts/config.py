# src/sitepulse/contracts/config.py
"""Runtime configuration for the analytics pipeline.

RuntimeAnalyticsConfig is frozen. Reconfiguration builds a new instance via
merged(); the PipelineContext swaps it in (last writer wins).

Field Origins:
- Settings fields: come from YAML/env configuration via AnalyticsSettings
- Defaults: DEFAULT_SINK_FLAGS and the class defaults below
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sitepulse.core.config import AnalyticsSettings

DEFAULT_INGEST_ENDPOINT = "/api/analytics/events"

DEFAULT_SINK_FLAGS: Mapping[str, bool] = MappingProxyType(
    {
        "console": True,
        "ga4": False,
        "mixpanel": False,
        "ingest": True,
    }
)


def _validate_positive_int(field_name: str, value: Any) -> int:
    """Validate a strictly positive integer (bool rejected)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field_name} must be an integer, got {type(value).__name__}")
    if value < 1:
        raise ValueError(f"{field_name} must be >= 1, got {value}")
    return value


@dataclass(frozen=True, slots=True)
class RuntimeAnalyticsConfig:
    """Pipeline-wide switches and batching parameters.

    Attributes:
        enabled: Master switch; when False every tracking call is a no-op.
        debug: Emit trace logs for dropped events.
        consent_required: Gate tracking on analytics consent.
        enrich_context: Derive device/browser/UTM context for each event.
        batch_size: Ingestion queue size that triggers an immediate flush.
        flush_interval_ms: Delay before a scheduled ingestion flush.
        sinks: Per-sink enabled flags, keyed by sink name.
        ingest_endpoint: Ingestion URL used when the environment sets none.
    """

    enabled: bool = True
    debug: bool = False
    consent_required: bool = True
    enrich_context: bool = True
    batch_size: int = 10
    flush_interval_ms: int = 5000
    sinks: Mapping[str, bool] = field(default_factory=lambda: DEFAULT_SINK_FLAGS)
    ingest_endpoint: str = DEFAULT_INGEST_ENDPOINT

    def __post_init__(self) -> None:
        _validate_positive_int("batch_size", self.batch_size)
        _validate_positive_int("flush_interval_ms", self.flush_interval_ms)
        object.__setattr__(self, "sinks", MappingProxyType(dict(self.sinks)))

    @property
    def flush_interval_seconds(self) -> float:
        return self.flush_interval_ms / 1000

    def sink_enabled(self, name: str) -> bool:
        """Config-side flag for a sink; unknown sinks are off."""
        return self.sinks.get(name, False)

    def merged(self, **changes: Any) -> RuntimeAnalyticsConfig:
        """Return a copy with ``changes`` applied.

        ``sinks`` merges per sink rather than replacing the whole mapping.

        Raises:
            ValueError: On unknown keys or invalid values.
        """
        known = {f.name for f in fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ValueError(f"Unknown analytics config keys: {unknown}")
        if "sinks" in changes:
            changes["sinks"] = {**self.sinks, **changes["sinks"]}
        return replace(self, **changes)

    @classmethod
    def default(cls) -> RuntimeAnalyticsConfig:
        return cls()

    @classmethod
    def from_settings(cls, settings: AnalyticsSettings) -> RuntimeAnalyticsConfig:
        """Create from validated AnalyticsSettings.

        Sinks absent from settings keep their default flag.
        """
        sink_flags = dict(DEFAULT_SINK_FLAGS)
        for name, sink_settings in settings.sinks.items():
            sink_flags[name] = sink_settings.enabled
        return cls(
            enabled=settings.enabled,
            debug=settings.debug,
            consent_required=settings.consent_required,
            enrich_context=settings.enrich_context,
            batch_size=settings.batch_size,
            flush_interval_ms=settings.flush_interval_ms,
            sinks=sink_flags,
            ingest_endpoint=settings.ingest_endpoint,
        )
