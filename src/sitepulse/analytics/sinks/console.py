# src/sitepulse/analytics/sinks/console.py
"""Console sink for analytics events.

Writes one line per event to stdout or stderr, chosen by the
SITEPULSE_CONSOLE_OUTPUT environment variable. Without that variable the
sink is disabled. Properties are flattened to primitives, as hosted
analytics dashboards receive them.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Literal, TextIO, TypeGuard

from sitepulse.analytics.errors import SinkConfigurationError
from sitepulse.analytics.formatting import flatten_properties
from sitepulse.analytics.sinks.base import BaseSink
from sitepulse.contracts.events import isoformat_utc

if TYPE_CHECKING:
    from sitepulse.contracts.events import AnalyticsEvent


def _is_valid_format(v: str) -> TypeGuard[Literal["json", "pretty"]]:
    """Narrow a validated format string to its literal type."""
    return v in {"json", "pretty"}


class ConsoleSink(BaseSink):
    """Print analytics events for local debugging and log shipping.

    Supports two output formats:
    - json: One flat JSON object per line (for machine processing)
    - pretty: Timestamp, event name and key=value properties

    Configuration options:
        format: Output format - "json" (default) or "pretty"

    Example configuration:
        sinks:
          console:
            options:
              format: pretty
    """

    _name = "console"
    _OPTIONS = frozenset({"format"})
    _VALID_FORMATS: frozenset[str] = frozenset({"json", "pretty"})
    _VALID_OUTPUTS: frozenset[str] = frozenset({"stdout", "stderr"})

    def __init__(self) -> None:
        super().__init__()
        self._format: Literal["json", "pretty"] = "json"

    def _apply_options(self, options: Mapping[str, Any]) -> None:
        format_value = options.get("format", "json")
        if not isinstance(format_value, str):
            raise SinkConfigurationError(
                self._name,
                f"'format' must be a string, got {type(format_value).__name__}",
            )
        if _is_valid_format(format_value):
            self._format = format_value
        else:
            raise SinkConfigurationError(
                self._name,
                f"Invalid format '{format_value}'. Must be one of: {', '.join(sorted(self._VALID_FORMATS))}",
            )

    def _stream(self) -> TextIO:
        return sys.stderr if self.context.environment.console_output() == "stderr" else sys.stdout

    def is_enabled(self) -> bool:
        return self.context.environment.console_output() in self._VALID_OUTPUTS

    def _format_line(self, event: AnalyticsEvent) -> str:
        flat = flatten_properties(event.properties)
        if self._format == "json":
            record: dict[str, Any] = {
                "event": event.event_name,
                "category": str(event.event_category),
                "timestamp": isoformat_utc(event.timestamp),
                "session_id": event.session_id,
                **flat,
            }
            return json.dumps(record)
        props = " ".join(f"{key}={value}" for key, value in flat.items())
        return f"[{isoformat_utc(event.timestamp)}] {event.event_category}/{event.event_name} {props}".rstrip()

    async def track(self, event: AnalyticsEvent) -> None:
        try:
            print(self._format_line(event), file=self._stream())
        except Exception as e:
            self._report_failure("track", e, event_name=event.event_name)

    async def flush(self) -> None:
        try:
            self._stream().flush()
        except (OSError, ValueError) as e:
            self._report_failure("flush", e)
