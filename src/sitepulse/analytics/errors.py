# src/sitepulse/analytics/errors.py
"""Analytics-specific exceptions.

These are raised during pipeline assembly only. Tracking, flushing and
lifecycle paths never raise to the host; they log instead.
"""


class SinkConfigurationError(Exception):
    """Raised when a sink cannot be discovered or configured.

    Attributes:
        sink_name: Name of the sink (or plugin group) that failed
        message: Human-readable error description
    """

    def __init__(self, sink_name: str, message: str) -> None:
        self.sink_name = sink_name
        self.message = message
        super().__init__(f"Sink '{sink_name}' failed: {message}")
