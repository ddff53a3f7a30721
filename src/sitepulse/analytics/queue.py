# src/sitepulse/analytics/queue.py
"""Pending-event queue for the ingestion sink.

Both drains (scheduled/size-triggered flush and exit-safe delivery) take
the queue contents through swap(), so an event is handed to at most one
transport.
"""

from __future__ import annotations

from sitepulse.contracts.events import AnalyticsEvent


class EventQueue:
    """Ordered list of events awaiting delivery."""

    def __init__(self) -> None:
        self._events: list[AnalyticsEvent] = []

    def append(self, event: AnalyticsEvent) -> int:
        """Add an event; returns the new queue length."""
        self._events.append(event)
        return len(self._events)

    def swap(self) -> list[AnalyticsEvent]:
        """Take every pending event, leaving the queue empty."""
        events, self._events = self._events, []
        return events

    def __len__(self) -> int:
        return len(self._events)

    def __bool__(self) -> bool:
        return bool(self._events)
