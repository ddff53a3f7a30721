# src/sitepulse/core/clock.py
"""Clock abstraction for testable session and timestamp logic.

Session expiry and event timestamps both read wall-clock time, so the
clock returns aware UTC datetimes rather than monotonic seconds.

Production code uses SystemClock (the default).
Tests inject MockClock to control time advancement.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Abstract wall clock.

    Implementations:
    - SystemClock: Uses datetime.now(UTC) (production)
    - MockClock: Returns controllable times (testing)
    """

    def now(self) -> datetime:
        """Return the current time as a timezone-aware UTC datetime."""
        ...


class SystemClock:
    """Production clock backed by the system wall clock."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class MockClock:
    """Controllable clock for deterministic testing.

    Example:
        clock = MockClock()
        store = IdentityStore(session_store, persistent_store, clock=clock)

        first = store.get_session_id()
        clock.advance(31 * 60)  # Idle past the session timeout
        assert store.get_session_id() != first
    """

    def __init__(self, start: datetime | None = None) -> None:
        """Initialize mock clock.

        Args:
            start: Initial time; defaults to 2026-01-01T00:00:00Z.

        Raises:
            ValueError: If start is naive.
        """
        if start is None:
            start = datetime(2026, 1, 1, tzinfo=UTC)
        if start.tzinfo is None:
            raise ValueError("MockClock start must be timezone-aware")
        self._current = start

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: float) -> None:
        """Advance the clock.

        Raises:
            ValueError: If seconds is negative (time cannot go backwards).
        """
        if seconds < 0:
            raise ValueError(f"Cannot advance clock by negative amount: {seconds}")
        self._current += timedelta(seconds=seconds)

    def set(self, value: datetime) -> None:
        """Set the clock to an absolute time."""
        self._current = value
