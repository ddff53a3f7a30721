# src/sitepulse/core/scheduling.py
"""Timer scheduling and per-key debouncing.

Every deferred action in the pipeline (scheduled ingestion flushes,
debounced map and scroll events) goes through a Scheduler so that it can be
cancelled explicitly and driven deterministically in tests.

Production code uses AsyncioScheduler (the default).
Tests inject ManualScheduler and advance its virtual time.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass, field
from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class TimerHandle(Protocol):
    """Handle to a pending timer. cancel() is idempotent."""

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Runs an async callback once after a delay."""

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        """Schedule ``callback`` after ``delay`` seconds.

        Returns:
            Handle whose cancel() prevents the callback from running.
        """
        ...


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop.

    Fired callbacks run as tasks. The scheduler keeps a strong reference to
    each task until it finishes; a callback that raises is logged and
    otherwise ignored.

    call_later() must be invoked from within a running event loop.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, self._spawn, callback)

    def _spawn(self, callback: TimerCallback) -> None:
        task: asyncio.Task[None] = asyncio.ensure_future(callback())
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Scheduled callback failed", error=str(error), error_type=type(error).__name__)

    async def drain(self) -> None:
        """Wait for callbacks that have already fired to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


@dataclass(eq=False)
class ManualTimer:
    """Timer created by ManualScheduler."""

    when: float
    sequence: int
    callback: TimerCallback
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ManualScheduler:
    """Deterministic scheduler for tests.

    Time only moves when advance() is awaited. Due callbacks run in
    (due time, scheduling order) and may schedule further timers.

    Example:
        scheduler = ManualScheduler()
        sink = IngestSink(...)
        await sink.track(event)          # schedules a 5s flush
        await scheduler.advance(5.0)     # flush runs here
    """

    now: float = 0.0
    _timers: list[ManualTimer] = field(default_factory=list)
    _sequence: int = 0

    def call_later(self, delay: float, callback: TimerCallback) -> ManualTimer:
        self._sequence += 1
        timer = ManualTimer(when=self.now + delay, sequence=self._sequence, callback=callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        """Timers that are neither cancelled nor fired, in due order."""
        live = [t for t in self._timers if not t.cancelled and not t.fired]
        return sorted(live, key=lambda t: (t.when, t.sequence))

    async def advance(self, seconds: float) -> None:
        """Move virtual time forward, running every callback that falls due."""
        if seconds < 0:
            raise ValueError(f"Cannot advance scheduler by negative amount: {seconds}")
        target = self.now + seconds
        while True:
            due = [t for t in self.pending if t.when <= target]
            if not due:
                break
            timer = due[0]
            self.now = timer.when
            timer.fired = True
            await timer.callback()
        self.now = target

    async def run_all(self) -> None:
        """Advance until no timers remain pending."""
        while self.pending:
            await self.advance(max(0.0, self.pending[-1].when - self.now))


class Debouncer:
    """One pending timer per key; a new request cancels the previous one.

    Keys are independent dimensions (e.g. "hover", "zoom", "pan"), so a
    burst on one never cancels a pending timer on another.
    """

    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._handles: dict[Hashable, TimerHandle] = {}

    def schedule(self, key: Hashable, delay: float, callback: TimerCallback) -> None:
        self.cancel(key)
        handle: TimerHandle | None = None

        async def fire() -> None:
            if self._handles.get(key) is handle:
                del self._handles[key]
            await callback()

        handle = self._scheduler.call_later(delay, fire)
        self._handles[key] = handle

    def is_pending(self, key: Hashable) -> bool:
        return key in self._handles

    def cancel(self, key: Hashable) -> None:
        handle = self._handles.pop(key, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        for key in list(self._handles):
            self.cancel(key)
