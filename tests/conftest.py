# tests/conftest.py
"""Shared test fixtures.

Time, timers and storage are all deterministic here:
- clock: MockClock fixed at 2026-01-01T00:00:00Z until advanced
- scheduler: ManualScheduler; timers only fire on ``await scheduler.advance()``
- environ: plain dict standing in for os.environ (SITEPULSE_* sink variables)

Hypothesis Configuration:
- "ci" profile: 100 examples (default)
- "nightly" profile: 1000 examples
- "debug" profile: 10 examples, verbose

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
import structlog
from hypothesis import Phase, Verbosity, settings

from sitepulse.analytics.client import AnalyticsClient
from sitepulse.analytics.context import PipelineContext
from sitepulse.analytics.protocols import Trackable
from sitepulse.core.clock import MockClock
from sitepulse.core.config import SinkEnvironment
from sitepulse.core.scheduling import ManualScheduler
from sitepulse.core.storage import MemoryStore

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


@pytest.fixture(autouse=True)
def _structlog_through_stdlib() -> Iterator[None]:
    """Route structlog through stdlib logging so stdout stays clean and caplog sees warnings."""
    structlog.configure(
        processors=[structlog.stdlib.add_log_level, structlog.processors.KeyValueRenderer(key_order=["event"])],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def _state_dir_in_tmp(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep default long-lived state out of the real per-user directory."""
    state_dir = tmp_path / "app-state"
    monkeypatch.setattr("sitepulse.analytics.context.default_state_dir", lambda: state_dir)
    return state_dir


@pytest.fixture
def clock() -> MockClock:
    return MockClock()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def environ() -> dict[str, str]:
    return {}


@pytest.fixture
def session_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def persistent_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def context(
    clock: MockClock,
    scheduler: ManualScheduler,
    environ: dict[str, str],
    session_store: MemoryStore,
    persistent_store: MemoryStore,
) -> PipelineContext:
    return PipelineContext(
        environment=SinkEnvironment(environ),
        clock=clock,
        scheduler=scheduler,
        session_store=session_store,
        persistent_store=persistent_store,
    )


@pytest.fixture
def consented_context(context: PipelineContext) -> PipelineContext:
    context.consent.accept_analytics_only()
    return context


@pytest.fixture
def make_client(consented_context: PipelineContext) -> Callable[..., AnalyticsClient]:
    """Build a client over ``consented_context`` with the given sinks enabled in config."""

    def _make(*sinks: Trackable) -> AnalyticsClient:
        for sink in sinks:
            sink.configure({}, consented_context)
        consented_context.configure(sinks={sink.name: True for sink in sinks})
        return AnalyticsClient(consented_context, list(sinks))

    return _make
