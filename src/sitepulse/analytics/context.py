# src/sitepulse/analytics/context.py
"""PipelineContext: the single owner of process-wide analytics state.

One context is constructed per host (page, process) and shared by the
dispatcher and every sink. It holds the current configuration, which is
replaced wholesale on reconfiguration (last writer wins), along with the
environment view, clock, scheduler, storage scopes and the identity and
consent stores built on them.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
import typer

from sitepulse.contracts.config import RuntimeAnalyticsConfig
from sitepulse.core.clock import Clock, SystemClock
from sitepulse.core.config import SinkEnvironment
from sitepulse.core.consent import ConsentStore
from sitepulse.core.enrichment import ClientEnvironment
from sitepulse.core.identity import IdentityStore
from sitepulse.core.scheduling import AsyncioScheduler, Scheduler
from sitepulse.core.storage import JsonFileStore, KeyValueStore, MemoryStore

if TYPE_CHECKING:
    from sitepulse.core.config import AnalyticsSettings

logger = structlog.get_logger(__name__)

STATE_FILE_NAME = "sitepulse-state.json"


def default_state_dir() -> Path:
    """Per-user application directory holding long-lived state."""
    return Path(typer.get_app_dir("sitepulse"))


class PipelineContext:
    """Shared state for one analytics host.

    Args:
        config: Initial configuration (defaults to RuntimeAnalyticsConfig.default()).
        environment: Live view of sink environment variables.
        clock: Wall clock for sessions, timestamps and billing periods.
        scheduler: Timer source for batching and debouncing.
        session_store: Session-scoped storage.
        persistent_store: Long-lived storage; defaults to a JSON file in
            default_state_dir().
        client_environment: Current viewer snapshot; None for non-interactive hosts.
    """

    def __init__(
        self,
        config: RuntimeAnalyticsConfig | None = None,
        *,
        environment: SinkEnvironment | None = None,
        clock: Clock | None = None,
        scheduler: Scheduler | None = None,
        session_store: KeyValueStore | None = None,
        persistent_store: KeyValueStore | None = None,
        client_environment: ClientEnvironment | None = None,
    ) -> None:
        self._config = config if config is not None else RuntimeAnalyticsConfig.default()
        self._config_revision = 0
        self.environment = environment if environment is not None else SinkEnvironment()
        self.clock: Clock = clock if clock is not None else SystemClock()
        self.scheduler: Scheduler = scheduler if scheduler is not None else AsyncioScheduler()
        self.session_store: KeyValueStore = session_store if session_store is not None else MemoryStore()
        self.persistent_store: KeyValueStore = (
            persistent_store if persistent_store is not None else JsonFileStore(default_state_dir() / STATE_FILE_NAME)
        )
        self.client_environment = client_environment
        self.identity = IdentityStore(self.session_store, self.persistent_store, clock=self.clock)
        self.consent = ConsentStore(self.persistent_store, clock=self.clock)

    @property
    def config(self) -> RuntimeAnalyticsConfig:
        return self._config

    @property
    def config_revision(self) -> int:
        """Incremented on every configure() call."""
        return self._config_revision

    def configure(self, **changes: Any) -> RuntimeAnalyticsConfig:
        """Merge ``changes`` into the current configuration.

        Raises:
            ValueError: On unknown keys or invalid values; the current
                configuration is left untouched.
        """
        self._config = self._config.merged(**changes)
        self._config_revision += 1
        logger.debug("Analytics configuration updated", keys=sorted(changes), revision=self._config_revision)
        return self._config

    @classmethod
    def from_settings(
        cls,
        settings: AnalyticsSettings,
        *,
        environment: SinkEnvironment | None = None,
        client_environment: ClientEnvironment | None = None,
        storage_dir: Path | None = None,
    ) -> PipelineContext:
        """Build a context whose long-lived scope is a JSON file.

        ``storage_dir`` overrides settings.storage_dir; without either the
        file lives in default_state_dir().
        """
        directory = storage_dir if storage_dir is not None else settings.storage_dir
        persistent = JsonFileStore(directory / STATE_FILE_NAME) if directory is not None else None
        return cls(
            RuntimeAnalyticsConfig.from_settings(settings),
            environment=environment,
            persistent_store=persistent,
            client_environment=client_environment,
        )
