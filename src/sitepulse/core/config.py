# src/sitepulse/core/config.py
"""
Configuration schema and loading for sitepulse.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.

Sink credentials (measurement ids, tokens) are NOT part of the settings
model. They are read from the environment at call time through
SinkEnvironment so that a deployment can rotate or remove them without
rebuilding the pipeline.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

ENV_PREFIX = "SITEPULSE"


class SinkSettings(BaseModel):
    """Per-sink settings.

    Example YAML:
        sinks:
          console:
            enabled: true
            options:
              format: pretty
    """

    model_config = {"frozen": True, "extra": "forbid"}

    enabled: bool = Field(default=True, description="Config-side enable flag for this sink")
    options: dict[str, Any] = Field(default_factory=dict, description="Sink-specific options passed to configure()")


class AnalyticsSettings(BaseModel):
    """Top-level analytics settings.

    Example YAML:
        enabled: true
        consent_required: true
        batch_size: 20
        flush_interval_ms: 2000
        sinks:
          ga4:
            enabled: true
    """

    model_config = {"frozen": True, "extra": "forbid"}

    enabled: bool = Field(default=True, description="Master tracking switch")
    debug: bool = Field(default=False, description="Trace dropped events to the log")
    consent_required: bool = Field(default=True, description="Require analytics consent before tracking")
    enrich_context: bool = Field(default=True, description="Derive device, browser and UTM context")
    batch_size: int = Field(default=10, gt=0, description="Ingestion queue size that forces a flush")
    flush_interval_ms: int = Field(default=5000, gt=0, description="Delay before a scheduled ingestion flush")
    ingest_endpoint: str = Field(default="/api/analytics/events", min_length=1, description="Fallback ingestion URL")
    storage_dir: Path | None = Field(default=None, description="Directory for long-lived identity and consent state")
    sinks: dict[str, SinkSettings] = Field(default_factory=dict, description="Per-sink settings keyed by sink name")


def load_settings(config_path: Path) -> AnalyticsSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (SITEPULSE_*) - highest priority
    2. Config file (settings.yaml)
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: SITEPULSE_SINKS__GA4__ENABLED for nested keys.
    Only keys declared on AnalyticsSettings are forwarded; sink credentials
    such as SITEPULSE_MIXPANEL_TOKEN share the prefix but are read through
    SinkEnvironment instead.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated AnalyticsSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix=ENV_PREFIX,
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    known_keys = set(AnalyticsSettings.model_fields)
    raw_config = {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k.lower() in known_keys}
    return AnalyticsSettings(**raw_config)


@dataclass(frozen=True)
class SinkEnvironment:
    """Live view of deployment-time sink configuration.

    Every accessor re-reads the underlying mapping, so enabling or
    disabling a sink through the environment takes effect on the next
    event. Tests pass a plain dict instead of os.environ.
    """

    environ: Mapping[str, str] = field(default_factory=lambda: os.environ)

    def _get(self, name: str) -> str | None:
        value = self.environ.get(f"{ENV_PREFIX}_{name}")
        if value is None or value.strip() == "":
            return None
        return value.strip()

    def ga_measurement_id(self) -> str | None:
        return self._get("GA_MEASUREMENT_ID")

    def ga_api_secret(self) -> str | None:
        return self._get("GA_API_SECRET")

    def mixpanel_token(self) -> str | None:
        return self._get("MIXPANEL_TOKEN")

    def console_output(self) -> str | None:
        """Console sink stream ("stdout" or "stderr"); None disables it."""
        return self._get("CONSOLE_OUTPUT")

    def ingest_disabled(self) -> bool:
        return self._get("DISABLE_INGEST") == "true"

    def ingest_endpoint(self) -> str | None:
        return self._get("INGEST_ENDPOINT")

    def server_analytics_disabled(self) -> bool:
        return self._get("DISABLE_SERVER_ANALYTICS") == "true"

    def is_production(self) -> bool:
        return self._get("ENV") == "production"
