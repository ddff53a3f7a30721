# tests/unit/core/test_settings.py
"""Tests for settings loading and the sink environment view."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from sitepulse.core.config import AnalyticsSettings, SinkEnvironment, SinkSettings, load_settings


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestAnalyticsSettings:
    def test_defaults(self) -> None:
        settings = AnalyticsSettings()

        assert settings.enabled is True
        assert settings.consent_required is True
        assert settings.batch_size == 10
        assert settings.flush_interval_ms == 5000
        assert settings.ingest_endpoint == "/api/analytics/events"
        assert settings.sinks == {}

    @pytest.mark.parametrize("field", ["batch_size", "flush_interval_ms"])
    def test_non_positive_rejected(self, field: str) -> None:
        with pytest.raises(ValidationError):
            AnalyticsSettings(**{field: 0})

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AnalyticsSettings(unknown_flag=True)

    def test_frozen(self) -> None:
        settings = AnalyticsSettings()

        with pytest.raises(ValidationError):
            settings.batch_size = 3  # type: ignore[misc]

    def test_sink_settings_reject_unknown_keys(self) -> None:
        with pytest.raises(ValidationError):
            SinkSettings(enabled=True, colour="blue")


class TestLoadSettings:
    """YAML loading with SITEPULSE_* overrides."""

    def test_loads_yaml(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            "enabled: true\n"
            "consent_required: false\n"
            "batch_size: 20\n"
            "sinks:\n"
            "  console:\n"
            "    enabled: true\n"
            "    options:\n"
            "      format: pretty\n",
        )

        settings = load_settings(path)

        assert settings.consent_required is False
        assert settings.batch_size == 20
        assert settings.sinks["console"].enabled is True
        assert settings.sinks["console"].options == {"format": "pretty"}

    def test_environment_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = _write(tmp_path, "batch_size: 20\ndebug: false\n")
        monkeypatch.setenv("SITEPULSE_BATCH_SIZE", "25")
        monkeypatch.setenv("SITEPULSE_DEBUG", "true")

        settings = load_settings(path)

        assert settings.batch_size == 25
        assert settings.debug is True

    def test_sink_credentials_not_forwarded(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = _write(tmp_path, "enabled: true\n")
        monkeypatch.setenv("SITEPULSE_MIXPANEL_TOKEN", "secret-token")

        settings = load_settings(path)

        assert settings.enabled is True

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_settings(tmp_path / "absent.yaml")

    def test_invalid_value(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "batch_size: 0\n")

        with pytest.raises(ValidationError):
            load_settings(path)


class TestSinkEnvironment:
    """Deployment-time sink switches."""

    def test_empty_environment(self) -> None:
        env = SinkEnvironment({})

        assert env.ga_measurement_id() is None
        assert env.mixpanel_token() is None
        assert env.console_output() is None
        assert env.ingest_disabled() is False
        assert env.server_analytics_disabled() is False
        assert env.is_production() is False

    def test_values_read(self) -> None:
        env = SinkEnvironment(
            {
                "SITEPULSE_GA_MEASUREMENT_ID": "G-TEST",
                "SITEPULSE_GA_API_SECRET": "s3cret",
                "SITEPULSE_MIXPANEL_TOKEN": " tok ",
                "SITEPULSE_CONSOLE_OUTPUT": "stderr",
                "SITEPULSE_DISABLE_INGEST": "true",
                "SITEPULSE_INGEST_ENDPOINT": "https://collect.example/events",
                "SITEPULSE_DISABLE_SERVER_ANALYTICS": "true",
                "SITEPULSE_ENV": "production",
            }
        )

        assert env.ga_measurement_id() == "G-TEST"
        assert env.ga_api_secret() == "s3cret"
        assert env.mixpanel_token() == "tok"
        assert env.console_output() == "stderr"
        assert env.ingest_disabled() is True
        assert env.ingest_endpoint() == "https://collect.example/events"
        assert env.server_analytics_disabled() is True
        assert env.is_production() is True

    @pytest.mark.parametrize("value", ["", "   ", "false", "1", "TRUE"])
    def test_disable_flag_requires_literal_true(self, value: str) -> None:
        assert SinkEnvironment({"SITEPULSE_DISABLE_INGEST": value}).ingest_disabled() is False

    def test_reads_live_mapping(self) -> None:
        environ: dict[str, str] = {}
        env = SinkEnvironment(environ)

        environ["SITEPULSE_MIXPANEL_TOKEN"] = "late"

        assert env.mixpanel_token() == "late"
