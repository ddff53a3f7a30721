# tests/unit/analytics/sinks/test_console.py
"""Tests for ConsoleSink."""

import json
from unittest.mock import patch

import pytest

from sitepulse.analytics.context import PipelineContext
from sitepulse.analytics.errors import SinkConfigurationError
from sitepulse.analytics.sinks.console import ConsoleSink
from sitepulse.contracts.enums import EventName
from tests.fixtures.events import make_event


def _configured(context: PipelineContext, **options) -> ConsoleSink:
    sink = ConsoleSink()
    sink.configure(options, context)
    return sink


class TestConfiguration:
    def test_default_format_is_json(self, context: PipelineContext) -> None:
        assert _configured(context)._format == "json"

    def test_invalid_format(self, context: PipelineContext) -> None:
        with pytest.raises(SinkConfigurationError, match="Invalid format 'xml'"):
            _configured(context, format="xml")

    def test_non_string_format(self, context: PipelineContext) -> None:
        with pytest.raises(SinkConfigurationError, match="must be a string"):
            _configured(context, format=3)

    def test_unknown_option(self, context: PipelineContext) -> None:
        with pytest.raises(SinkConfigurationError, match="Unknown options \\['colour'\\]") as exc_info:
            _configured(context, colour="red")

        assert exc_info.value.sink_name == "console"

    def test_used_before_configure(self) -> None:
        with pytest.raises(RuntimeError, match="before configure"):
            ConsoleSink().is_enabled()


class TestEnabled:
    @pytest.mark.parametrize(("value", "expected"), [(None, False), ("stdout", True), ("stderr", True), ("file", False)])
    def test_console_output_switch(self, context: PipelineContext, environ: dict[str, str], value, expected) -> None:
        if value is not None:
            environ["SITEPULSE_CONSOLE_OUTPUT"] = value

        assert _configured(context).is_enabled() is expected


class TestOutput:
    """Line formats and stream selection."""

    @pytest.mark.asyncio
    async def test_json_line(self, context: PipelineContext, environ: dict[str, str], capsys) -> None:
        environ["SITEPULSE_CONSOLE_OUTPUT"] = "stdout"
        sink = _configured(context)

        await sink.track(make_event(EventName.MAP_SEARCH, properties={"searchQuery": "wind", "filters": ["a"]}))

        record = json.loads(capsys.readouterr().out)
        assert record == {
            "event": "map_search",
            "category": "map",
            "timestamp": "2026-01-01T00:00:00.000Z",
            "session_id": "session-1",
            "searchQuery": "wind",
            "filters": '["a"]',
        }

    @pytest.mark.asyncio
    async def test_pretty_line_on_stderr(self, context: PipelineContext, environ: dict[str, str], capsys) -> None:
        environ["SITEPULSE_CONSOLE_OUTPUT"] = "stderr"
        sink = _configured(context, format="pretty")

        await sink.track(make_event(EventName.MAP_ZOOM, properties={"mapZoomLevel": 12}))

        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err == "[2026-01-01T00:00:00.000Z] map/map_zoom mapZoomLevel=12\n"

    @pytest.mark.asyncio
    async def test_pretty_line_without_properties(self, context: PipelineContext, environ: dict[str, str], capsys) -> None:
        environ["SITEPULSE_CONSOLE_OUTPUT"] = "stdout"
        sink = _configured(context, format="pretty")

        await sink.track(make_event(EventName.MAP_LOADED))

        assert capsys.readouterr().out == "[2026-01-01T00:00:00.000Z] map/map_loaded\n"

    @pytest.mark.asyncio
    async def test_write_failure_not_raised(self, context: PipelineContext, environ: dict[str, str]) -> None:
        environ["SITEPULSE_CONSOLE_OUTPUT"] = "stdout"
        sink = _configured(context)

        with patch.object(sink, "_stream", side_effect=OSError("broken pipe")):
            await sink.track(make_event())

    @pytest.mark.asyncio
    async def test_flush(self, context: PipelineContext, environ: dict[str, str]) -> None:
        environ["SITEPULSE_CONSOLE_OUTPUT"] = "stdout"

        await _configured(context).flush()
