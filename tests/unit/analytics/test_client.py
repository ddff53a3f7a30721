# tests/unit/analytics/test_client.py
"""Tests for AnalyticsClient dispatch.

Tests cover:
- Gating on the master switch and analytics consent
- Canonical event construction (identity, consent, context)
- Active-sink selection (config flag AND sink's own check)
- Per-sink failure isolation and health metrics
- Capability-based fan-out for identify, page, flush and lifecycle
"""

import logging
from collections.abc import Callable
from pathlib import Path
from unittest.mock import patch

import pytest

from sitepulse.analytics.client import PAGE_VIEW_EVENT, AnalyticsClient
from sitepulse.analytics.context import PipelineContext
from sitepulse.contracts.enums import EventCategory, EventName, LifecycleSignal
from sitepulse.contracts.events import AnalyticsContext
from sitepulse.core.clock import MockClock
from sitepulse.core.config import SinkEnvironment
from sitepulse.core.enrichment import ClientEnvironment
from sitepulse.core.scheduling import ManualScheduler
from sitepulse.core.storage import JsonFileStore
from tests.fixtures.sinks import RecordingSink, TrackOnlySink

MakeClient = Callable[..., AnalyticsClient]


class TestGating:
    """Master switch and consent."""

    @pytest.mark.asyncio
    async def test_disabled_drops_everything(self, make_client: MakeClient) -> None:
        sink = RecordingSink()
        client = make_client(sink)
        client.configure(enabled=False)

        await client.track_event(EventName.MAP_LOADED)
        await client.track_page_view("Home")

        assert sink.events == []
        assert sink.pages == []
        assert client.health_metrics["events_skipped_disabled"] == 2

    @pytest.mark.asyncio
    async def test_no_consent_blocks(self, context: PipelineContext) -> None:
        sink = RecordingSink()
        sink.configure({}, context)
        context.configure(sinks={"recording": True})
        client = AnalyticsClient(context, [sink])

        await client.track_event(EventName.MAP_LOADED)

        assert sink.events == []
        assert client.health_metrics["events_blocked_no_consent"] == 1

    @pytest.mark.asyncio
    async def test_rejected_consent_blocks(self, make_client: MakeClient) -> None:
        sink = RecordingSink()
        client = make_client(sink)
        client.context.consent.reject_all_consent()

        await client.track_event(EventName.MAP_LOADED)

        assert sink.events == []

    @pytest.mark.asyncio
    async def test_consent_not_required(self, context: PipelineContext) -> None:
        sink = RecordingSink()
        sink.configure({}, context)
        context.configure(sinks={"recording": True}, consent_required=False)
        client = AnalyticsClient(context, [sink])

        await client.track_event(EventName.MAP_LOADED)

        assert len(sink.events) == 1
        assert sink.events[0].consent.has_analytics_consent is False


class TestEventConstruction:
    @pytest.mark.asyncio
    async def test_canonical_fields(self, make_client: MakeClient, clock: MockClock) -> None:
        sink = RecordingSink()
        client = make_client(sink)

        await client.track_event(
            EventName.SPONSOR_CLICK,
            properties={"sponsorId": "sp-1"},
            user_id="u-1",
            content_id="c-1",
            workflow_item_id="w-1",
            organization_id="o-1",
        )

        (event,) = sink.events
        assert event.event_name == "sponsor_click"
        assert event.event_category is EventCategory.SPONSOR
        assert event.timestamp == clock.now()
        assert event.session_id == client.context.identity.get_session_id()
        assert event.anonymous_id == client.context.identity.get_anonymous_id()
        assert (event.user_id, event.content_id, event.workflow_item_id, event.organization_id) == (
            "u-1",
            "c-1",
            "w-1",
            "o-1",
        )
        assert dict(event.properties) == {"sponsorId": "sp-1"}
        assert event.consent.has_analytics_consent is True

    @pytest.mark.asyncio
    async def test_unknown_name_is_system(self, make_client: MakeClient) -> None:
        sink = RecordingSink()
        client = make_client(sink)

        await client.track_event("newer_client_event")

        assert sink.events[0].event_category is EventCategory.SYSTEM

    @pytest.mark.asyncio
    async def test_non_interactive_context_is_callers(self, make_client: MakeClient) -> None:
        sink = RecordingSink()
        client = make_client(sink)

        await client.track_event(EventName.API_CALL, context={"pagePath": "/jobs"})

        assert sink.events[0].context == AnalyticsContext(page_path="/jobs")

    @pytest.mark.asyncio
    async def test_enrichment_from_client_environment(self, clock: MockClock) -> None:
        context = PipelineContext(
            environment=SinkEnvironment({}),
            clock=clock,
            scheduler=ManualScheduler(),
            client_environment=ClientEnvironment(
                user_agent="Mozilla/5.0 (Windows NT 10.0) Chrome/120.0.0.0 Safari/537.36",
                viewport_width=1280,
                timezone="UTC",
                page_url="https://example.org/map",
            ),
        )
        context.consent.accept_analytics_only()
        sink = RecordingSink()
        sink.configure({}, context)
        context.configure(sinks={"recording": True})
        client = AnalyticsClient(context, [sink])

        await client.track_event(EventName.MAP_LOADED, context={"browser": "Kiosk"})

        enriched = sink.events[0].context
        assert enriched.browser == "Kiosk"
        assert enriched.os == "Windows"
        assert enriched.page_path == "/map"

    @pytest.mark.asyncio
    async def test_enrichment_disabled_keeps_only_callers_fields(self, clock: MockClock) -> None:
        context = PipelineContext(
            environment=SinkEnvironment({}),
            clock=clock,
            scheduler=ManualScheduler(),
            client_environment=ClientEnvironment(user_agent="Mozilla/5.0 Chrome/120.0"),
        )
        context.consent.accept_analytics_only()
        sink = RecordingSink()
        sink.configure({}, context)
        context.configure(sinks={"recording": True}, enrich_context=False)
        client = AnalyticsClient(context, [sink])

        await client.track_event(EventName.MAP_LOADED, context={"city": "York"})

        assert sink.events[0].context == AnalyticsContext(city="York")

    @pytest.mark.asyncio
    async def test_invalid_context_is_logged_not_raised(self, make_client: MakeClient) -> None:
        sink = RecordingSink()
        client = make_client(sink)

        await client.track_event(EventName.MAP_LOADED, context={"notAField": 1})

        assert sink.events == []
        assert client.health_metrics["events_failed_to_build"] == 1


class TestSinkSelection:
    """Config flag AND sink check, evaluated per call."""

    @pytest.mark.asyncio
    async def test_config_flag_off(self, make_client: MakeClient) -> None:
        on, off = RecordingSink("on"), RecordingSink("off")
        client = make_client(on, off)
        client.configure(sinks={"off": False})

        await client.track_event(EventName.MAP_LOADED)

        assert len(on.events) == 1
        assert off.events == []

    @pytest.mark.asyncio
    async def test_sink_check_off(self, make_client: MakeClient) -> None:
        sink = RecordingSink(enabled=False)
        client = make_client(sink)

        await client.track_event(EventName.MAP_LOADED)
        sink.enabled = True
        await client.track_event(EventName.MAP_ZOOM)

        assert [e.event_name for e in sink.events] == ["map_zoom"]

    @pytest.mark.asyncio
    async def test_raising_enabled_check_skips_sink(self, make_client: MakeClient) -> None:
        broken, healthy = RecordingSink("broken", fail_enabled_check=True), RecordingSink("healthy")
        client = make_client(broken, healthy)

        await client.track_event(EventName.MAP_LOADED)

        assert len(healthy.events) == 1
        assert client.health_metrics["sink_failures"] == {"broken": 1}

    def test_get_sink(self, make_client: MakeClient) -> None:
        sink = RecordingSink()
        client = make_client(sink)

        assert client.get_sink("recording") is sink
        assert client.get_sink("absent") is None


class TestIsolation:
    @pytest.mark.asyncio
    async def test_failing_sink_does_not_affect_others(self, make_client: MakeClient) -> None:
        failing, healthy = RecordingSink("failing", fail_track=True), RecordingSink("healthy")
        client = make_client(failing, healthy)

        await client.track_event(EventName.MAP_LOADED)
        await client.track_event(EventName.MAP_ZOOM)

        assert len(healthy.events) == 2
        metrics = client.health_metrics
        assert metrics["sink_failures"] == {"failing": 2}
        assert metrics["events_dispatched"] == 2
        assert metrics["sink_count"] == 2

    @pytest.mark.asyncio
    async def test_no_sinks_is_noop(self, consented_context: PipelineContext) -> None:
        client = AnalyticsClient(consented_context, [])

        await client.track_event(EventName.MAP_LOADED)
        await client.flush()
        client.notify_lifecycle(LifecycleSignal.PAGE_HIDE)

        assert client.health_metrics["events_dispatched"] == 1

    @pytest.mark.asyncio
    async def test_undecodable_state_file_never_reaches_caller(self, tmp_path: Path, clock: MockClock) -> None:
        path = tmp_path / "state.json"
        path.write_bytes(b"\xff\xfe garbage")
        context = PipelineContext(
            environment=SinkEnvironment({}),
            clock=clock,
            scheduler=ManualScheduler(),
            persistent_store=JsonFileStore(path),
        )
        sink = RecordingSink()
        sink.configure({}, context)
        context.configure(sinks={"recording": True})
        client = AnalyticsClient(context, [sink])

        await client.track_event(EventName.MAP_LOADED)

        assert sink.events == []
        assert client.health_metrics["events_blocked_no_consent"] == 1

        context.consent.accept_analytics_only()
        await client.track_event(EventName.MAP_LOADED)

        assert len(sink.events) == 1


class TestIdentify:
    @pytest.mark.asyncio
    async def test_identifiable_sinks_only(self, make_client: MakeClient) -> None:
        recording, track_only = RecordingSink(), TrackOnlySink()
        client = make_client(recording, track_only)

        await client.identify_user("u-42", {"plan": "pro"})

        assert recording.identified == [("u-42", {"plan": "pro"})]

    @pytest.mark.asyncio
    async def test_not_gated_on_consent(self, context: PipelineContext) -> None:
        sink = RecordingSink()
        sink.configure({}, context)
        context.configure(sinks={"recording": True})
        client = AnalyticsClient(context, [sink])

        await client.identify_user("u-42")

        assert sink.identified == [("u-42", {})]

    @pytest.mark.asyncio
    async def test_gated_on_master_switch(self, make_client: MakeClient) -> None:
        sink = RecordingSink()
        client = make_client(sink)
        client.configure(enabled=False)

        await client.identify_user("u-42")

        assert sink.identified == []

    @pytest.mark.asyncio
    async def test_failure_isolated(self, make_client: MakeClient) -> None:
        failing, healthy = RecordingSink("failing", fail_identify=True), RecordingSink("healthy")
        client = make_client(failing, healthy)

        await client.identify_user("u-42")

        assert healthy.identified == [("u-42", {})]
        assert client.health_metrics["sink_failures"] == {"failing": 1}


class TestPageView:
    @pytest.mark.asyncio
    async def test_page_aware_sinks_only(self, make_client: MakeClient) -> None:
        recording, track_only = RecordingSink(), TrackOnlySink()
        client = make_client(recording, track_only)

        await client.track_page_view("Site detail", {"siteId": "s-9"})

        ((name, properties, event),) = recording.pages
        assert name == "Site detail"
        assert properties == {"siteId": "s-9"}
        assert event.event_name == PAGE_VIEW_EVENT
        assert event.event_category is EventCategory.SYSTEM
        assert dict(event.properties) == {"page_name": "Site detail", "siteId": "s-9"}
        assert recording.events == []
        assert track_only.events == []

    @pytest.mark.asyncio
    async def test_blocked_without_consent(self, make_client: MakeClient) -> None:
        sink = RecordingSink()
        client = make_client(sink)
        client.context.consent.clear_consent()

        await client.track_page_view("Home")

        assert sink.pages == []


class TestFlushAndLifecycle:
    @pytest.mark.asyncio
    async def test_flush_active_sinks(self, make_client: MakeClient) -> None:
        active, inactive = RecordingSink("active"), RecordingSink("inactive", enabled=False)
        client = make_client(active, inactive)

        await client.flush()

        assert active.flush_count == 1
        assert inactive.flush_count == 0

    @pytest.mark.asyncio
    async def test_flush_failure_isolated(self, make_client: MakeClient) -> None:
        failing, healthy = RecordingSink("failing", fail_flush=True), RecordingSink("healthy")
        client = make_client(failing, healthy)

        await client.flush()

        assert healthy.flush_count == 1

    def test_lifecycle_reaches_config_disabled_sinks(self, make_client: MakeClient) -> None:
        sink = RecordingSink()
        client = make_client(sink)
        client.configure(sinks={"recording": False})

        client.notify_lifecycle(LifecycleSignal.PAGE_HIDE)

        assert sink.signals == [LifecycleSignal.PAGE_HIDE]

    def test_lifecycle_failure_isolated(self, make_client: MakeClient) -> None:
        failing, healthy = RecordingSink("failing", fail_lifecycle=True), RecordingSink("healthy")
        client = make_client(failing, healthy, TrackOnlySink())

        client.notify_lifecycle(LifecycleSignal.VISIBILITY_HIDDEN)

        assert healthy.signals == [LifecycleSignal.VISIBILITY_HIDDEN]
        assert client.health_metrics["sink_failures"] == {"failing": 1}

    @pytest.mark.asyncio
    async def test_exit_hook_registered_once_and_removed_on_close(self, make_client: MakeClient) -> None:
        sink = RecordingSink()
        client = make_client(sink)

        with patch("sitepulse.analytics.client.atexit") as mock_atexit:
            client.install_exit_hook()
            client.install_exit_hook()
            mock_atexit.register.assert_called_once_with(client.notify_lifecycle, LifecycleSignal.SHUTDOWN)

            await client.aclose()
            mock_atexit.unregister.assert_called_once_with(client.notify_lifecycle)

    @pytest.mark.asyncio
    async def test_aclose_flushes_then_closes(self, make_client: MakeClient) -> None:
        sink = RecordingSink()
        client = make_client(sink)

        await client.aclose()

        assert sink.flush_count == 1
        assert sink.closed is True


class TestConfigure:
    def test_merges(self, make_client: MakeClient) -> None:
        client = make_client(RecordingSink())

        config = client.configure(batch_size=2)

        assert config.batch_size == 2
        assert client.config.batch_size == 2
        assert client.config.sink_enabled("recording") is True

    def test_invalid_change_keeps_previous(self, make_client: MakeClient) -> None:
        client = make_client(RecordingSink())
        before = client.config

        with pytest.raises(ValueError):
            client.configure(batch_size=0)

        assert client.config is before


class TestDiagnostics:
    @pytest.mark.asyncio
    async def test_sink_failure_logged(self, make_client: MakeClient, caplog: pytest.LogCaptureFixture) -> None:
        client = make_client(RecordingSink("failing", fail_track=True))

        with caplog.at_level(logging.WARNING):
            await client.track_event(EventName.MAP_LOADED)

        assert "Analytics sink failed" in caplog.text
        assert "failing" in caplog.text

    @pytest.mark.asyncio
    async def test_debug_traces_blocked_events(self, context: PipelineContext, caplog: pytest.LogCaptureFixture) -> None:
        context.configure(debug=True)
        client = AnalyticsClient(context, [])

        with caplog.at_level(logging.INFO):
            await client.track_event(EventName.MAP_LOADED)

        assert "Event blocked - no consent" in caplog.text
