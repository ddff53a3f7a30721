# tests/unit/analytics/test_formatting.py
"""Tests for sink wire formatting."""

from datetime import UTC, datetime

import pytest

from sitepulse.analytics.formatting import (
    build_ingest_payload,
    flatten_properties,
    format_event_for_ingest,
    to_snake_case,
)
from sitepulse.contracts.enums import EventCategory, EventName
from sitepulse.contracts.events import AnalyticsContext, AnalyticsEvent, ConsentState

EVENT_TIME = datetime(2026, 5, 31, 23, 59, 59, tzinfo=UTC)
SENT_AT = datetime(2026, 6, 1, 0, 0, 5, tzinfo=UTC)


def _event(**overrides) -> AnalyticsEvent:
    fields = {
        "event_name": EventName.SPONSOR_CLICK,
        "event_category": EventCategory.SPONSOR,
        "timestamp": EVENT_TIME,
        "session_id": "s-1",
        "anonymous_id": "a-1",
        "properties": {"sponsorId": "sp-9"},
        "context": AnalyticsContext(page_path="/sponsors"),
        "consent": ConsentState(True, False, "2026-05-01T00:00:00.000Z"),
    }
    fields.update(overrides)
    return AnalyticsEvent(**fields)


class TestToSnakeCase:
    @pytest.mark.parametrize(
        ("key", "expected"),
        [("pageTitle", "page_title"), ("already_snake", "already_snake"), ("zoomLevel2", "zoom_level2"), ("a", "a")],
    )
    def test_conversion(self, key: str, expected: str) -> None:
        assert to_snake_case(key) == expected


class TestFlattenProperties:
    def test_primitives_pass_through_and_none_dropped(self) -> None:
        flat = flatten_properties({"a": 1, "b": "x", "c": True, "d": 1.5, "e": None})

        assert flat == {"a": 1, "b": "x", "c": True, "d": 1.5}

    def test_nested_values_json_encoded(self) -> None:
        flat = flatten_properties({"bounds": {"sw": [1, 2], "ne": [3, 4]}, "tags": ["a", "b"]})

        assert flat == {"bounds": '{"ne": [3, 4], "sw": [1, 2]}', "tags": '["a", "b"]'}

    def test_snake_case_option(self) -> None:
        assert flatten_properties({"scrollDepthPercent": 50}, snake_case=True) == {"scroll_depth_percent": 50}


class TestFormatEventForIngest:
    """Ingestion document layout."""

    def test_document(self) -> None:
        formatted = format_event_for_ingest(_event(user_id="u-1"), sent_at=SENT_AT)

        assert formatted == {
            "eventName": "sponsor_click",
            "eventCategory": "sponsor",
            "timestamp": "2026-05-31T23:59:59.000Z",
            "sessionId": "s-1",
            "anonymousId": "a-1",
            "userId": "u-1",
            "properties": {"sponsorId": "sp-9"},
            "context": {"pagePath": "/sponsors"},
            "consent": {
                "hasAnalyticsConsent": True,
                "hasMarketingConsent": False,
                "consentTimestamp": "2026-05-01T00:00:00.000Z",
            },
            "billing": {"isBillable": True, "billableAmount": 100, "billingPeriod": "2026-06", "invoiced": False},
        }

    def test_billing_period_follows_send_time(self) -> None:
        formatted = format_event_for_ingest(_event(), sent_at=SENT_AT)

        assert formatted["billing"]["billingPeriod"] == "2026-06"

    def test_non_billable_has_no_billing(self) -> None:
        formatted = format_event_for_ingest(
            _event(event_name=EventName.MAP_LOADED, event_category=EventCategory.MAP), sent_at=SENT_AT
        )

        assert "billing" not in formatted

    def test_unset_ids_omitted(self) -> None:
        formatted = format_event_for_ingest(_event(), sent_at=SENT_AT)

        for key in ("userId", "contentId", "workflowItemId", "organizationId"):
            assert key not in formatted

    def test_payload_wraps_events(self) -> None:
        payload = build_ingest_payload([_event(), _event(content_id="c-1")], sent_at=SENT_AT)

        assert [e.get("contentId") for e in payload["events"]] == [None, "c-1"]
