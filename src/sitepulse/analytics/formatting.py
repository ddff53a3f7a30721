# src/sitepulse/analytics/formatting.py
"""Wire formatting shared by the sinks.

Third-party sinks accept flat property bags of primitives; the ingestion
endpoint accepts the structured FormattedEvent document.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from sitepulse.analytics.billing import billing_for
from sitepulse.contracts.events import AnalyticsEvent, isoformat_utc

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def to_snake_case(key: str) -> str:
    """``pageTitle`` -> ``page_title``; already snake_case keys pass through."""
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def flatten_value(value: Any) -> str | int | float | bool:
    """Primitive values pass through; anything else is JSON-stringified."""
    if isinstance(value, str | int | float | bool):
        return value
    return json.dumps(value, default=str, sort_keys=True)


def flatten_properties(properties: Mapping[str, Any], *, snake_case: bool = False) -> dict[str, str | int | float | bool]:
    """Flatten a property bag for sinks that only accept primitives.

    None values are dropped.
    """
    flat: dict[str, str | int | float | bool] = {}
    for key, value in properties.items():
        if value is None:
            continue
        flat[to_snake_case(key) if snake_case else key] = flatten_value(value)
    return flat


def format_event_for_ingest(event: AnalyticsEvent, *, sent_at: datetime) -> dict[str, Any]:
    """Translate an event into the ingestion document.

    Optional identifiers are omitted when unset. Billing is attached only
    for billable sponsor events, dated by ``sent_at``.
    """
    formatted: dict[str, Any] = {
        "eventName": event.event_name,
        "eventCategory": str(event.event_category),
        "timestamp": isoformat_utc(event.timestamp),
        "sessionId": event.session_id,
        "anonymousId": event.anonymous_id,
    }
    optional_ids = (
        ("userId", event.user_id),
        ("contentId", event.content_id),
        ("workflowItemId", event.workflow_item_id),
        ("organizationId", event.organization_id),
    )
    for key, value in optional_ids:
        if value is not None:
            formatted[key] = value
    formatted["properties"] = dict(event.properties)
    formatted["context"] = event.context.to_wire()
    formatted["consent"] = event.consent.to_wire()

    billing = billing_for(event.event_category, event.event_name, sent_at)
    if billing is not None:
        formatted["billing"] = billing.to_wire()
    return formatted


def build_ingest_payload(events: Iterable[AnalyticsEvent], *, sent_at: datetime) -> dict[str, Any]:
    return {"events": [format_event_for_ingest(event, sent_at=sent_at) for event in events]}
