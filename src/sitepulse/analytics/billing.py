# src/sitepulse/analytics/billing.py
"""Per-event billing attribution for sponsor events.

Amounts are in the smallest currency unit. Only sponsor-category events
with a positive rate carry billing information.
"""

from collections.abc import Mapping
from datetime import UTC, datetime
from types import MappingProxyType

from sitepulse.contracts.enums import EventCategory, EventName
from sitepulse.contracts.events import BillingInfo

BILLING_RATES: Mapping[str, int] = MappingProxyType(
    {
        EventName.SPONSOR_IMPRESSION.value: 10,
        EventName.SPONSOR_CLICK.value: 100,
        EventName.SPONSOR_LEAD_SUBMIT.value: 5000,
    }
)


def calculate_billing_amount(event_name: str) -> int:
    return BILLING_RATES.get(str(event_name), 0)


def billing_period(sent_at: datetime) -> str:
    """Calendar month (UTC) as ``YYYY-MM``."""
    return sent_at.astimezone(UTC).strftime("%Y-%m")


def billing_for(category: EventCategory, event_name: str, sent_at: datetime) -> BillingInfo | None:
    """Billing attribution, or None when the event is not billable."""
    if category is not EventCategory.SPONSOR:
        return None
    amount = calculate_billing_amount(event_name)
    if amount <= 0:
        return None
    return BillingInfo(is_billable=True, billable_amount=amount, billing_period=billing_period(sent_at))
