# src/sitepulse/contracts/events.py
"""Canonical analytics records.

An AnalyticsEvent is fully built (identity, consent, context) before any
sink sees it, and it is immutable afterwards. Sinks translate it into their
own wire shapes; they never mutate it.

Wire forms use camelCase keys. ``to_wire()`` helpers omit unset fields so
the payload only carries what was actually observed.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from sitepulse.contracts.enums import DeviceType, EventCategory


def isoformat_utc(value: datetime) -> str:
    """Render an aware datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


@dataclass(frozen=True, slots=True)
class ConsentState:
    """Snapshot of the user's consent choices.

    consent_timestamp is None until the user has made a choice.
    """

    has_analytics_consent: bool = False
    has_marketing_consent: bool = False
    consent_timestamp: str | None = None

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {
            "hasAnalyticsConsent": self.has_analytics_consent,
            "hasMarketingConsent": self.has_marketing_consent,
        }
        if self.consent_timestamp is not None:
            wire["consentTimestamp"] = self.consent_timestamp
        return wire

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> ConsentState:
        """Build from a stored record, coercing flags to bool.

        Missing flags read as False; a non-string timestamp is discarded.
        """
        timestamp = data.get("consentTimestamp")
        return cls(
            has_analytics_consent=bool(data.get("hasAnalyticsConsent")),
            has_marketing_consent=bool(data.get("hasMarketingConsent")),
            consent_timestamp=timestamp if isinstance(timestamp, str) else None,
        )


@dataclass(frozen=True, slots=True)
class AnalyticsContext:
    """Environment snapshot attached to an event.

    Every field is optional. A non-interactive context (server, CLI job)
    produces an empty context unless the caller supplies fields.
    """

    user_agent: str | None = None
    device_type: DeviceType | None = None
    browser: str | None = None
    browser_version: str | None = None
    os: str | None = None
    os_version: str | None = None
    screen_width: int | None = None
    screen_height: int | None = None
    language: str | None = None
    timezone: str | None = None
    ip_hash: str | None = None
    country: str | None = None
    city: str | None = None
    referrer: str | None = None
    page_url: str | None = None
    page_path: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_term: str | None = None
    utm_content: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> AnalyticsContext:
        """Build from a mapping keyed by field name (snake_case or camelCase).

        Raises:
            ValueError: If a key does not name a context field.
        """
        by_wire_name = {_camel(f.name): f.name for f in fields(cls)}
        by_name = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            if key in by_name:
                values[key] = value
            elif key in by_wire_name:
                values[by_wire_name[key]] = value
            else:
                raise ValueError(f"Unknown context field: {key!r}")
        return cls(**values)

    def merged_with(self, existing: AnalyticsContext | Mapping[str, Any] | None) -> AnalyticsContext:
        """Return this context with every field set in ``existing`` taking precedence."""
        if existing is None:
            return self
        if not isinstance(existing, AnalyticsContext):
            existing = AnalyticsContext.from_mapping(existing)
        overrides = {f.name: getattr(existing, f.name) for f in fields(existing) if getattr(existing, f.name) is not None}
        return replace(self, **overrides)

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None:
                wire[_camel(f.name)] = str(value) if isinstance(value, DeviceType) else value
        return wire


@dataclass(frozen=True, slots=True)
class BillingInfo:
    """Billing attribution for a sponsor event.

    Only produced when the event is billable (positive amount).
    """

    is_billable: bool
    billable_amount: int
    billing_period: str
    invoiced: bool = False

    def to_wire(self) -> dict[str, Any]:
        return {
            "isBillable": self.is_billable,
            "billableAmount": self.billable_amount,
            "billingPeriod": self.billing_period,
            "invoiced": self.invoiced,
        }


@dataclass(frozen=True, slots=True)
class AnalyticsEvent:
    """One observed user or system action.

    ``event_name`` is a plain string so that names outside the closed
    EventName enumeration can still flow through (they resolve to the
    system category). ``properties`` is copied into a read-only mapping.
    """

    event_name: str
    event_category: EventCategory
    timestamp: datetime
    session_id: str
    anonymous_id: str
    user_id: str | None = None
    content_id: str | None = None
    workflow_item_id: str | None = None
    organization_id: str | None = None
    properties: Mapping[str, Any] = field(default_factory=dict)
    context: AnalyticsContext = field(default_factory=AnalyticsContext)
    consent: ConsentState = field(default_factory=ConsentState)

    def __post_init__(self) -> None:
        if self.timestamp.tzinfo is None:
            raise ValueError("AnalyticsEvent.timestamp must be timezone-aware")
        object.__setattr__(self, "event_name", str(self.event_name))
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))
