# src/sitepulse/contracts/__init__.py
"""Shared data contracts: enums, event records and runtime configuration.

This package is a leaf: it imports nothing from ``sitepulse.core`` or
``sitepulse.analytics`` at module level.
"""

from sitepulse.contracts.config import RuntimeAnalyticsConfig
from sitepulse.contracts.enums import DeviceType, EventCategory, EventName, LifecycleSignal
from sitepulse.contracts.events import (
    AnalyticsContext,
    AnalyticsEvent,
    BillingInfo,
    ConsentState,
    isoformat_utc,
)

__all__ = [
    "AnalyticsContext",
    "AnalyticsEvent",
    "BillingInfo",
    "ConsentState",
    "DeviceType",
    "EventCategory",
    "EventName",
    "LifecycleSignal",
    "RuntimeAnalyticsConfig",
    "isoformat_utc",
]
