# src/sitepulse/core/consent.py
"""Persisted consent choices.

The record lives in long-lived storage under ``ua_consent`` as a camelCase
JSON object. A missing record means "no choice made" and reads as the
all-false default. A corrupted record reads as the default too; nothing
here raises to the caller.
"""

from __future__ import annotations

import json

import structlog

from sitepulse.contracts.events import ConsentState, isoformat_utc
from sitepulse.core.clock import Clock, SystemClock
from sitepulse.core.storage import KeyValueStore, StorageUnavailableError

logger = structlog.get_logger(__name__)

CONSENT_KEY = "ua_consent"


class ConsentStore:
    """Reads and writes the user's consent state."""

    def __init__(self, store: KeyValueStore, *, clock: Clock | None = None) -> None:
        self._store = store
        self._clock = clock if clock is not None else SystemClock()

    def get_consent_state(self) -> ConsentState:
        try:
            raw = self._store.get(CONSENT_KEY)
        except StorageUnavailableError:
            return ConsentState()
        if raw is None:
            return ConsentState()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("Ignoring corrupted consent record")
            return ConsentState()
        if not isinstance(data, dict):
            return ConsentState()
        return ConsentState.from_wire(data)

    def set_consent_state(self, *, analytics: bool | None = None, marketing: bool | None = None) -> ConsentState:
        """Merge the given flags into the stored state and stamp the time.

        Flags left as None keep their stored value. Returns the new state;
        it is returned even if it could not be persisted.
        """
        current = self.get_consent_state()
        state = ConsentState(
            has_analytics_consent=current.has_analytics_consent if analytics is None else analytics,
            has_marketing_consent=current.has_marketing_consent if marketing is None else marketing,
            consent_timestamp=isoformat_utc(self._clock.now()),
        )
        try:
            self._store.set(CONSENT_KEY, json.dumps(state.to_wire()))
        except StorageUnavailableError:
            logger.debug("Consent state not persisted; storage unavailable")
        return state

    def accept_all_consent(self) -> ConsentState:
        return self.set_consent_state(analytics=True, marketing=True)

    def accept_analytics_only(self) -> ConsentState:
        return self.set_consent_state(analytics=True, marketing=False)

    def reject_all_consent(self) -> ConsentState:
        return self.set_consent_state(analytics=False, marketing=False)

    def has_analytics_consent(self) -> bool:
        return self.get_consent_state().has_analytics_consent

    def has_marketing_consent(self) -> bool:
        return self.get_consent_state().has_marketing_consent

    def has_consent_choice(self) -> bool:
        """True iff a consent record exists, whatever its content."""
        try:
            return self._store.get(CONSENT_KEY) is not None
        except StorageUnavailableError:
            return False

    def clear_consent(self) -> None:
        try:
            self._store.remove(CONSENT_KEY)
        except StorageUnavailableError:
            pass

    def get_consent_timestamp(self) -> str | None:
        return self.get_consent_state().consent_timestamp
