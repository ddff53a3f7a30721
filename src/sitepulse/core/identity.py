# src/sitepulse/core/identity.py
"""Session and anonymous identity.

Two identifiers are maintained:
- session id: session scope, rotates after SESSION_TIMEOUT of inactivity
- anonymous id: long-lived scope, created once per installation

Identifiers are opaque strings of the form ``<base36 ms>-<base36 random>``.
The leading component encodes creation time, which get_session_start_time()
decodes.

None of these operations raise. When storage is unavailable, getters hand
out a fresh identifier that is not persisted, so every call in that state
returns a different value.
"""

from __future__ import annotations

import secrets
from datetime import UTC, datetime, timedelta

import structlog

from sitepulse.core.clock import Clock, SystemClock
from sitepulse.core.storage import KeyValueStore, StorageUnavailableError

logger = structlog.get_logger(__name__)

SESSION_TIMEOUT = timedelta(minutes=30)

SESSION_ID_KEY = "ua_session_id"
LAST_ACTIVITY_KEY = "ua_last_activity"
ANONYMOUS_ID_KEY = "ua_anonymous_id"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def _epoch_ms(value: datetime) -> int:
    return (value - _EPOCH) // timedelta(milliseconds=1)


def generate_id(now: datetime) -> str:
    """Create an opaque identifier prefixed with its creation time."""
    return f"{_to_base36(_epoch_ms(now))}-{_to_base36(secrets.randbits(64))}"


def decode_id_timestamp(identifier: str) -> datetime | None:
    """Return the creation time encoded in ``identifier``, or None if malformed."""
    prefix, sep, _ = identifier.partition("-")
    if not sep or not prefix:
        return None
    try:
        return _EPOCH + timedelta(milliseconds=int(prefix, 36))
    except (ValueError, OverflowError):
        return None


class IdentityStore:
    """Issues session and anonymous identifiers.

    Args:
        session_store: Session-scoped storage (session id, last activity).
        persistent_store: Long-lived storage (anonymous id).
        clock: Time source for expiry and id generation.
        timeout: Idle time after which the session id rotates.
    """

    def __init__(
        self,
        session_store: KeyValueStore,
        persistent_store: KeyValueStore,
        *,
        clock: Clock | None = None,
        timeout: timedelta = SESSION_TIMEOUT,
    ) -> None:
        self._session_store = session_store
        self._persistent_store = persistent_store
        self._clock = clock if clock is not None else SystemClock()
        self._timeout = timeout

    def _last_activity(self) -> datetime | None:
        raw = self._session_store.get(LAST_ACTIVITY_KEY)
        if raw is None:
            return None
        try:
            return _EPOCH + timedelta(milliseconds=int(raw))
        except (ValueError, OverflowError):
            return None

    def _stamp_activity(self, now: datetime) -> None:
        self._session_store.set(LAST_ACTIVITY_KEY, str(_epoch_ms(now)))

    def get_session_id(self) -> str:
        """Return the current session id, rotating it after an idle timeout.

        Each call counts as activity. A session idle for exactly the timeout
        is still current; only strictly longer idle periods rotate it.
        """
        now = self._clock.now()
        try:
            session_id = self._session_store.get(SESSION_ID_KEY)
            last_activity = self._last_activity()
            expired = last_activity is None or now - last_activity > self._timeout
            if session_id is None or expired:
                session_id = generate_id(now)
                self._session_store.set(SESSION_ID_KEY, session_id)
                logger.debug("Started analytics session", session_id=session_id)
            self._stamp_activity(now)
            return session_id
        except StorageUnavailableError:
            return generate_id(now)

    def get_anonymous_id(self) -> str:
        """Return the long-lived anonymous id, creating it on first use."""
        now = self._clock.now()
        try:
            anonymous_id = self._persistent_store.get(ANONYMOUS_ID_KEY)
            if anonymous_id is None:
                anonymous_id = generate_id(now)
                self._persistent_store.set(ANONYMOUS_ID_KEY, anonymous_id)
            return anonymous_id
        except StorageUnavailableError:
            return generate_id(now)

    def clear_session(self) -> None:
        try:
            self._session_store.remove(SESSION_ID_KEY)
            self._session_store.remove(LAST_ACTIVITY_KEY)
        except StorageUnavailableError:
            pass

    def clear_anonymous_id(self) -> None:
        try:
            self._persistent_store.remove(ANONYMOUS_ID_KEY)
        except StorageUnavailableError:
            pass

    def touch_session(self) -> None:
        """Record activity without reading or rotating the session id."""
        try:
            self._stamp_activity(self._clock.now())
        except StorageUnavailableError:
            pass

    def is_session_active(self) -> bool:
        """True iff a session id exists and idle time is within the timeout."""
        try:
            if self._session_store.get(SESSION_ID_KEY) is None:
                return False
            last_activity = self._last_activity()
        except StorageUnavailableError:
            return False
        if last_activity is None:
            return False
        return self._clock.now() - last_activity <= self._timeout

    def get_session_start_time(self) -> datetime | None:
        """Creation time of the current session id, if one exists."""
        try:
            session_id = self._session_store.get(SESSION_ID_KEY)
        except StorageUnavailableError:
            return None
        if session_id is None:
            return None
        return decode_id_timestamp(session_id)
