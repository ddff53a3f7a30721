# src/sitepulse/core/storage.py
"""Key-value storage backends for identity and consent state.

Two scopes are used by the pipeline:
- session scope: lives as long as the pipeline instance (MemoryStore)
- long-lived scope: survives restarts (JsonFileStore)

Any backend may be unavailable (read-only home directory, sandboxed
process, private-browsing equivalents). Backends signal that by raising
StorageUnavailableError; the stores built on top of them absorb it.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)


class StorageUnavailableError(OSError):
    """Raised when a storage backend cannot be read or written."""


@runtime_checkable
class KeyValueStore(Protocol):
    """String key-value storage.

    Implementations raise StorageUnavailableError for any backend failure.
    """

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """In-process store; the session scope."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)


class UnavailableStore:
    """Store that is never available. Every operation raises."""

    def get(self, key: str) -> str | None:
        raise StorageUnavailableError(f"storage unavailable (get {key!r})")

    def set(self, key: str, value: str) -> None:
        raise StorageUnavailableError(f"storage unavailable (set {key!r})")

    def remove(self, key: str) -> None:
        raise StorageUnavailableError(f"storage unavailable (remove {key!r})")


class JsonFileStore:
    """Long-lived store persisted as a flat JSON object.

    Writes go to a temporary file in the same directory followed by an
    atomic replace, so a crash never leaves a truncated file. A file whose
    content is not a JSON object of strings is treated as empty.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, str]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except UnicodeDecodeError:
            logger.warning("Discarding unreadable storage file", path=str(self._path))
            return {}
        except OSError as e:
            raise StorageUnavailableError(f"cannot read {self._path}: {e}") from e
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable storage file", path=str(self._path))
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(k, str) and isinstance(v, str)}

    def _write(self, data: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(data, handle, sort_keys=True)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageUnavailableError(f"cannot write {self._path}: {e}") from e

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)
