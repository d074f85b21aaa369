"""Device binding persistence.

The store exposes whole-record ``get``/``put`` only. Every admission is a full
read-modify-write of one UID's roster; there is no compare-and-swap, so two
writers in different processes can still overwrite each other (see
:mod:`guidegate.services.admission.locks` for the in-process mitigation).
"""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable

from guidegate.config import const

from .errors import StoreUnavailableError
from .models import BindingSet
from .persistence.sqlite import SQLitePersistence

__all__ = [
    "DeviceBindingStore",
    "KeyValueBackend",
    "MemoryKeyValue",
    "SQLiteKeyValue",
    "KeyValueBindingStore",
]

_log = logging.getLogger("guidegate.store")


@runtime_checkable
class DeviceBindingStore(Protocol):
    def get(self, uid: str) -> BindingSet:
        ...

    def put(self, uid: str, bindings: BindingSet) -> None:
        ...


class KeyValueBackend(Protocol):
    def get_raw(self, key: str) -> str | None:
        ...

    def put_raw(self, key: str, value: str) -> None:
        ...

    def keys(self, prefix: str) -> list[str]:
        ...

    def close(self) -> None:
        ...


class MemoryKeyValue:
    """Process-local backend used by tests and ``:memory:`` deployments."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get_raw(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def put_raw(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def keys(self, prefix: str) -> list[str]:
        with self._lock:
            return sorted(key for key in self._data if key.startswith(prefix))

    def close(self) -> None:
        return None


class SQLiteKeyValue:
    def __init__(self, db_path: str | Path) -> None:
        try:
            self._persistence = SQLitePersistence(db_path)
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"cannot open binding database {db_path}") from exc
        self._conn = self._persistence.connection

    def get_raw(self, key: str) -> str | None:
        try:
            with self._persistence.lock:
                row = self._conn.execute("SELECT value FROM kv_records WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            raise StoreUnavailableError("binding database read failed") from exc
        return row["value"] if row is not None else None

    def put_raw(self, key: str, value: str) -> None:
        now = datetime.now(tz=timezone.utc).isoformat()
        try:
            with self._persistence.lock:
                self._conn.execute(
                    "INSERT INTO kv_records(key, value, updated_at) VALUES(?, ?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                    (key, value, now),
                )
        except sqlite3.Error as exc:
            raise StoreUnavailableError("binding database write failed") from exc

    def keys(self, prefix: str) -> list[str]:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        try:
            with self._persistence.lock:
                rows = self._conn.execute(
                    "SELECT key FROM kv_records WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                    (escaped + "%",),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailableError("binding database scan failed") from exc
        return [row["key"] for row in rows]

    def close(self) -> None:
        self._persistence.close()


class KeyValueBindingStore:
    """Stores each roster as a JSON array under ``<prefix><uid>``."""

    def __init__(self, backend: KeyValueBackend, *, prefix: str = const.DEVICE_KEY_PREFIX) -> None:
        self._backend = backend
        self._prefix = prefix

    @property
    def backend(self) -> KeyValueBackend:
        return self._backend

    def key_for(self, uid: str) -> str:
        return f"{self._prefix}{uid}"

    def get(self, uid: str) -> BindingSet:
        raw = self._backend.get_raw(self.key_for(uid))
        if raw is None:
            return BindingSet()
        try:
            records = json.loads(raw)
            if not isinstance(records, list):
                raise ValueError("record is not a list")
            return BindingSet.from_records(records)
        except (ValueError, TypeError, OverflowError) as exc:
            _log.error("store: undecodable record", extra={"uid": uid})
            raise StoreUnavailableError(f"binding record for {uid!r} is corrupt") from exc

    def put(self, uid: str, bindings: BindingSet) -> None:
        payload = json.dumps(bindings.as_records(), separators=(",", ":"))
        self._backend.put_raw(self.key_for(uid), payload)

    def uids(self) -> list[str]:
        return [key[len(self._prefix):] for key in self._backend.keys(self._prefix)]

    def close(self) -> None:
        self._backend.close()
