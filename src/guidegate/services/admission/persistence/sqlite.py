"""SQLite persistence helpers for the guidegate binding store."""
from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Final

__all__ = ["SQLitePersistence"]


class SQLitePersistence:
    """Lightweight wrapper that initialises the key/value schema."""

    _SCHEMA: Final[str] = """
    PRAGMA journal_mode=WAL;

    CREATE TABLE IF NOT EXISTS kv_records (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """

    def __init__(self, db_path: str | Path) -> None:
        self._path = Path(db_path)
        if not self._path.parent.exists():
            self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self._path, isolation_level=None, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    @property
    def lock(self) -> threading.Lock:
        """Guards the shared connection; sqlite3 connections are not thread-safe."""
        return self._lock

    def close(self) -> None:
        self._conn.close()

    def _ensure_schema(self) -> None:
        self._conn.executescript(self._SCHEMA)
