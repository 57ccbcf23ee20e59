"""
Key-value persistence for Classroom Sync.

The credential store and the notification engine persist their state through
a small get/set/remove capability so the backing store can be swapped:

- SQLiteKeyValueStore: durable, one table in a local SQLite file
- MemoryKeyValueStore: in-process dict, used by tests
"""

from __future__ import annotations

import json
import sqlite3
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

from loguru import logger


class KeyValueStore(ABC):
    """String key → string value storage."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""

    @abstractmethod
    def remove(self, key: str) -> bool:
        """Remove a key. Returns True if it existed."""

    def keys(self, prefix: str = "") -> List[str]:
        return []

    def get_json(self, key: str, default: Any = None) -> Any:
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding unreadable value stored under {key!r}")
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value))


class MemoryKeyValueStore(KeyValueStore):
    """Dict-backed store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return [k for k in self._data if k.startswith(prefix)]


class SQLiteKeyValueStore(KeyValueStore):
    """
    SQLite-based persistent store.

    Usage:
        store = SQLiteKeyValueStore(Path("data/classroom_sync.db"))
        store.set("token", "abc")
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self._init_db()

    @contextmanager
    def _get_connection(self):
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
            """)

    def get(self, key: str) -> Optional[str]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
            return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, value, time.time()),
            )

    def remove(self, key: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            return cursor.rowcount > 0

    def keys(self, prefix: str = "") -> List[str]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT key FROM kv_store WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
            return [row["key"] for row in rows]
