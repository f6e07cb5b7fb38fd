"""
cache.py
--------
TTL key/value caches used for job status and the execution lock.

MemoryCache lives in one process and takes an injectable clock, which is
what the tests use. SqliteCache keeps the same entries in a sqlite file so
the CLI, the scheduler and any manual trigger running in separate processes
see one another's status and lock.

put() is last-writer-wins. add() only writes when the key is absent or
expired, and is the one primitive the execution lock relies on.
"""

import json
import sqlite3
import threading
import time
from typing import Any, Callable, Optional

from logger import get_logger

log = get_logger(__name__)


class MemoryCache:

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.time
        self._data: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str):
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            del self._data[key]
            return None
        return entry

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._live(key)
            return entry[0] if entry else default

    def put(self, key: str, value: Any, ttl_seconds: float) -> None:
        with self._lock:
            self._data[key] = (value, self._clock() + ttl_seconds)

    def add(self, key: str, value: Any, ttl_seconds: float) -> bool:
        with self._lock:
            if self._live(key) is not None:
                return False
            self._data[key] = (value, self._clock() + ttl_seconds)
            return True

    def forget(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None


_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS cache (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,          -- JSON
    expires_at  REAL NOT NULL           -- unix seconds
);
"""


class SqliteCache:

    def __init__(self, db_path: str, clock: Optional[Callable[[], float]] = None):
        self.db_path = db_path
        self._clock = clock or time.time
        conn = self._get_conn()
        conn.close()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30, isolation_level=None)
        conn.execute(_CREATE_TABLE)
        return conn

    def get(self, key: str, default: Any = None) -> Any:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT value FROM cache WHERE key = ? AND expires_at > ?",
                (key, self._clock()),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return default
        return json.loads(row[0])

    def put(self, key: str, value: Any, ttl_seconds: float) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT OR REPLACE INTO cache (key, value, expires_at) VALUES (?, ?, ?)",
                (key, json.dumps(value, default=str), self._clock() + ttl_seconds),
            )
        finally:
            conn.close()

    def add(self, key: str, value: Any, ttl_seconds: float) -> bool:
        now = self._clock()
        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute("DELETE FROM cache WHERE key = ? AND expires_at <= ?", (key, now))
            cur = conn.execute(
                "INSERT OR IGNORE INTO cache (key, value, expires_at) VALUES (?, ?, ?)",
                (key, json.dumps(value, default=str), now + ttl_seconds),
            )
            conn.execute("COMMIT")
            added = cur.rowcount == 1
        except sqlite3.Error:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()
        log.debug("add(%s) -> %s", key, added)
        return added

    def forget(self, key: str) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM cache WHERE key = ?", (key,))
            return cur.rowcount > 0
        finally:
            conn.close()
