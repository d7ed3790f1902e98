"""SQLite-backed store."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from ..errors import StoreError
from .base import PersistentStore, StoredRecord

SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_entries (
    key TEXT PRIMARY KEY,
    payload BLOB NOT NULL,
    validator TEXT,
    stored_at REAL NOT NULL,
    ttl REAL NOT NULL,
    size INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_stored_at ON cache_entries(stored_at);
"""


class SQLiteStore(PersistentStore):
    """Embedded-database store; each row is replaced whole with INSERT OR REPLACE."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path).expanduser()
        self._lock = threading.RLock()

    @contextmanager
    def _conn(self, operation: str, key: Optional[str] = None) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as exc:
            raise StoreError(operation, key, str(exc)) from exc
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(operation, key, str(exc)) from exc
        finally:
            conn.close()

    def open(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreError("open", reason=str(exc)) from exc
        with self._lock, self._conn("open") as conn:
            conn.executescript(SCHEMA)

    def read(self, key: str) -> Optional[StoredRecord]:
        with self._lock, self._conn("read", key) as conn:
            row = conn.execute(
                "SELECT payload, validator, stored_at, ttl, size FROM cache_entries WHERE key = ?",
                (key,),
            ).fetchone()
        if row is None:
            return None
        payload, validator, stored_at, ttl, size = row
        if payload is None or len(payload) != size:
            raise StoreError("read", key, "payload size mismatch")
        return StoredRecord(key=key, payload=bytes(payload), stored_at=stored_at, ttl=ttl, validator=validator)

    def write(self, record: StoredRecord) -> None:
        with self._lock, self._conn("write", record.key) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO cache_entries (key, payload, validator, stored_at, ttl, size)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (record.key, sqlite3.Binary(record.payload), record.validator, record.stored_at, record.ttl, record.size),
            )

    def delete(self, key: str) -> bool:
        with self._lock, self._conn("delete", key) as conn:
            cursor = conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            return cursor.rowcount > 0

    def clear(self) -> None:
        with self._lock, self._conn("clear") as conn:
            conn.execute("DELETE FROM cache_entries")

    def describe(self) -> List[Tuple[str, int, float]]:
        with self._lock, self._conn("describe") as conn:
            rows = conn.execute("SELECT key, size, stored_at FROM cache_entries ORDER BY stored_at").fetchall()
        return [(key, int(size), float(stored_at)) for key, size, stored_at in rows]
