"""Volatile store for tests and throwaway sessions."""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Tuple

from .base import PersistentStore, StoredRecord


class MemoryStore(PersistentStore):
    """Dictionary-backed store; contents vanish with the process."""

    def __init__(self) -> None:
        self._records: Dict[str, StoredRecord] = {}
        self._lock = threading.Lock()

    def read(self, key: str) -> Optional[StoredRecord]:
        with self._lock:
            return self._records.get(key)

    def write(self, record: StoredRecord) -> None:
        with self._lock:
            self._records[record.key] = record

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._records.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def describe(self) -> List[Tuple[str, int, float]]:
        with self._lock:
            return [(r.key, r.size, r.stored_at) for r in self._records.values()]
