"""Byte-oriented persistent store contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class StoredRecord:
    key: str
    payload: bytes
    stored_at: float
    ttl: float
    validator: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.payload)


class PersistentStore(ABC):
    """Durable key/value storage supplied by the host environment.

    Implementations are synchronous and may be called from worker threads.
    Every failure must surface as ``StoreError``; a missing key is the only
    case that returns None.
    """

    def open(self) -> None:
        """Create directories, tables or handles."""

    def close(self) -> None:
        """Flush and release handles."""

    @abstractmethod
    def read(self, key: str) -> Optional[StoredRecord]:
        """Return the stored record or None when the key is absent."""

    @abstractmethod
    def write(self, record: StoredRecord) -> None:
        """Replace the record for ``record.key`` as a single unit."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove ``key``; False when absent."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every record."""

    @abstractmethod
    def describe(self) -> List[Tuple[str, int, float]]:
        """List ``(key, size, stored_at)`` for every record."""
