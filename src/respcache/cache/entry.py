"""Cached entry model and expiration rules."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class CacheEntry:
    """A stored response body plus the metadata needed to judge and revalidate it.

    Entries are immutable: tiers swap whole entries, so a reader never sees a
    new validator next to an old payload.
    """

    key: str
    payload: bytes
    stored_at: float
    ttl: float
    validator: Optional[str] = None

    @property
    def expires_at(self) -> float:
        return self.stored_at + self.ttl

    @property
    def size(self) -> int:
        return len(self.payload)

    def age(self, now: float) -> float:
        return max(0.0, now - self.stored_at)

    def is_fresh(self, now: float, ttl: Optional[float] = None) -> bool:
        """Return True while ``now - stored_at`` is below the effective TTL."""
        effective = self.ttl if ttl is None else ttl
        return (now - self.stored_at) < effective

    def refreshed(self, now: float, ttl: Optional[float] = None) -> "CacheEntry":
        """Copy with a new timestamp, keeping payload and validator."""
        return replace(self, stored_at=now, ttl=self.ttl if ttl is None else ttl)
