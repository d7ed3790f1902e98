"""Abstract cache tier contract shared by the memory and persistent tiers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from .entry import CacheEntry


class CacheTier(ABC):
    """Key/entry storage with no opinion on freshness.

    Callers evaluate TTL themselves; a tier returns whatever it holds.
    """

    name: str = "tier"

    async def open(self) -> None:
        """Prepare the tier for use."""

    async def close(self) -> None:
        """Release resources held by the tier."""

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for ``key`` or None."""

    @abstractmethod
    async def put(self, key: str, entry: CacheEntry) -> None:
        """Replace the entry for ``key``."""

    @abstractmethod
    async def remove(self, key: str) -> bool:
        """Delete ``key``; returns False when nothing was stored."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry."""

    @abstractmethod
    def keys(self) -> List[str]:
        """Keys currently held, least recently used first."""

    def __len__(self) -> int:
        return len(self.keys())

    async def remove_prefix(self, prefix: str) -> List[str]:
        """Remove every key starting with ``prefix`` and return them."""
        removed: List[str] = []
        for key in [k for k in self.keys() if k.startswith(prefix)]:
            if await self.remove(key):
                removed.append(key)
        return removed
