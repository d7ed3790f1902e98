"""Tier adapter over a ``PersistentStore`` with bounded LRU eviction."""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from typing import List, Optional

from ..errors import StoreError
from ..store.base import PersistentStore, StoredRecord
from ..utils.logger import get_logger
from .entry import CacheEntry
from .locks import KeyedLock
from .tier import CacheTier

logger = get_logger(__name__)


class PersistentTier(CacheTier):
    """
    Durable tier.

    Store I/O runs in a worker thread. Writes and removals for the same key
    are serialized through a keyed lock; other keys proceed independently.
    The tier keeps its own recency index (seeded from stored timestamps on
    ``open``) and evicts least recently used keys once ``max_entries`` or
    ``max_bytes`` is exceeded. A limit of 0 or None disables that bound.
    """

    name = "persistent"

    def __init__(
        self,
        store: PersistentStore,
        max_entries: Optional[int] = 1000,
        max_bytes: Optional[int] = 50 * 1024 * 1024,
    ) -> None:
        self.store = store
        self.max_entries = max_entries or None
        self.max_bytes = max_bytes or None
        self._index: "OrderedDict[str, int]" = OrderedDict()
        self._locks = KeyedLock()
        self.used_bytes = 0
        self.evictions = 0

    async def open(self) -> None:
        await asyncio.to_thread(self.store.open)
        rows = await asyncio.to_thread(self.store.describe)
        self._index.clear()
        self.used_bytes = 0
        for key, size, _stored_at in sorted(rows, key=lambda row: row[2]):
            self._index[key] = size
            self.used_bytes += size
        await self._enforce_bounds(keep=None)

    async def close(self) -> None:
        await asyncio.to_thread(self.store.close)

    async def get(self, key: str) -> Optional[CacheEntry]:
        record = await asyncio.to_thread(self.store.read, key)
        if record is None:
            self._forget(key)
            return None
        self._track(key, record.size)
        return CacheEntry(
            key=record.key,
            payload=record.payload,
            stored_at=record.stored_at,
            ttl=record.ttl,
            validator=record.validator,
        )

    async def put(self, key: str, entry: CacheEntry) -> None:
        record = StoredRecord(
            key=key,
            payload=entry.payload,
            stored_at=entry.stored_at,
            ttl=entry.ttl,
            validator=entry.validator,
        )
        async with self._locks.hold(key):
            await asyncio.to_thread(self.store.write, record)
            self._track(key, record.size)
        await self._enforce_bounds(keep=key)

    async def remove(self, key: str) -> bool:
        async with self._locks.hold(key):
            removed = await asyncio.to_thread(self.store.delete, key)
            self._forget(key)
        return removed

    async def clear(self) -> None:
        await asyncio.to_thread(self.store.clear)
        self._index.clear()
        self.used_bytes = 0

    def keys(self) -> List[str]:
        return list(self._index.keys())

    # ------------------------------------------------------------------ #
    # Recency bookkeeping
    # ------------------------------------------------------------------ #
    def _track(self, key: str, size: int) -> None:
        previous = self._index.pop(key, None)
        if previous is not None:
            self.used_bytes -= previous
        self._index[key] = size
        self.used_bytes += size

    def _forget(self, key: str) -> None:
        previous = self._index.pop(key, None)
        if previous is not None:
            self.used_bytes -= previous

    def _over_bounds(self) -> bool:
        if self.max_entries is not None and len(self._index) > self.max_entries:
            return True
        return self.max_bytes is not None and self.used_bytes > self.max_bytes

    async def _enforce_bounds(self, keep: Optional[str]) -> None:
        while self._over_bounds():
            victim = next((k for k in self._index if k != keep), None)
            if victim is None:
                break
            try:
                await self.remove(victim)
            except StoreError as exc:
                logger.error("persistent_evict_failed", key=victim, error=str(exc))
                self._forget(victim)
                continue
            self.evictions += 1
            logger.debug("persistent_evict", key=victim, used_bytes=self.used_bytes)
