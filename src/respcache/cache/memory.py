"""In-process LRU tier."""

from __future__ import annotations

from collections import OrderedDict
from typing import List, Optional

from ..utils.logger import get_logger
from .entry import CacheEntry
from .tier import CacheTier

logger = get_logger(__name__)


class MemoryTier(CacheTier):
    """Bounded in-memory tier, evicting the least recently used entry when full."""

    name = "memory"

    def __init__(self, max_entries: int = 512) -> None:
        self.max_entries = max(1, int(max_entries))
        self._store: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.evictions = 0

    async def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._store.get(key)
        if entry is not None:
            self._store.move_to_end(key)
        return entry

    async def put(self, key: str, entry: CacheEntry) -> None:
        if key in self._store:
            self._store.pop(key)
        while len(self._store) >= self.max_entries:
            evicted, _ = self._store.popitem(last=False)
            self.evictions += 1
            logger.debug("memory_evict", key=evicted)
        self._store[key] = entry

    async def remove(self, key: str) -> bool:
        return self._store.pop(key, None) is not None

    async def clear(self) -> None:
        self._store.clear()

    def keys(self) -> List[str]:
        return list(self._store.keys())
