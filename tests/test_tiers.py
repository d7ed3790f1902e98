import asyncio
from pathlib import Path

import pytest

from fakes import FailingStore
from respcache.cache.entry import CacheEntry
from respcache.cache.locks import KeyedLock
from respcache.cache.memory import MemoryTier
from respcache.cache.persistent import PersistentTier
from respcache.errors import StoreError
from respcache.store import FileStore, MemoryStore


def _entry(key: str, payload: bytes = b"x", stored_at: float = 100.0, ttl: float = 60.0) -> CacheEntry:
    return CacheEntry(key=key, payload=payload, stored_at=stored_at, ttl=ttl, validator=f"v-{key}")


def test_entry_freshness_boundaries() -> None:
    entry = _entry("k", stored_at=100.0, ttl=60.0)
    assert entry.is_fresh(159.9)
    assert not entry.is_fresh(160.0)
    assert entry.is_fresh(200.0, ttl=120)
    assert entry.expires_at == 160.0
    refreshed = entry.refreshed(300.0)
    assert (refreshed.payload, refreshed.validator, refreshed.stored_at) == (entry.payload, entry.validator, 300.0)


def test_memory_tier_evicts_least_recently_used() -> None:
    async def scenario():
        tier = MemoryTier(max_entries=2)
        await tier.put("a", _entry("a"))
        await tier.put("b", _entry("b"))
        await tier.get("a")
        await tier.put("c", _entry("c"))
        return tier.keys(), tier.evictions

    keys, evictions = asyncio.run(scenario())
    assert keys == ["a", "c"]
    assert evictions == 1


def test_persistent_tier_round_trip(tmp_path: Path) -> None:
    async def scenario():
        tier = PersistentTier(FileStore(tmp_path))
        await tier.open()
        await tier.put("k", _entry("k", payload=b"\x00payload\xff"))
        return await tier.get("k")

    loaded = asyncio.run(scenario())
    assert loaded == _entry("k", payload=b"\x00payload\xff")


def test_persistent_tier_entry_bound_evicts_lru(tmp_path: Path) -> None:
    async def scenario():
        tier = PersistentTier(FileStore(tmp_path), max_entries=2, max_bytes=None)
        await tier.open()
        await tier.put("a", _entry("a"))
        await tier.put("b", _entry("b"))
        await tier.get("a")
        await tier.put("c", _entry("c"))
        return tier.keys(), await tier.get("b")

    keys, evicted = asyncio.run(scenario())
    assert keys == ["a", "c"]
    assert evicted is None


def test_persistent_tier_byte_bound(tmp_path: Path) -> None:
    async def scenario():
        tier = PersistentTier(MemoryStore(), max_entries=None, max_bytes=10)
        await tier.open()
        await tier.put("a", _entry("a", payload=b"123456"))
        await tier.put("b", _entry("b", payload=b"123456"))
        return tier.keys(), tier.used_bytes, tier.evictions

    keys, used, evictions = asyncio.run(scenario())
    assert keys == ["b"]
    assert used == 6
    assert evictions == 1


def test_persistent_tier_keeps_oversized_newest_entry() -> None:
    async def scenario():
        tier = PersistentTier(MemoryStore(), max_entries=None, max_bytes=4)
        await tier.open()
        await tier.put("big", _entry("big", payload=b"0123456789"))
        return tier.keys()

    assert asyncio.run(scenario()) == ["big"]


def test_persistent_tier_seeds_recency_from_disk(tmp_path: Path) -> None:
    async def scenario():
        first = PersistentTier(FileStore(tmp_path))
        await first.open()
        await first.put("late", _entry("late", stored_at=200.0))
        await first.put("early", _entry("early", stored_at=100.0))
        await first.close()

        reopened = PersistentTier(FileStore(tmp_path), max_entries=1)
        await reopened.open()
        return reopened.keys()

    # Oldest stored_at is evicted first when the reopened tier is over its bound.
    assert asyncio.run(scenario()) == ["late"]


def test_persistent_tier_surfaces_store_errors() -> None:
    store = FailingStore()
    store.fail_reads = True

    async def scenario():
        tier = PersistentTier(store)
        await tier.open()
        await tier.get("k")

    with pytest.raises(StoreError):
        asyncio.run(scenario())


def test_keyed_lock_serializes_same_key_only() -> None:
    order = []

    async def worker(lock: KeyedLock, key: str, label: str, hold: float) -> None:
        async with lock.hold(key):
            order.append(f"{label}-in")
            await asyncio.sleep(hold)
            order.append(f"{label}-out")

    async def scenario():
        lock = KeyedLock()
        await asyncio.gather(
            worker(lock, "k", "first", 0.05),
            worker(lock, "k", "second", 0.0),
            worker(lock, "other", "third", 0.0),
        )
        return len(lock)

    remaining = asyncio.run(scenario())
    assert order.index("first-out") < order.index("second-in")
    assert order.index("third-out") < order.index("first-out")
    assert remaining == 0
