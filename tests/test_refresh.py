import asyncio

import pytest

from fakes import ScriptedFetcher
from respcache.fetcher import Failure, FreshPayload, NotModified
from respcache.refresh import BackgroundRefresher
from respcache.store.memory import MemoryStore


def test_tick_refreshes_fresh_entries_with_validator(make_cache) -> None:
    fetcher = ScriptedFetcher(FreshPayload(b"body", "e1"), NotModified())

    async def scenario():
        async with make_cache(fetcher) as cache:
            await cache.fetch("/items", ttl=3600)
            refresher = BackgroundRefresher(cache, ["/items"], interval=30)
            return await refresher.tick()

    report = asyncio.run(scenario())
    assert report.refreshed == ["/items"]
    # Bypasses freshness but still sends the stored validator.
    assert fetcher.calls == [("/items", None), ("/items", "e1")]


def test_tick_reports_degraded_and_failed_keys(make_cache) -> None:
    fetcher = ScriptedFetcher(FreshPayload(b"body"), Failure("offline"))

    async def scenario():
        async with make_cache(fetcher) as cache:
            await cache.fetch("/cached", ttl=3600)
            refresher = BackgroundRefresher(cache, ["/cached", "/never-fetched"], interval=30)
            return await refresher.tick()

    report = asyncio.run(scenario())
    assert report.degraded == ["/cached"]
    assert report.failed == ["/never-fetched"]


def test_tick_skips_keys_already_in_flight(make_cache) -> None:
    fetcher = ScriptedFetcher(FreshPayload(b"body"))

    async def scenario():
        fetcher.gate = asyncio.Event()
        async with make_cache(fetcher) as cache:
            refresher = BackgroundRefresher(cache, ["/slow"], interval=30)
            first = asyncio.ensure_future(refresher.tick())
            while len(fetcher.calls) < 1:
                await asyncio.sleep(0.005)
            second = await refresher.tick()
            fetcher.gate.set()
            return await first, second

    first, second = asyncio.run(scenario())
    assert first.refreshed == ["/slow"]
    assert second.skipped == ["/slow"]
    assert len(fetcher.calls) == 1


def test_start_and_stop_loop(make_cache) -> None:
    fetcher = ScriptedFetcher(FreshPayload(b"body"))

    async def scenario():
        async with make_cache(fetcher) as cache:
            refresher = BackgroundRefresher(cache, ["/a"], interval=0.01)
            refresher.start()
            assert refresher.running
            while refresher.ticks < 3:
                await asyncio.sleep(0.005)
            await refresher.stop()
            ticks = refresher.ticks
            await asyncio.sleep(0.05)
            return refresher.running, ticks, refresher.ticks

    running, ticks_at_stop, ticks_later = asyncio.run(scenario())
    assert running is False
    assert ticks_at_stop == ticks_later


def test_rejects_non_positive_interval(make_cache) -> None:
    with pytest.raises(ValueError):
        BackgroundRefresher(make_cache(), ["/a"], interval=0)


def test_key_management(make_cache) -> None:
    refresher = BackgroundRefresher(make_cache(), ["/a", "/a"], interval=5)
    refresher.add_key("/b")
    refresher.add_key("/b")
    refresher.remove_key("/a")
    assert refresher.keys == ["/b"]


class BrokenKeyStore(MemoryStore):
    def read(self, key):
        if key == "/broken":
            raise RuntimeError("unexpected decoder crash")
        return super().read(key)


def test_unexpected_error_on_one_key_keeps_other_outcomes(make_cache) -> None:
    fetcher = ScriptedFetcher(FreshPayload(b"body"))

    async def scenario():
        async with make_cache(fetcher, store=BrokenKeyStore()) as cache:
            refresher = BackgroundRefresher(cache, ["/ok", "/broken"], interval=30)
            return await refresher.tick()

    report = asyncio.run(scenario())
    assert report.refreshed == ["/ok"]
    assert report.failed == ["/broken"]
