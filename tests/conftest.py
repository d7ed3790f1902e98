import pytest

from fakes import FakeClock
from respcache.cache.manager import ResponseCache
from respcache.store.memory import MemoryStore


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_cache(clock):
    def _make(fetcher=None, store=None, **kwargs) -> ResponseCache:
        return ResponseCache(persistent=store or MemoryStore(), fetcher=fetcher, clock=clock, **kwargs)

    return _make
