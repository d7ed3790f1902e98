"""Test doubles shared across the suite."""

import asyncio
from typing import List, Optional, Tuple

from respcache.errors import StoreError
from respcache.fetcher import Fetcher, FetchResult
from respcache.store.memory import MemoryStore


class FakeClock:
    """Manually advanced clock in epoch seconds."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedFetcher(Fetcher):
    """Returns queued results in order, repeating the last one; records every call."""

    def __init__(self, *results) -> None:
        self.results = list(results)
        self.calls: List[Tuple[str, Optional[str]]] = []
        self.gate: Optional[asyncio.Event] = None

    async def invoke(self, key: str, validator: Optional[str] = None) -> FetchResult:
        self.calls.append((key, validator))
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, BaseException):
            raise result
        return result


class FailingStore(MemoryStore):
    """MemoryStore whose operations can be switched to raise StoreError."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_reads = False
        self.fail_writes = False
        self.fail_deletes = False

    def read(self, key):
        if self.fail_reads:
            raise StoreError("read", key, "disk unavailable")
        return super().read(key)

    def write(self, record):
        if self.fail_writes:
            raise StoreError("write", record.key, "disk full")
        super().write(record)

    def delete(self, key):
        if self.fail_deletes:
            raise StoreError("delete", key, "read-only filesystem")
        return super().delete(key)
