"""Cache-aside orchestration over the memory and persistent tiers."""

from __future__ import annotations

import asyncio
import functools
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, List, Mapping, Optional, Tuple, Union

from ..errors import CacheError, FetchError, InvalidationError, StoreError
from ..fetcher import Failure, Fetcher, FetchResult, FreshPayload, NotModified, as_fetcher
from ..store import build_store
from ..store.base import PersistentStore
from ..store.memory import MemoryStore
from ..utils.logger import get_logger
from .entry import CacheEntry
from .memory import MemoryTier
from .persistent import PersistentTier
from .stats import CacheStats

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..config import CacheSettings

logger = get_logger(__name__)

DEFAULT_TTL = 300.0


class CacheStatus(Enum):
    FRESH = "fresh"
    REVALIDATED = "revalidated-unchanged"
    FALLBACK = "degraded-fallback"


@dataclass(frozen=True)
class CacheResult:
    """Payload handed back to callers, tagged with how it was obtained."""

    key: str
    payload: bytes
    status: CacheStatus
    source: str  # "memory", "persistent" or "origin"
    stored_at: float
    error: Optional[str] = None

    @property
    def is_degraded(self) -> bool:
        return self.status is CacheStatus.FALLBACK


FetcherLike = Union[Fetcher, Callable]


class ResponseCache:
    """
    Two-tier response cache with conditional revalidation and stale fallback.

    The instance owns its tiers and must be opened before use, either with
    ``await cache.open()`` or ``async with cache``. At most one fetch per key
    is in flight; concurrent callers for the same key share its result.
    """

    def __init__(
        self,
        persistent: Union[PersistentTier, PersistentStore, None] = None,
        memory: Optional[MemoryTier] = None,
        fetcher: Optional[FetcherLike] = None,
        default_ttl: float = DEFAULT_TTL,
        ttl_rules: Optional[Mapping[str, float]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if persistent is None:
            persistent = MemoryStore()
        if isinstance(persistent, PersistentStore):
            persistent = PersistentTier(persistent)
        self.persistent: PersistentTier = persistent
        self.memory = memory or MemoryTier()
        self.fetcher = as_fetcher(fetcher) if fetcher is not None else None
        self.default_ttl = float(default_ttl)
        self.ttl_rules: Dict[str, float] = {prefix: float(ttl) for prefix, ttl in (ttl_rules or {}).items()}
        self.stats = CacheStats()
        self._clock = clock
        self._inflight: Dict[str, "asyncio.Future[CacheResult]"] = {}
        self._generations: Dict[str, int] = {}
        self._holders: Dict[str, int] = {}
        self._epoch = 0
        self._opened = False

    @classmethod
    def from_settings(
        cls,
        settings: "CacheSettings",
        fetcher: Optional[FetcherLike] = None,
        clock: Callable[[], float] = time.time,
    ) -> "ResponseCache":
        store = build_store(settings.store_backend, settings.store_path)
        return cls(
            persistent=PersistentTier(store, settings.store_max_entries, settings.store_max_bytes),
            memory=MemoryTier(settings.memory_max_entries),
            fetcher=fetcher,
            default_ttl=settings.default_ttl,
            ttl_rules=settings.ttl_rules,
            clock=clock,
        )

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    async def open(self) -> "ResponseCache":
        if self._opened:
            return self
        await self.memory.open()
        await self.persistent.open()
        self._opened = True
        logger.debug("cache_open", persistent_keys=len(self.persistent))
        return self

    async def close(self) -> None:
        if not self._opened:
            return
        pending = list(self._inflight.values())
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self.persistent.close()
        await self.memory.close()
        self._opened = False
        logger.debug("cache_closed", **self.stats.to_dict())

    async def __aenter__(self) -> "ResponseCache":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def is_open(self) -> bool:
        return self._opened

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #
    async def fetch(self, key: str, ttl: Optional[float] = None, fetcher: Optional[FetcherLike] = None) -> CacheResult:
        """Return the payload for ``key``, consulting memory, then disk, then the origin."""
        self._ensure_open()
        ttl = self.resolve_ttl(key, ttl)

        # No suspension between this lookup and ``_join``: a caller either sees
        # the entry a finished fetch left in memory or joins the running one.
        cached = await self.memory.get(key)
        if cached is not None and cached.is_fresh(self._clock(), ttl):
            self.stats.hits += 1
            logger.debug("cache_hit", key=key, tier=self.memory.name)
            return CacheResult(key, cached.payload, CacheStatus.FRESH, self.memory.name, cached.stored_at)
        return await self._join(key, ttl, fetcher, cached, force=False)

    async def refresh(self, key: str, fetcher: Optional[FetcherLike] = None, ttl: Optional[float] = None) -> CacheResult:
        """
        Revalidate ``key`` against the origin regardless of freshness.

        If a fetch for ``key`` is already running, its result is returned
        instead of starting a second one.
        """
        self._ensure_open()
        ttl = self.resolve_ttl(key, ttl)
        cached = await self.memory.get(key)
        return await self._join(key, ttl, fetcher, cached, force=True)

    async def peek(self, key: str) -> Optional[CacheEntry]:
        """Return the newest stored entry for ``key`` without judging freshness."""
        self._ensure_open()
        cached = await self.memory.get(key)
        if cached is not None:
            return cached
        return await self.persistent.get(key)

    def is_inflight(self, key: str) -> bool:
        return key in self._inflight

    def resolve_ttl(self, key: str, ttl: Optional[float] = None) -> float:
        """Explicit ttl, else the longest matching prefix rule, else the default."""
        if ttl is not None:
            return float(ttl)
        matches = [prefix for prefix in self.ttl_rules if key.startswith(prefix)]
        if matches:
            return self.ttl_rules[max(matches, key=len)]
        return self.default_ttl

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #
    async def put(self, key: str, payload: bytes, validator: Optional[str] = None, ttl: Optional[float] = None) -> CacheEntry:
        """Seed both tiers directly, e.g. with the body returned by a mutation."""
        self._ensure_open()
        self._bump(key)
        entry = CacheEntry(key=key, payload=payload, stored_at=self._clock(), ttl=self.resolve_ttl(key, ttl), validator=validator)
        token = self._hold(key)
        try:
            await self._store_entry(entry, token)
        finally:
            self._unhold(key)
        return entry

    async def invalidate(self, key: str) -> None:
        """Drop ``key`` from both tiers so the next fetch goes to the origin."""
        self._ensure_open()
        self._bump(key)
        self._inflight.pop(key, None)

        failed: List[str] = []
        cause: Optional[BaseException] = None
        for tier in (self.memory, self.persistent):
            try:
                await tier.remove(key)
            except StoreError as exc:
                failed.append(tier.name)
                cause = exc
        self.stats.invalidations += 1
        if failed:
            logger.error("invalidate_failed", key=key, tiers=failed, error=str(cause))
            raise InvalidationError(key, failed, cause) from cause
        logger.info("invalidated", key=key)

    async def invalidate_prefix(self, prefix: str) -> List[str]:
        """Invalidate every key starting with ``prefix`` (a collection and its query variants)."""
        self._ensure_open()
        candidates = set(self.memory.keys()) | set(self.persistent.keys()) | set(self._inflight)
        for key in candidates:
            if key.startswith(prefix):
                self._bump(key)
                self._inflight.pop(key, None)

        removed: set = set()
        failed: List[str] = []
        cause: Optional[BaseException] = None
        for tier in (self.memory, self.persistent):
            try:
                removed.update(await tier.remove_prefix(prefix))
            except StoreError as exc:
                failed.append(tier.name)
                cause = exc
        self.stats.invalidations += 1
        if failed:
            logger.error("invalidate_failed", prefix=prefix, tiers=failed, error=str(cause))
            raise InvalidationError(prefix, failed, cause) from cause
        logger.info("invalidated_prefix", prefix=prefix, count=len(removed))
        return sorted(removed)

    async def invalidate_all(self) -> None:
        """Clear both tiers."""
        self._ensure_open()
        self._epoch += 1
        self._generations.clear()
        self._inflight.clear()

        failed: List[str] = []
        cause: Optional[BaseException] = None
        for tier in (self.memory, self.persistent):
            try:
                await tier.clear()
            except StoreError as exc:
                failed.append(tier.name)
                cause = exc
        self.stats.invalidations += 1
        if failed:
            logger.error("invalidate_all_failed", tiers=failed, error=str(cause))
            raise InvalidationError("*", failed, cause) from cause
        logger.info("invalidated_all")

    # ------------------------------------------------------------------ #
    # Fetch coordination
    # ------------------------------------------------------------------ #
    async def _join(
        self,
        key: str,
        ttl: float,
        fetcher: Optional[FetcherLike],
        cached: Optional[CacheEntry],
        force: bool,
    ) -> CacheResult:
        task = self._inflight.get(key)
        if task is None:
            token = self._hold(key)
            task = asyncio.ensure_future(self._load(key, ttl, fetcher, cached, force, token))
            self._inflight[key] = task
            task.add_done_callback(functools.partial(self._release, key))
        else:
            self.stats.coalesced += 1
            logger.debug("fetch_joined", key=key)
        # A caller that gives up must not cancel the shared fetch.
        return await asyncio.shield(task)

    def _release(self, key: str, task: "asyncio.Future[CacheResult]") -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        self._unhold(key)
        if not task.cancelled():
            task.exception()

    async def _load(
        self,
        key: str,
        ttl: float,
        fetcher: Optional[FetcherLike],
        cached: Optional[CacheEntry],
        force: bool,
        token: Tuple[int, int],
    ) -> CacheResult:
        """Shared per-key work: consult the persistent tier, then the origin."""
        persisted = await self._read_persistent(key)
        if self._token(key) != token:
            # Invalidated while reading; nothing read so far may be served.
            cached = persisted = None
        elif not force and persisted is not None and persisted.is_fresh(self._clock(), ttl):
            await self.memory.put(key, persisted)
            self.stats.hits += 1
            logger.debug("cache_hit", key=key, tier=self.persistent.name)
            return CacheResult(key, persisted.payload, CacheStatus.FRESH, self.persistent.name, persisted.stored_at)

        if not force:
            self.stats.misses += 1
            logger.debug("cache_miss", key=key, stale=cached is not None or persisted is not None)
        known = self._pick_known(cached, persisted)
        return await self._revalidate(key, ttl, self._resolve_fetcher(fetcher), known, token)

    async def _revalidate(
        self,
        key: str,
        ttl: float,
        fetcher: Fetcher,
        known: Tuple[Optional[CacheEntry], str],
        token: Tuple[int, int],
    ) -> CacheResult:
        entry, source = known
        validator = entry.validator if entry is not None else None

        self.stats.fetches += 1
        logger.info("fetch_start", key=key, conditional=validator is not None)
        try:
            result: FetchResult = await fetcher.invoke(key, validator)
        except Exception as exc:
            logger.warning("fetcher_raised", key=key, error=repr(exc))
            result = Failure(reason=str(exc) or exc.__class__.__name__)
        now = self._clock()

        if isinstance(result, FreshPayload):
            fresh = CacheEntry(key=key, payload=result.payload, stored_at=now, ttl=ttl, validator=result.validator)
            await self._store_entry(fresh, token)
            logger.info("fetch_fresh", key=key, size=fresh.size)
            return CacheResult(key, fresh.payload, CacheStatus.FRESH, "origin", now)

        if isinstance(result, NotModified):
            if entry is not None:
                refreshed = entry.refreshed(now, ttl)
                await self._store_entry(refreshed, token)
                self.stats.revalidations += 1
                logger.info("fetch_not_modified", key=key)
                return CacheResult(key, refreshed.payload, CacheStatus.REVALIDATED, "origin", now)
            result = Failure(reason="origin reported not modified but nothing is cached")

        self.stats.fetch_failures += 1
        # An entry invalidated during the fetch is no longer a valid fallback.
        if entry is not None and self._token(key) == token:
            self.stats.fallbacks += 1
            logger.warning("fetch_fallback", key=key, reason=result.reason, age=entry.age(now))
            return CacheResult(key, entry.payload, CacheStatus.FALLBACK, source, entry.stored_at, error=result.reason)

        logger.warning("fetch_failed", key=key, reason=result.reason)
        raise FetchError(key, result.reason, result.status_code)

    async def _store_entry(self, entry: CacheEntry, token: Tuple[int, int]) -> None:
        key = entry.key
        if self._token(key) != token:
            logger.info("fetch_discarded", key=key, reason="invalidated during fetch")
            return
        try:
            await self.persistent.put(key, entry)
        except StoreError as exc:
            self._store_failed("write", exc)
        if self._token(key) != token:
            # Invalidated while writing: undo the durable copy too.
            try:
                await self.persistent.remove(key)
            except StoreError as exc:
                self._store_failed("remove", exc)
            return
        await self.memory.put(key, entry)

    async def _read_persistent(self, key: str) -> Optional[CacheEntry]:
        try:
            return await self.persistent.get(key)
        except StoreError as exc:
            self._store_failed("read", exc)
            return None

    def _store_failed(self, operation: str, exc: StoreError) -> None:
        self.stats.store_errors += 1
        logger.error("store_error", operation=operation, key=exc.key, error=str(exc))

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _pick_known(self, cached: Optional[CacheEntry], persisted: Optional[CacheEntry]) -> Tuple[Optional[CacheEntry], str]:
        if cached is not None and (persisted is None or cached.stored_at >= persisted.stored_at):
            return cached, self.memory.name
        if persisted is not None:
            return persisted, self.persistent.name
        return None, ""

    def _resolve_fetcher(self, fetcher: Optional[FetcherLike]) -> Fetcher:
        if fetcher is not None:
            return as_fetcher(fetcher)
        if self.fetcher is None:
            raise CacheError("No fetcher supplied and no default fetcher configured")
        return self.fetcher

    def _token(self, key: str) -> Tuple[int, int]:
        return self._epoch, self._generations.get(key, 0)

    def _bump(self, key: str) -> None:
        # Generations only matter to operations still holding a token.
        if key in self._holders:
            self._generations[key] = self._generations.get(key, 0) + 1

    def _hold(self, key: str) -> Tuple[int, int]:
        self._holders[key] = self._holders.get(key, 0) + 1
        return self._token(key)

    def _unhold(self, key: str) -> None:
        remaining = self._holders.get(key, 0) - 1
        if remaining > 0:
            self._holders[key] = remaining
        else:
            self._holders.pop(key, None)
            self._generations.pop(key, None)

    def _ensure_open(self) -> None:
        if not self._opened:
            raise CacheError("ResponseCache is not open")
