"""Periodic revalidation of a fixed key set."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set

from .cache.manager import FetcherLike, ResponseCache
from .errors import CacheError
from .utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class RefreshReport:
    refreshed: List[str] = field(default_factory=list)
    degraded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class BackgroundRefresher:
    """
    Cancellable task that revalidates ``keys`` every ``interval`` seconds.

    Each tick bypasses freshness but still revalidates conditionally. A key
    whose refresh (or any fetch through the cache) is still running is
    skipped for that tick instead of being queued again.
    """

    def __init__(
        self,
        cache: ResponseCache,
        keys: Iterable[str] = (),
        interval: float = 60.0,
        fetcher: Optional[FetcherLike] = None,
        run_immediately: bool = True,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.cache = cache
        self.keys: List[str] = list(dict.fromkeys(keys))
        self.interval = interval
        self.fetcher = fetcher
        self.run_immediately = run_immediately
        self.ticks = 0
        self._active: Set[str] = set()
        self._task: Optional["asyncio.Task[None]"] = None

    def add_key(self, key: str) -> None:
        if key not in self.keys:
            self.keys.append(key)

    def remove_key(self, key: str) -> None:
        if key in self.keys:
            self.keys.remove(key)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("refresher_started", keys=len(self.keys), interval=self.interval)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to unwind."""
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("refresher_stopped", ticks=self.ticks)

    async def tick(self) -> RefreshReport:
        """Run one refresh pass over every key."""
        report = RefreshReport()
        due: List[str] = []
        for key in list(self.keys):
            if key in self._active or self.cache.is_inflight(key):
                report.skipped.append(key)
            else:
                due.append(key)

        outcomes = await asyncio.gather(*(self._refresh_one(key) for key in due))
        for key, outcome in zip(due, outcomes):
            getattr(report, outcome).append(key)

        self.ticks += 1
        logger.debug(
            "refresher_tick",
            refreshed=len(report.refreshed),
            degraded=len(report.degraded),
            failed=len(report.failed),
            skipped=len(report.skipped),
        )
        return report

    async def _refresh_one(self, key: str) -> str:
        self._active.add(key)
        try:
            result = await self.cache.refresh(key, fetcher=self.fetcher)
        except CacheError as exc:
            logger.warning("refresh_failed", key=key, error=str(exc))
            return "failed"
        except Exception:
            logger.exception("refresh_crashed", key=key)
            return "failed"
        finally:
            self._active.discard(key)
        return "degraded" if result.is_degraded else "refreshed"

    async def _run(self) -> None:
        if not self.run_immediately:
            await asyncio.sleep(self.interval)
        while True:
            try:
                await self.tick()
            except Exception:
                logger.exception("refresher_tick_crashed")
            await asyncio.sleep(self.interval)
