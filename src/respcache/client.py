"""API client facade: cached reads, invalidating writes."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Tuple

import httpx

from .cache.manager import CacheResult, ResponseCache
from .errors import MutationError
from .http_fetcher import HttpFetcher
from .keys import cache_key, parent_collection, scope_of
from .mutations import apply_invalidation
from .utils.logger import get_logger

logger = get_logger(__name__)


class ApiClient:
    """Facade over a ResponseCache and an HTTP origin.

    ``get`` goes through the cache. ``create``/``update``/``delete`` hit the
    origin directly and, once they succeed, invalidate the touched resource
    and its parent collection (including every paginated variant) before
    returning.
    """

    def __init__(
        self,
        cache: ResponseCache,
        base_url: str,
        timeout: float = 10.0,
        headers: Optional[Mapping[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.cache = cache
        self.fetcher = HttpFetcher(base_url=base_url, timeout=timeout, headers=headers, transport=transport)

    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None, ttl: Optional[float] = None) -> CacheResult:
        return await self.cache.fetch(cache_key(path, params), ttl=ttl, fetcher=self.fetcher)

    async def create(self, path: str, json: Any = None) -> httpx.Response:
        """POST to a collection; invalidates that collection."""
        keys, prefixes = scope_of(path)
        return await self._mutate("POST", path, json, keys, prefixes)

    async def update(self, path: str, json: Any = None, method: str = "PUT") -> httpx.Response:
        """PUT/PATCH a resource; invalidates it and its collection."""
        keys, prefixes = self._resource_scope(path)
        return await self._mutate(method.upper(), path, json, keys, prefixes)

    async def delete(self, path: str) -> httpx.Response:
        keys, prefixes = self._resource_scope(path)
        return await self._mutate("DELETE", path, None, keys, prefixes)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    @staticmethod
    def _resource_scope(path: str) -> Tuple[List[str], List[str]]:
        keys, prefixes = scope_of(path)
        parent = parent_collection(path)
        if parent:
            parent_keys, parent_prefixes = scope_of(parent)
            keys += parent_keys
            # Sub-resources of the parent other than this one stay cached.
            prefixes += [p for p in parent_prefixes if p.endswith("?")]
        return keys, prefixes

    async def _mutate(
        self,
        method: str,
        path: str,
        body: Any,
        keys: List[str],
        prefixes: List[str],
    ) -> httpx.Response:
        url = self.fetcher.url_for(path)
        async with self.fetcher.client() as client:
            try:
                resp = await client.request(method, url, json=body)
                resp.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise MutationError(method, path, str(exc), exc.response.status_code) from exc
            except httpx.HTTPError as exc:
                raise MutationError(method, path, str(exc)) from exc

        await apply_invalidation(self.cache, keys, prefixes)
        logger.info("mutation_applied", method=method, path=path, invalidated_keys=keys, invalidated_prefixes=prefixes)
        return resp
