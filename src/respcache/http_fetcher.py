"""HTTP fetcher that maps cache keys onto conditional GET requests."""

from __future__ import annotations

from typing import Dict, Mapping, Optional

import httpx

from .fetcher import Failure, Fetcher, FetchResult, FreshPayload, NotModified
from .utils.logger import get_logger

logger = get_logger(__name__)


class HttpFetcher(Fetcher):
    """Fetcher over httpx.

    Keys are request targets relative to ``base_url`` (``/items?page=2``);
    absolute URLs are used as given. A known validator is sent as
    ``If-None-Match``; 304 maps to NotModified, 2xx to FreshPayload, and any
    transport error, timeout or error status to Failure.
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 10.0,
        headers: Optional[Mapping[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers: Dict[str, str] = {"Accept-Encoding": "gzip", **(headers or {})}
        self.transport = transport

    def url_for(self, key: str) -> str:
        if key.startswith(("http://", "https://")):
            return key
        if not key.startswith("/"):
            key = f"/{key}"
        return f"{self.base_url}{key}"

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, headers=self.headers, transport=self.transport)

    async def invoke(self, key: str, validator: Optional[str] = None) -> FetchResult:
        headers = {"If-None-Match": validator} if validator else {}
        url = self.url_for(key)

        async with self.client() as client:
            try:
                resp = await client.get(url, headers=headers)
            except httpx.TimeoutException as exc:
                logger.warning("http_timeout", url=url, error=str(exc))
                return Failure(reason=f"timeout: {exc}")
            except httpx.HTTPError as exc:
                logger.warning("http_error", url=url, error=str(exc))
                return Failure(reason=f"request failed: {exc}")

        if resp.status_code == 304:
            return NotModified()
        if resp.is_success:
            return FreshPayload(payload=resp.content, validator=resp.headers.get("ETag"))
        return Failure(reason=f"HTTP {resp.status_code}", status_code=resp.status_code)
