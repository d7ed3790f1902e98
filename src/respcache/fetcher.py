"""Fetcher contract and its three result variants."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union


@dataclass(frozen=True)
class FreshPayload:
    """Origin returned a new body."""

    payload: bytes
    validator: Optional[str] = None


@dataclass(frozen=True)
class NotModified:
    """Origin confirmed the stored body is still current."""


@dataclass(frozen=True)
class Failure:
    """Origin could not be reached or answered with an error."""

    reason: str
    status_code: Optional[int] = None


FetchResult = Union[FreshPayload, NotModified, Failure]


class Fetcher(ABC):
    """Retrieves the current representation of a key from the origin.

    Implementations enforce their own timeout and report it as ``Failure``.
    """

    @abstractmethod
    async def invoke(self, key: str, validator: Optional[str] = None) -> FetchResult:
        """Fetch ``key``, conditionally when ``validator`` is given."""

    async def aclose(self) -> None:
        """Release transport resources."""


class CallableFetcher(Fetcher):
    """Adapts a plain ``async def fn(key, validator)`` into a Fetcher."""

    def __init__(self, fn: Callable[[str, Optional[str]], Awaitable[FetchResult]]) -> None:
        self.fn = fn

    async def invoke(self, key: str, validator: Optional[str] = None) -> FetchResult:
        return await self.fn(key, validator)


def as_fetcher(candidate: Union[Fetcher, Callable[[str, Optional[str]], Awaitable[FetchResult]]]) -> Fetcher:
    if isinstance(candidate, Fetcher):
        return candidate
    if callable(candidate):
        return CallableFetcher(candidate)
    raise TypeError(f"Not a fetcher: {candidate!r}")
