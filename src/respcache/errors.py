"""Exception hierarchy for the response cache."""

from __future__ import annotations

from typing import Optional, Sequence


class CacheError(Exception):
    """Base exception for cache errors."""


class StoreError(CacheError):
    """Raised when the persistent store fails to read, write or decode an entry."""

    def __init__(self, operation: str, key: Optional[str] = None, reason: str = "") -> None:
        self.operation = operation
        self.key = key
        self.reason = reason
        target = f" for {key!r}" if key is not None else ""
        detail = f": {reason}" if reason else ""
        super().__init__(f"Store {operation} failed{target}{detail}")


class FetchError(CacheError):
    """Raised when the origin fetch failed and no cached entry can stand in."""

    def __init__(self, key: str, reason: str, status_code: Optional[int] = None) -> None:
        self.key = key
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Fetch failed for {key!r}: {reason}")


class InvalidationError(CacheError):
    """Raised when an entry could not be removed from every tier."""

    def __init__(self, key: str, failed_tiers: Sequence[str], cause: Optional[BaseException] = None) -> None:
        self.key = key
        self.failed_tiers = list(failed_tiers)
        self.cause = cause
        super().__init__(f"Invalidation of {key!r} failed in tier(s): {', '.join(self.failed_tiers)}")


class MutationError(CacheError):
    """Raised when a mutating request is rejected; the cache is left untouched."""

    def __init__(self, method: str, path: str, reason: str, status_code: Optional[int] = None) -> None:
        self.method = method
        self.path = path
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"{method} {path} failed: {reason}")
