"""respcache - client-side response cache with revalidation and offline fallback."""

__version__ = "0.1.0"
__author__ = "respcache Contributors"

from .cache import CacheEntry, CacheResult, CacheStatus, MemoryTier, PersistentTier, ResponseCache
from .client import ApiClient
from .config import CacheSettings, ConfigLoader
from .errors import CacheError, FetchError, InvalidationError, MutationError, StoreError
from .fetcher import Failure, Fetcher, FreshPayload, NotModified
from .http_fetcher import HttpFetcher
from .keys import cache_key
from .mutations import MutationScope, invalidates
from .refresh import BackgroundRefresher

__all__ = [
    "ApiClient",
    "BackgroundRefresher",
    "CacheEntry",
    "CacheError",
    "CacheResult",
    "CacheSettings",
    "CacheStatus",
    "ConfigLoader",
    "Failure",
    "FetchError",
    "Fetcher",
    "FreshPayload",
    "HttpFetcher",
    "InvalidationError",
    "MemoryTier",
    "MutationError",
    "MutationScope",
    "NotModified",
    "PersistentTier",
    "ResponseCache",
    "StoreError",
    "cache_key",
    "invalidates",
]
