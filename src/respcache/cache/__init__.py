"""Cache entries, tiers and the response cache orchestrator."""

from .entry import CacheEntry
from .manager import CacheResult, CacheStatus, ResponseCache
from .memory import MemoryTier
from .persistent import PersistentTier
from .stats import CacheStats
from .tier import CacheTier

__all__ = [
    "CacheEntry",
    "CacheResult",
    "CacheStats",
    "CacheStatus",
    "CacheTier",
    "MemoryTier",
    "PersistentTier",
    "ResponseCache",
]
