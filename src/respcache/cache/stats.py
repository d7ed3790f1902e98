"""Counters describing cache behaviour."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    fetches: int = 0
    coalesced: int = 0
    revalidations: int = 0
    fallbacks: int = 0
    fetch_failures: int = 0
    store_errors: int = 0
    invalidations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def to_dict(self) -> Dict[str, float]:
        data: Dict[str, float] = dict(asdict(self))
        data["hit_rate"] = self.hit_rate
        return data

    def reset(self) -> None:
        for name in asdict(self):
            setattr(self, name, 0)
