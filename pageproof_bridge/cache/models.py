"""
Cache Models
============
Entry and statistics records for the in-memory TTL cache.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict


@dataclass
class CacheEntry:
    """A cached value; ``ttl <= 0`` means the entry never expires."""
    value: Any
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return self.ttl > 0 and now - self.created_at > self.ttl

    def remaining(self, now: float) -> float:
        return max(0.0, self.ttl - (now - self.created_at))


@dataclass
class CacheStats:
    """Point-in-time cache statistics."""
    hits: int
    misses: int
    key_count: int
    approx_memory_bytes: int
    evictions: int = 0
    expired: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["hit_rate"] = round(self.hit_rate, 4)
        return data
