"""
In-Memory Cache
===============
TTL cache with capacity-bounded eviction and async memoization.
"""

from .models import CacheEntry, CacheStats
from .ttl_cache import TTLCache
from .memoize import memoize

__all__ = [
    "CacheEntry",
    "CacheStats",
    "TTLCache",
    "memoize",
]
