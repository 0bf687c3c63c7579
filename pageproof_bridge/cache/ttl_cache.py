"""
TTL Cache
=========
Generic in-memory key/value cache with per-entry expiry, capacity-bounded
eviction and hit/miss accounting. Used to memoize external lookups and
verification results.

Stale entries are removed lazily on read, by a periodic background sweep,
and independently, when the entry count reaches ``max_size``, by evicting
the oldest ~10% (by creation time) before a new entry is inserted. This
bounds memory; it is not strict LRU.

Concurrency: all operations are synchronous and therefore never interleave
on a single event loop. ``increment`` is a plain read-modify-write; callers
that read, await something, then write can lose updates and must serialize
with a ResourceLock when the count is security-critical.
"""

import asyncio
import copy
import json
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import structlog

from .models import CacheEntry, CacheStats

logger = structlog.get_logger(__name__)

DEFAULT_MAX_SIZE = 10000
DEFAULT_TTL_SECONDS = 300.0
DEFAULT_SWEEP_INTERVAL_SECONDS = 300.0
EVICTION_RATIO = 0.1


class TTLCache:
    """
    In-memory TTL cache.
    
    Example:
        cache = TTLCache(max_size=1000, default_ttl=60)
        cache.set("proof-123", details, namespace="proofs")
        details = cache.get("proof-123", namespace="proofs")
    """
    
    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        eviction_ratio: float = EVICTION_RATIO,
        copy_values: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            max_size: Entry count that triggers batch eviction
            default_ttl: TTL in seconds used when ``set`` gets none
            sweep_interval: Seconds between background sweeps
            eviction_ratio: Fraction of ``max_size`` evicted per batch
            copy_values: Deep-copy values on the way in and out
            clock: Monotonic clock in seconds
        """
        if max_size < 1:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self.eviction_ratio = eviction_ratio
        self.copy_values = copy_values
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expired = 0
        self._sweep_task: Optional[asyncio.Task] = None
    
    # =========================================================================
    # Keys
    # =========================================================================
    
    @staticmethod
    def _full_key(key: str, namespace: Optional[str]) -> str:
        return f"{namespace}:{key}" if namespace else key
    
    def _copy(self, value: Any) -> Any:
        return copy.deepcopy(value) if self.copy_values else value
    
    def _live_entry(self, full_key: str) -> Optional[CacheEntry]:
        """Return the entry if fresh; a stale entry is deleted on sight."""
        entry = self._entries.get(full_key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[full_key]
            self._expired += 1
            logger.debug("cache_expired", key=full_key)
            return None
        return entry
    
    def __len__(self) -> int:
        return len(self._entries)
    
    # =========================================================================
    # Core operations
    # =========================================================================
    
    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[float] = None,
        namespace: Optional[str] = None,
    ) -> bool:
        """
        Store a value, timestamped now. Setting an existing key resets its age.
        
        Args:
            key: Cache key
            value: Value to store
            ttl: Seconds until expiry; ``<= 0`` never expires
            namespace: Optional key-space prefix
            
        Returns:
            True if stored, False on internal failure
        """
        full_key = self._full_key(key, namespace)
        try:
            entry_ttl = self.default_ttl if ttl is None else ttl
            stored = self._copy(value)
            self._evict_if_needed()
            # Re-insert so dict order follows creation time
            self._entries.pop(full_key, None)
            self._entries[full_key] = CacheEntry(
                value=stored,
                created_at=self._clock(),
                ttl=entry_ttl,
            )
            logger.debug("cache_set", key=full_key, ttl=entry_ttl)
            return True
        except Exception as e:
            logger.error("cache_set_failed", key=full_key, error=str(e))
            return False
    
    def get(
        self,
        key: str,
        namespace: Optional[str] = None,
        default: Any = None,
    ) -> Any:
        """
        Get a fresh value, or ``default`` when absent or expired.
        
        Hits and misses are counted; an expired entry counts as a miss.
        """
        full_key = self._full_key(key, namespace)
        try:
            entry = self._live_entry(full_key)
        except Exception as e:
            logger.error("cache_get_failed", key=full_key, error=str(e))
            return default
        
        if entry is None:
            self._misses += 1
            logger.debug("cache_miss", key=full_key)
            return default
        
        self._hits += 1
        logger.debug("cache_hit", key=full_key)
        return self._copy(entry.value)
    
    def delete(self, key: str, namespace: Optional[str] = None) -> bool:
        """Delete a key; returns whether it existed."""
        full_key = self._full_key(key, namespace)
        deleted = self._entries.pop(full_key, None) is not None
        logger.debug("cache_delete", key=full_key, deleted=deleted)
        return deleted
    
    def exists(self, key: str, namespace: Optional[str] = None) -> bool:
        """Same freshness check as ``get``, without touching hit/miss counters."""
        return self._live_entry(self._full_key(key, namespace)) is not None
    
    def increment(
        self,
        key: str,
        amount: float = 1,
        namespace: Optional[str] = None,
        ttl: Optional[float] = None,
    ) -> Optional[float]:
        """
        Add ``amount`` to a numeric value (missing counts as 0).
        
        Not atomic across suspension points; see the module docstring.
        
        Returns:
            The new value, or None if the stored value is not numeric
        """
        full_key = self._full_key(key, namespace)
        current = self.get(key, namespace=namespace, default=0)
        if isinstance(current, bool) or not isinstance(current, (int, float)):
            logger.error("cache_increment_failed", key=full_key, error="value is not numeric")
            return None
        
        new_value = current + amount
        if not self.set(key, new_value, ttl=ttl, namespace=namespace):
            return None
        logger.debug("cache_increment", key=full_key, amount=amount, result=new_value)
        return new_value
    
    # =========================================================================
    # Expiry management
    # =========================================================================
    
    def expire(self, key: str, ttl: float, namespace: Optional[str] = None) -> bool:
        """Set a new TTL on a live key and reset its age."""
        full_key = self._full_key(key, namespace)
        entry = self._live_entry(full_key)
        if entry is None:
            return False
        entry.ttl = ttl
        entry.created_at = self._clock()
        logger.debug("cache_expire", key=full_key, ttl=ttl)
        return True
    
    def ttl(self, key: str, namespace: Optional[str] = None) -> int:
        """
        Remaining lifetime in whole seconds.
        
        Returns:
            -2 if the key does not exist, -1 if it never expires
        """
        entry = self._live_entry(self._full_key(key, namespace))
        if entry is None:
            return -2
        if entry.ttl <= 0:
            return -1
        return int(entry.remaining(self._clock()))
    
    # =========================================================================
    # Bulk operations
    # =========================================================================
    
    def mset(
        self,
        values: Mapping[str, Any],
        ttl: Optional[float] = None,
        namespace: Optional[str] = None,
    ) -> bool:
        """Set multiple key-value pairs; False if any single set failed."""
        results = [self.set(k, v, ttl=ttl, namespace=namespace) for k, v in values.items()]
        logger.debug("cache_mset", keys=len(results))
        return all(results)
    
    def mget(self, keys: Iterable[str], namespace: Optional[str] = None) -> List[Any]:
        """Get multiple values; absent keys map to None."""
        return [self.get(k, namespace=namespace) for k in keys]
    
    def clear(self, namespace: Optional[str] = None) -> int:
        """Remove every entry, or only those in ``namespace``; returns the count removed."""
        if namespace is None:
            removed = len(self._entries)
            self._entries.clear()
        else:
            prefix = self._full_key("", namespace)
            doomed = [full_key for full_key in self._entries if full_key.startswith(prefix)]
            for full_key in doomed:
                del self._entries[full_key]
            removed = len(doomed)
        logger.info("cache_cleared", namespace=namespace, removed=removed)
        return removed
    
    # =========================================================================
    # Eviction
    # =========================================================================
    
    def _evict_if_needed(self) -> int:
        if len(self._entries) < self.max_size:
            return 0
        
        to_remove = max(1, int(self.max_size * self.eviction_ratio))
        oldest = sorted(self._entries.items(), key=lambda item: item[1].created_at)[:to_remove]
        for full_key, _ in oldest:
            del self._entries[full_key]
        
        self._evictions += len(oldest)
        logger.debug("cache_eviction_completed", removed=len(oldest))
        return len(oldest)
    
    def sweep(self) -> int:
        """Remove every expired entry; returns the number removed."""
        now = self._clock()
        expired = [k for k, entry in self._entries.items() if entry.is_expired(now)]
        for full_key in expired:
            del self._entries[full_key]
        
        if expired:
            self._expired += len(expired)
            logger.debug("cache_cleanup_completed", cleaned_count=len(expired))
        return len(expired)
    
    # =========================================================================
    # Background sweep lifecycle
    # =========================================================================
    
    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()
    
    def start(self) -> None:
        """Start the periodic sweep task on the running event loop."""
        if self.running:
            return
        self._sweep_task = asyncio.get_running_loop().create_task(
            self._sweep_loop(), name="ttl-cache-sweep"
        )
        logger.info("cache_sweep_started", interval=self.sweep_interval)
    
    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep()
            except Exception as e:
                logger.error("cache_sweep_failed", error=str(e))
    
    async def stop(self, clear: bool = False) -> None:
        """Cancel the sweep task and optionally drop all entries."""
        task, self._sweep_task = self._sweep_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if clear:
            self._entries.clear()
        logger.info("cache_shutdown_complete")
    
    # =========================================================================
    # Stats
    # =========================================================================
    
    def _estimate_memory(self) -> int:
        size = 0
        for full_key, entry in self._entries.items():
            size += len(full_key) * 2
            try:
                size += len(json.dumps(entry.value, default=str)) * 2
            except (TypeError, ValueError):
                size += 64
            size += 24
        return size
    
    def stats(self) -> CacheStats:
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            key_count=len(self._entries),
            approx_memory_bytes=self._estimate_memory(),
            evictions=self._evictions,
            expired=self._expired,
        )
