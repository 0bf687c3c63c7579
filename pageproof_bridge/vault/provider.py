"""
Secret Provider
===============
Resolves a signing secret from the durable store and keeps a single cached
copy with one shared TTL.

On a miss or expiry the store is tried up to ``max_retries`` times with
exponential backoff (``retry_delay * backoff_factor ** (attempt - 1)``).
Values shorter than ``min_length`` count as failed attempts. When the store
is exhausted a statically configured fallback of sufficient length is used
and logged at ERROR, since it bypasses the durable store; otherwise
SecretFetchExhausted is raised.

Callers arriving while a refresh is in flight, within ``retry_delay`` of its
start, share that refresh instead of starting another. A finished refresh is
never shared. A refresh that outlives a ``rotate()`` still answers its own
waiters but does not write its value into the reset cache.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog

from ..errors import InvalidSecret, SecretFetchExhausted
from ..retry import RetryExhausted, retry_with_backoff
from .client import SecretStore
from .models import SecretState

logger = structlog.get_logger(__name__)

MIN_SECRET_LENGTH = 32


class SecretProvider:
    """
    Cached, retrying access to one secret.
    
    Example:
        provider = SecretProvider(store, "hmac-secret-key", fallback_secret=os.environ.get("HMAC_SECRET"))
        secret = await provider.get_secret()
    """
    
    def __init__(
        self,
        store: SecretStore,
        secret_name: str,
        *,
        fallback_secret: Optional[str] = None,
        cache_ttl: float = 60.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        backoff_factor: float = 2.0,
        fetch_timeout: Optional[float] = None,
        min_length: int = MIN_SECRET_LENGTH,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            store: Durable secret store
            secret_name: Name fetched when ``get_secret`` is called without one
            fallback_secret: Static secret used once the store is exhausted
            cache_ttl: Seconds a fetched secret may be reused
            max_retries: Fetch attempts per refresh
            retry_delay: Base backoff delay in seconds; also the sharing window
            backoff_factor: Backoff multiplier
            fetch_timeout: Per-attempt timeout in seconds
            min_length: Minimum accepted secret length
            clock: Monotonic clock in seconds
            sleep: Awaitable sleep (injectable for tests)
        """
        self.store = store
        self.secret_name = secret_name
        self.fallback_secret = fallback_secret
        self.cache_ttl = cache_ttl
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.backoff_factor = backoff_factor
        self.fetch_timeout = fetch_timeout
        self.min_length = min_length
        self._clock = clock
        self._sleep = sleep
        self._state = SecretState()
        self._refresh_task: Optional[asyncio.Task] = None
        self._refresh_name: Optional[str] = None
        self._last_attempt_start = 0.0
        self._generation = 0
    
    @property
    def state(self) -> SecretState:
        """Snapshot of the cached state."""
        return SecretState(**vars(self._state))
    
    def _is_valid(self, value: Optional[str]) -> bool:
        return bool(value) and len(value) >= self.min_length
    
    async def get_secret(self, name: Optional[str] = None) -> str:
        """
        Return the secret, fetching it when the cached copy is missing or stale.
        
        Args:
            name: Secret name; defaults to the provider's configured name. The
                provider holds a single cached value, so asking for another
                name replaces it.
        
        Raises:
            SecretFetchExhausted: If no valid secret could be obtained
        """
        name = name or self.secret_name
        now = self._clock()
        
        if self._state.is_fresh(name, now, self.cache_ttl):
            return self._state.cached_value
        
        task = self._refresh_task
        if (
            task is not None
            and not task.done()
            and self._refresh_name == name
            and now - self._last_attempt_start < self.retry_delay
        ):
            logger.debug("secret_refresh_shared", secret=name)
        else:
            self._last_attempt_start = now
            self._refresh_name = name
            task = asyncio.ensure_future(self._refresh(name, self._generation))
            self._refresh_task = task
        
        return await asyncio.shield(task)
    
    async def _fetch_once(self, name: str) -> str:
        value = await self.store.get_secret(name)
        if not self._is_valid(value):
            raise InvalidSecret("Invalid secret length or empty secret")
        return value
    
    def _record_failure(self, attempt: int, exc: BaseException) -> None:
        self._state.retry_count += 1
        logger.error(
            "secret_fetch_failed",
            secret=self._refresh_name,
            attempt=attempt,
            retry_count=self._state.retry_count,
            error=str(exc) or type(exc).__name__,
        )
    
    def _store_value(self, name: str, value: str, source: str, generation: int) -> str:
        if generation != self._generation:
            logger.info("secret_refresh_discarded", secret=name, source=source)
            return value
        self._state.cached_value = value
        self._state.name = name
        self._state.fetched_at = self._clock()
        self._state.source = source
        return value
    
    async def _refresh(self, name: str, generation: int) -> str:
        try:
            value = await retry_with_backoff(
                lambda: self._fetch_once(name),
                max_attempts=self.max_retries,
                base_delay=self.retry_delay,
                backoff_factor=self.backoff_factor,
                max_delay=None,
                timeout=self.fetch_timeout,
                sleep=self._sleep,
                on_retry=self._record_failure,
                name=f"fetch_secret:{name}",
            )
        except RetryExhausted as exc:
            if self._is_valid(self.fallback_secret):
                logger.error(
                    "secret_fallback_used",
                    secret=name,
                    attempts=exc.attempts,
                    reason="durable store unavailable",
                )
                return self._store_value(name, self.fallback_secret, "fallback", generation)
            
            logger.error("secret_unavailable", secret=name, attempts=exc.attempts)
            raise SecretFetchExhausted(
                f"Unable to retrieve secret '{name}' after {exc.attempts} attempts"
            ) from exc
        
        if generation == self._generation:
            self._state.retry_count = 0
        logger.debug("secret_retrieved", secret=name, secret_length=len(value))
        return self._store_value(name, value, "store", generation)
    
    def rotate(self) -> None:
        """Drop the cached secret so the next call fetches a fresh one."""
        self._generation += 1
        self._state = SecretState()
        self._refresh_task = None
        self._refresh_name = None
        logger.info("secret_cache_reset", secret=self.secret_name)
    
    async def refresh(self, name: Optional[str] = None) -> str:
        """Rotate and fetch immediately."""
        self.rotate()
        return await self.get_secret(name)
    
    async def health_check(self) -> Dict[str, Any]:
        try:
            secret = await self.get_secret()
        except Exception as e:
            return {"status": "unhealthy", "details": {"error": str(e)}}
        
        return {
            "status": "healthy",
            "details": {
                "secret_length": len(secret),
                "source": self._state.source,
                "retry_count": self._state.retry_count,
            },
        }
