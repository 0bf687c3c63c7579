"""
Retry Backoff
=============
Exponential backoff retry implementation.

The delay before attempt ``n + 1`` is ``base_delay * backoff_factor ** (n - 1)``,
capped at ``max_delay``. A per-attempt ``timeout`` turns a slow call into an
ordinary failed attempt.
"""

import asyncio
import random
from functools import wraps
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from .exceptions import RetryExhausted

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RetryPredicate = Callable[[BaseException], bool]
SleepFunc = Callable[[float], Awaitable[None]]


def _always_retry(exc: BaseException) -> bool:
    return isinstance(exc, Exception)


def compute_delay(
    attempt: int,
    base_delay: float,
    backoff_factor: float = 2.0,
    max_delay: Optional[float] = None,
) -> float:
    """Delay to wait after the given (1-based) failed attempt."""
    delay = base_delay * (backoff_factor ** (attempt - 1))
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    backoff_factor: float = 2.0,
    max_delay: Optional[float] = 60.0,
    jitter: bool = False,
    retryable: Optional[RetryPredicate] = None,
    timeout: Optional[float] = None,
    sleep: SleepFunc = asyncio.sleep,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
    name: Optional[str] = None,
) -> T:
    """
    Execute an async operation with exponential backoff retry.

    Args:
        operation: Zero-argument coroutine function to execute
        max_attempts: Maximum number of attempts (including the first)
        base_delay: Initial delay in seconds
        backoff_factor: Multiplier applied to the delay after each failure
        max_delay: Upper bound for a single delay (None for unbounded)
        jitter: Scale each delay by a random factor in [0.5, 1.5)
        retryable: Predicate deciding whether an exception is retried
        timeout: Per-attempt timeout in seconds
        sleep: Awaitable sleep function (injectable for tests)
        on_retry: Callback invoked with (attempt, exception) after each failure
        name: Operation name used in log events

    Returns:
        Result of the operation

    Raises:
        RetryExhausted: If all attempts fail
        Exception: Any exception rejected by ``retryable`` propagates unchanged
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    should_retry = retryable or _always_retry
    op_name = name or getattr(operation, "__name__", "operation")
    last_exception: Optional[BaseException] = None

    for attempt in range(1, max_attempts + 1):
        try:
            if timeout is not None:
                return await asyncio.wait_for(operation(), timeout)
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not isinstance(e, asyncio.TimeoutError) and not should_retry(e):
                raise

            last_exception = e
            if on_retry is not None:
                on_retry(attempt, e)

            if attempt == max_attempts:
                logger.error(
                    "retry_exhausted",
                    operation=op_name,
                    attempts=attempt,
                    error=str(e) or type(e).__name__,
                )
                break

            delay = compute_delay(attempt, base_delay, backoff_factor, max_delay)
            if jitter:
                delay = delay * (0.5 + random.random())

            logger.warning(
                "retrying_after_failure",
                operation=op_name,
                attempt=attempt,
                delay=delay,
                error=str(e) or type(e).__name__,
            )
            await sleep(delay)

    raise RetryExhausted(
        f"{op_name} failed after {max_attempts} attempts: {last_exception}",
        last_exception=last_exception,
        attempts=max_attempts,
    )


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    backoff_factor: float = 2.0,
    max_delay: Optional[float] = 60.0,
    retryable: Optional[RetryPredicate] = None,
    timeout: Optional[float] = None,
    sleep: SleepFunc = asyncio.sleep,
):
    """
    Decorator for retry with exponential backoff.

    Usage:
        @with_retry(max_attempts=5)
        async def fetch_collection():
            ...
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await retry_with_backoff(
                lambda: func(*args, **kwargs),
                max_attempts=max_attempts,
                base_delay=base_delay,
                backoff_factor=backoff_factor,
                max_delay=max_delay,
                retryable=retryable,
                timeout=timeout,
                sleep=sleep,
                name=func.__name__,
            )
        return wrapper
    return decorator
