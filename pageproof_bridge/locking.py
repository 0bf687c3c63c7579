"""
Scoped Locking
==============
Exclusive access to a shared resource for read-modify-write sequences.
The lock is released on every exit path: success, exception or early
return.

Usage:
    lock = ResourceLock("session-file")

    async with lock.exclusive():
        data = read()
        write(update(data))
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Waits longer than this are logged
SLOW_ACQUIRE_SECONDS = 1.0


class ResourceLock:
    """Named asyncio lock guarding one shared resource."""

    def __init__(self, name: str):
        self.name = name
        self._lock = asyncio.Lock()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        start = time.perf_counter()
        async with self._lock:
            waited = time.perf_counter() - start
            if waited >= SLOW_ACQUIRE_SECONDS:
                logger.warning("resource_lock_contended", resource=self.name, waited_s=round(waited, 3))
            yield

    async def run_exclusive(self, func: Callable[[], Awaitable[T]]) -> T:
        """Run ``func`` while holding the lock."""
        async with self.exclusive():
            return await func()
