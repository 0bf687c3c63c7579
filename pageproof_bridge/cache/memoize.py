"""
Memoization
===========
Decorator that caches the results of async lookups (collection ids,
proof details, ...) in a TTLCache namespace.
"""

import json
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .ttl_cache import TTLCache

T = TypeVar("T")

_MISSING = object()


def default_cache_key(func: Callable, args: tuple, kwargs: dict) -> str:
    payload = json.dumps([list(args), kwargs], sort_keys=True, default=str)
    return f"{func.__qualname__}:{payload}"


def memoize(
    cache: TTLCache,
    namespace: str,
    ttl: Optional[float] = None,
    key_func: Optional[Callable[..., str]] = None,
):
    """
    Cache the result of an async function.
    
    None results are not cached so that a failed lookup is retried on the
    next call. ``wrapper.invalidate()`` drops every cached result in the
    namespace.

    Usage:
        @memoize(cache, namespace="collections", ttl=600)
        async def find_collection(name: str) -> Optional[dict]:
            ...
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            key = key_func(*args, **kwargs) if key_func else default_cache_key(func, args, kwargs)
            cached = cache.get(key, namespace=namespace, default=_MISSING)
            if cached is not _MISSING:
                return cached
            
            result = await func(*args, **kwargs)
            if result is not None:
                cache.set(key, result, ttl=ttl, namespace=namespace)
            return result
        
        wrapper.cache_namespace = namespace
        wrapper.invalidate = lambda: cache.clear(namespace=namespace)
        return wrapper
    return decorator
