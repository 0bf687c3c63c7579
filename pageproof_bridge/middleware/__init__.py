"""
Middleware
==========
"""

from .hmac_auth import (
    CACHE_NAMESPACE,
    DEFAULT_PROTECTED_PREFIXES,
    HmacAuthMiddleware,
)

__all__ = [
    "CACHE_NAMESPACE",
    "DEFAULT_PROTECTED_PREFIXES",
    "HmacAuthMiddleware",
]
