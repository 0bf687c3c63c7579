"""
PageProof Bridge
================
HMAC-authenticated bridge between PageProof webhooks and PowerApps:
TTL cache, secret provider, request signing and verification, and the
authentication middleware that ties them together.
"""

__version__ = "0.3.0"

from .cache import TTLCache
from .config import BridgeConfig
from .errors import BridgeError
from .internal_auth import HmacVerifier, WebhookSignatureVerifier
from .middleware import HmacAuthMiddleware
from .vault import SecretProvider

__all__ = [
    "BridgeConfig",
    "BridgeError",
    "HmacAuthMiddleware",
    "HmacVerifier",
    "SecretProvider",
    "TTLCache",
    "WebhookSignatureVerifier",
    "__version__",
]
