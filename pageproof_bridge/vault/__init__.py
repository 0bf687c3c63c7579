"""
Secrets
=======
Durable secret store integration and the cached, retrying secret provider.
"""

from .client import SecretStore, StaticSecretStore, VaultSecretStore
from .models import SecretState
from .provider import MIN_SECRET_LENGTH, SecretProvider

__all__ = [
    "MIN_SECRET_LENGTH",
    "SecretProvider",
    "SecretState",
    "SecretStore",
    "StaticSecretStore",
    "VaultSecretStore",
]
