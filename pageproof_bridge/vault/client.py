"""
Vault Secret Store
==================
Durable secret store backed by HashiCorp Vault KV v2.

Each secret lives at ``<mount_point>/<name>`` and keeps its value under the
``value`` key (configurable):

    vault kv put pageproof/hmac-secret-key value=...

Usage:
    store = VaultSecretStore(url="https://vault.internal:8200", token=token)
    secret = await store.get_secret("hmac-secret-key")
"""

import asyncio
from typing import Any, Dict, Optional, Protocol

import hvac
import hvac.exceptions
import structlog

logger = structlog.get_logger(__name__)


class SecretStore(Protocol):
    """Consumed contract: returns the secret, None if absent, raises on transient failure."""

    async def get_secret(self, name: str) -> Optional[str]:
        ...


class VaultSecretStore:
    """HashiCorp Vault KV v2 secret store."""
    
    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        mount_point: str = "pageproof",
        value_key: str = "value",
        client: Optional[hvac.Client] = None,
    ):
        self.url = url
        self.token = token
        self.mount_point = mount_point
        self.value_key = value_key
        self._client = client
    
    @property
    def client(self) -> hvac.Client:
        """Lazy-loaded Vault client."""
        if self._client is None:
            self._client = hvac.Client(url=self.url, token=self.token)
            if not self._client.is_authenticated():
                self._client = None
                raise PermissionError("Vault authentication failed. Check VAULT_TOKEN.")
        return self._client
    
    def _read(self, name: str) -> Optional[str]:
        try:
            secret: Dict[str, Any] = self.client.secrets.kv.v2.read_secret_version(
                path=name,
                mount_point=self.mount_point,
                raise_on_deleted_version=True,
            )
        except hvac.exceptions.InvalidPath:
            logger.error("vault_secret_not_found", path=f"{self.mount_point}/{name}")
            return None
        return secret["data"]["data"].get(self.value_key)
    
    async def get_secret(self, name: str) -> Optional[str]:
        """
        Read a secret value.
        
        Args:
            name: Secret path under the mount point
            
        Returns:
            The secret value, or None if the path does not exist
        """
        try:
            return await asyncio.to_thread(self._read, name)
        except Exception as e:
            logger.error("vault_secret_fetch_failed", secret=name, error=str(e))
            raise


class StaticSecretStore:
    """In-process secret store for local development and tests."""
    
    def __init__(self, secrets: Optional[Dict[str, str]] = None):
        self._secrets = dict(secrets or {})
    
    async def get_secret(self, name: str) -> Optional[str]:
        return self._secrets.get(name)
    
    def set_secret(self, name: str, value: str) -> None:
        self._secrets[name] = value
