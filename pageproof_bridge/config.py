"""
Bridge Configuration
====================
Settings loaded from environment variables. Durations keep the units of
their environment variables (milliseconds unless the name says otherwise);
the ``*_seconds`` properties convert for components that work in seconds.
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .errors import ConfigError
from .vault import MIN_SECRET_LENGTH

ENVIRONMENTS = ("development", "staging", "production", "test")


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw, 10)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


@dataclass
class BridgeConfig:
    """Runtime configuration for the bridge."""
    service_name: str = "pageproof-bridge"
    version: str = "0.3.0"
    environment: str = "development"

    # HMAC
    hmac_timeout_ms: int = 300_000
    hmac_cache_ttl_ms: int = 60_000
    hmac_max_retries: int = 3
    hmac_retry_delay_ms: int = 1_000
    hmac_secret_name: str = "hmac-secret-key"
    webhook_secret_name: str = "webhook-hmac-secret"
    fallback_secret: Optional[str] = field(default=None, repr=False)
    secret_fetch_timeout_seconds: float = 5.0

    # Vault
    vault_url: Optional[str] = None
    vault_token: Optional[str] = field(default=None, repr=False)
    vault_mount: str = "pageproof"

    # Cache
    cache_max_size: int = 10_000
    cache_default_ttl_seconds: int = 300
    cache_sweep_interval_seconds: int = 300

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Session
    session_file: str = "./session.json"
    session_key: Optional[str] = field(default=None, repr=False)

    # PowerApps
    powerapps_endpoint: Optional[str] = None
    powerapps_timeout_ms: int = 30_000
    powerapps_retry_attempts: int = 3
    powerapps_retry_delay_ms: int = 1_000

    def __post_init__(self):
        if self.environment not in ENVIRONMENTS:
            raise ConfigError(f"APP_ENV must be one of {ENVIRONMENTS}, got {self.environment!r}")
        if self.fallback_secret is not None and len(self.fallback_secret) < MIN_SECRET_LENGTH:
            raise ConfigError(f"HMAC_SECRET must be at least {MIN_SECRET_LENGTH} characters")
        if self.log_format not in ("json", "simple"):
            raise ConfigError(f"LOG_FORMAT must be 'json' or 'simple', got {self.log_format!r}")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "BridgeConfig":
        """Build a config from environment variables (``os.environ`` by default)."""
        env = os.environ if env is None else env
        return cls(
            service_name=env.get("APP_NAME", "pageproof-bridge"),
            version=env.get("APP_VERSION", "0.3.0"),
            environment=env.get("APP_ENV", "development"),
            hmac_timeout_ms=_env_int(env, "HMAC_TIMEOUT", 300_000),
            hmac_cache_ttl_ms=_env_int(env, "HMAC_CACHE_TTL", 60_000),
            hmac_max_retries=_env_int(env, "HMAC_MAX_RETRIES", 3),
            hmac_retry_delay_ms=_env_int(env, "HMAC_RETRY_DELAY", 1_000),
            hmac_secret_name=env.get("HMAC_SECRET_NAME", "hmac-secret-key"),
            webhook_secret_name=env.get("WEBHOOK_SECRET_NAME", "webhook-hmac-secret"),
            fallback_secret=env.get("HMAC_SECRET") or None,
            secret_fetch_timeout_seconds=_env_float(env, "SECRET_FETCH_TIMEOUT", 5.0),
            vault_url=env.get("VAULT_ADDR") or None,
            vault_token=env.get("VAULT_TOKEN") or None,
            vault_mount=env.get("VAULT_MOUNT", "pageproof"),
            cache_max_size=_env_int(env, "CACHE_MAX_SIZE", 10_000),
            cache_default_ttl_seconds=_env_int(env, "CACHE_TTL", 300),
            cache_sweep_interval_seconds=_env_int(env, "CACHE_SWEEP_INTERVAL", 300),
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_format=env.get("LOG_FORMAT", "json"),
            session_file=env.get("SESSION_FILE", "./session.json"),
            session_key=env.get("SESSION_ENCRYPTION_KEY") or None,
            powerapps_endpoint=env.get("POWERAPPS_PAGEPROOF_PAGEAPPROVED") or None,
            powerapps_timeout_ms=_env_int(env, "POWERAPPS_TIMEOUT", 30_000),
            powerapps_retry_attempts=_env_int(env, "POWERAPPS_RETRY_ATTEMPTS", 3),
            powerapps_retry_delay_ms=_env_int(env, "POWERAPPS_RETRY_DELAY", 1_000),
        )

    # Helpers

    def is_development(self) -> bool:
        return self.environment == "development"

    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def hmac_cache_ttl_seconds(self) -> float:
        return self.hmac_cache_ttl_ms / 1000

    @property
    def hmac_retry_delay_seconds(self) -> float:
        return self.hmac_retry_delay_ms / 1000

    @property
    def powerapps_timeout_seconds(self) -> float:
        return self.powerapps_timeout_ms / 1000

    @property
    def powerapps_retry_delay_seconds(self) -> float:
        return self.powerapps_retry_delay_ms / 1000
