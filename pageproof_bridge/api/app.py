"""
Application Factory
===================
Builds the bridge's shared components once and wires them into a FastAPI
application.

Usage:
    from pageproof_bridge.api import create_app

    app = create_app()  # BridgeConfig.from_env()
"""

import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

import structlog
from fastapi import FastAPI

from ..cache import TTLCache, memoize
from ..config import BridgeConfig
from ..errors import install_exception_handlers
from ..internal_auth import HmacVerifier, WebhookSignatureVerifier
from ..logging import RequestContextMiddleware, setup_logging
from ..metrics import MetricLabels, SimpleMetrics
from ..middleware import HmacAuthMiddleware
from ..powerapps import PowerAppsRelay
from ..session import SessionStore
from ..vault import SecretProvider, SecretStore, StaticSecretStore, VaultSecretStore
from . import health, hmac_routes, proofs, webhooks

logger = structlog.get_logger(__name__)

API_PREFIX = "/api/v1"
PROTECTED_PREFIXES = (f"{API_PREFIX}/proofs",)
SESSION_USER_TTL_SECONDS = 30.0


@dataclass
class BridgeServices:
    """Components shared by every request, built once per application."""
    config: BridgeConfig
    cache: TTLCache
    metrics: SimpleMetrics
    hmac_secrets: SecretProvider
    webhook_secrets: SecretProvider
    hmac_verifier: HmacVerifier
    webhook_verifier: WebhookSignatureVerifier
    relay: PowerAppsRelay
    session_store: Optional[SessionStore] = None
    lookup_session_user: Optional[Callable[[], Awaitable[Optional[str]]]] = None
    started_at: float = field(default_factory=time.monotonic)

    def uptime(self) -> float:
        return time.monotonic() - self.started_at

    async def startup(self) -> None:
        self.cache.start()
        await self.webhook_verifier.initialize()
        logger.info("bridge_started", environment=self.config.environment)

    async def shutdown(self) -> None:
        await self.cache.stop()
        await self.relay.aclose()
        logger.info("bridge_stopped")


def build_secret_store(config: BridgeConfig) -> SecretStore:
    """Vault when configured; otherwise the fallback secret serves both names."""
    if config.vault_url:
        return VaultSecretStore(config.vault_url, token=config.vault_token, mount_point=config.vault_mount)
    logger.warning("vault_not_configured", using_fallback=config.fallback_secret is not None)
    secrets = {}
    if config.fallback_secret:
        secrets = {
            config.hmac_secret_name: config.fallback_secret,
            config.webhook_secret_name: config.fallback_secret,
        }
    return StaticSecretStore(secrets)


def _secret_provider(store: SecretStore, name: str, config: BridgeConfig, **overrides: Any) -> SecretProvider:
    options = dict(
        fallback_secret=config.fallback_secret,
        cache_ttl=config.hmac_cache_ttl_seconds,
        max_retries=config.hmac_max_retries,
        retry_delay=config.hmac_retry_delay_seconds,
        fetch_timeout=config.secret_fetch_timeout_seconds,
    )
    options.update(overrides)
    return SecretProvider(store, name, **options)


def build_services(
    config: BridgeConfig,
    store: Optional[SecretStore] = None,
    relay: Optional[PowerAppsRelay] = None,
    **provider_overrides: Any,
) -> BridgeServices:
    """
    Build every shared component from a config.
    
    Args:
        config: Bridge configuration
        store: Secret store (defaults to Vault or the fallback secret)
        relay: PowerApps relay (defaults to one built from the config)
        provider_overrides: Extra SecretProvider arguments (clock, sleep, ...)
    """
    store = store if store is not None else build_secret_store(config)
    metrics = SimpleMetrics(MetricLabels(
        service=config.service_name,
        environment=config.environment,
        version=config.version,
    ))
    cache = TTLCache(
        max_size=config.cache_max_size,
        default_ttl=config.cache_default_ttl_seconds,
        sweep_interval=config.cache_sweep_interval_seconds,
    )

    hmac_secrets = _secret_provider(store, config.hmac_secret_name, config, **provider_overrides)
    webhook_secrets = _secret_provider(store, config.webhook_secret_name, config, **provider_overrides)

    relay = relay or PowerAppsRelay(
        config.powerapps_endpoint,
        timeout=config.powerapps_timeout_seconds,
        max_attempts=config.powerapps_retry_attempts,
        retry_delay=config.powerapps_retry_delay_seconds,
        metrics=metrics,
    )

    session_store = None
    lookup_session_user = None
    if config.session_key:
        session_store = SessionStore(config.session_file, config.session_key)
        lookup_session_user = memoize(cache, "session", ttl=SESSION_USER_TTL_SECONDS)(
            session_store.current_user
        )
        session_store.on_change(lookup_session_user.invalidate)

    return BridgeServices(
        config=config,
        cache=cache,
        metrics=metrics,
        hmac_secrets=hmac_secrets,
        webhook_secrets=webhook_secrets,
        hmac_verifier=HmacVerifier(hmac_secrets, signature_timeout_ms=config.hmac_timeout_ms),
        webhook_verifier=WebhookSignatureVerifier(webhook_secrets),
        relay=relay,
        session_store=session_store,
        lookup_session_user=lookup_session_user,
    )


def create_app(
    config: Optional[BridgeConfig] = None,
    services: Optional[BridgeServices] = None,
    configure_logging: bool = False,
) -> FastAPI:
    """
    Create the bridge application.
    
    Args:
        config: Bridge configuration (defaults to ``BridgeConfig.from_env()``)
        services: Prebuilt components (defaults to ``build_services(config)``)
        configure_logging: Run ``setup_logging`` from the config
    """
    if services is not None:
        config = services.config
    elif config is None:
        config = BridgeConfig.from_env()

    if configure_logging:
        setup_logging(config.service_name, config.log_level, json_output=config.log_format == "json")

    services = services or build_services(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await services.startup()
        try:
            yield
        finally:
            await services.shutdown()

    app = FastAPI(
        title="PageProof Bridge",
        version=config.version,
        lifespan=lifespan,
        docs_url=None if config.is_production() else "/docs",
    )
    app.state.services = services

    install_exception_handlers(app, debug=config.is_development())

    # Added innermost first; the request context wraps authentication
    app.add_middleware(
        HmacAuthMiddleware,
        verifier=services.hmac_verifier,
        cache=services.cache,
        protected_prefixes=PROTECTED_PREFIXES,
        result_ttl=config.hmac_cache_ttl_seconds,
        metrics=services.metrics,
    )
    app.add_middleware(RequestContextMiddleware)

    app.include_router(health.router, prefix=API_PREFIX)
    app.include_router(hmac_routes.router, prefix=API_PREFIX)
    app.include_router(webhooks.router, prefix=API_PREFIX)
    app.include_router(proofs.router, prefix=API_PREFIX)

    return app
