"""
HMAC Authentication Middleware
==============================
Guards internal endpoints with timestamp signatures.

Usage:
    app.add_middleware(
        HmacAuthMiddleware,
        verifier=services.hmac_verifier,
        cache=services.cache,
        protected_prefixes=("/api/v1/proofs",),
    )

Flow per request:
    headers extracted -> missing? 400
    cached result for (timestamp, signature)? allow / 401
    verify -> secret unavailable? 500
           -> invalid? cache, 401 with reason message
           -> valid? cache, allow

Verification results are cached for ``result_ttl`` seconds so retried or
duplicated requests skip the HMAC computation. ``verification_error``
results are not cached.
"""

import time
from typing import Iterable, Optional, Tuple

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from ..cache import TTLCache
from ..errors import MissingCredentials, SecretUnavailable, error_response
from ..internal_auth import (
    AuthDecision,
    AuthResult,
    HmacVerifier,
    VerificationReason,
    extract_hmac_headers,
)
from ..logging import client_ip, signature_prefix
from ..metrics import MetricNames, SimpleMetrics

logger = structlog.get_logger(__name__)

DEFAULT_PROTECTED_PREFIXES: Tuple[str, ...] = ("/api/v1/proofs",)
DEFAULT_RESULT_TTL_SECONDS = 60.0
CACHE_NAMESPACE = "verification"


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class HmacAuthMiddleware(BaseHTTPMiddleware):
    """
    Middleware that rejects requests without a valid timestamp signature.
    
    Only paths under ``protected_prefixes`` are checked.
    """
    
    def __init__(
        self,
        app,
        verifier: HmacVerifier,
        cache: TTLCache,
        protected_prefixes: Iterable[str] = DEFAULT_PROTECTED_PREFIXES,
        result_ttl: float = DEFAULT_RESULT_TTL_SECONDS,
        metrics: Optional[SimpleMetrics] = None,
    ):
        super().__init__(app)
        self.verifier = verifier
        self.cache = cache
        self.protected_prefixes = tuple(p.rstrip("/") for p in protected_prefixes)
        self.result_ttl = result_ttl
        self.metrics = metrics or SimpleMetrics()
    
    def _is_protected(self, path: str) -> bool:
        return any(path == p or path.startswith(p + "/") for p in self.protected_prefixes)
    
    @staticmethod
    def cache_key(timestamp: str, signature: str) -> str:
        return f"hmac:verify:{timestamp}:{signature}"
    
    def _record(self, outcome: str) -> None:
        self.metrics.increment(MetricNames.HMAC_OUTCOMES, labels={"outcome": outcome})
    
    async def authenticate(self, request: Request) -> AuthResult:
        """Run the verification flow for one request."""
        start = time.perf_counter()
        ip = client_ip(request)
        path = request.url.path
        
        try:
            timestamp, signature = extract_hmac_headers(request.headers)
            
            if not timestamp or not signature:
                logger.warning(
                    "hmac_missing_headers",
                    ip=ip,
                    path=path,
                    missing_headers={"x-timestamp": not timestamp, "x-signature": not signature},
                    processing_time_ms=_elapsed_ms(start),
                )
                self._record("missing_headers")
                exc = MissingCredentials()
                return AuthResult(
                    decision=AuthDecision.BLOCK,
                    status_code=exc.status_code,
                    message=exc.user_message,
                    reason=exc.reason,
                )
            
            key = self.cache_key(timestamp, signature)
            cached = self.cache.get(key, namespace=CACHE_NAMESPACE)
            if cached is not None:
                self.metrics.increment(MetricNames.HMAC_CACHE_HITS)
                if cached:
                    logger.debug(
                        "hmac_verification_cache_hit",
                        ip=ip,
                        path=path,
                        processing_time_ms=_elapsed_ms(start),
                    )
                    self._record("allowed")
                    return AuthResult(decision=AuthDecision.ALLOW, cached=True)
                
                logger.warning(
                    "hmac_verification_failed_cached",
                    ip=ip,
                    path=path,
                    timestamp=timestamp,
                    processing_time_ms=_elapsed_ms(start),
                )
                self._record("rejected")
                return AuthResult(
                    decision=AuthDecision.BLOCK,
                    status_code=401,
                    message="Invalid HMAC signature",
                    reason=VerificationReason.SIGNATURE_MISMATCH.value,
                    cached=True,
                )
            
            try:
                verification = await self.verifier.verify(timestamp, signature)
            except SecretUnavailable as exc:
                logger.error(
                    "hmac_secret_unavailable",
                    ip=ip,
                    path=path,
                    code=exc.code,
                    processing_time_ms=_elapsed_ms(start),
                )
                self._record("secret_unavailable")
                return AuthResult(
                    decision=AuthDecision.BLOCK,
                    status_code=exc.status_code,
                    message=exc.user_message,
                    reason="secret_unavailable",
                )
            
            if verification.reason != VerificationReason.VERIFICATION_ERROR:
                self.cache.set(key, verification.is_valid, ttl=self.result_ttl, namespace=CACHE_NAMESPACE)
            
            if not verification.is_valid:
                logger.warning(
                    "hmac_verification_failed",
                    ip=ip,
                    path=path,
                    reason=verification.reason.value,
                    timestamp=timestamp,
                    signature=signature_prefix(signature),
                    processing_time_ms=_elapsed_ms(start),
                )
                self._record("rejected")
                return AuthResult(
                    decision=AuthDecision.BLOCK,
                    status_code=401,
                    message=verification.message,
                    reason=verification.reason.value,
                )
            
            logger.debug(
                "hmac_verification_passed",
                ip=ip,
                path=path,
                processing_time_ms=_elapsed_ms(start),
            )
            self._record("allowed")
            return AuthResult(decision=AuthDecision.ALLOW)
        
        except Exception as e:
            logger.exception(
                "hmac_verification_exception",
                ip=ip,
                path=path,
                error=str(e),
                processing_time_ms=_elapsed_ms(start),
            )
            self._record("error")
            return AuthResult(
                decision=AuthDecision.BLOCK,
                status_code=500,
                message="Internal server error during HMAC verification",
                reason="internal_error",
            )
        finally:
            self.metrics.observe(
                f"{MetricNames.HMAC_VERIFICATION}_duration_seconds",
                time.perf_counter() - start,
            )
    
    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS" or not self._is_protected(request.url.path):
            return await call_next(request)
        
        result = await self.authenticate(request)
        if not result.allowed:
            return error_response(
                result.status_code,
                result.message,
                request_id=getattr(request.state, "request_id", None),
            )
        
        request.state.hmac_authenticated = True
        return await call_next(request)
