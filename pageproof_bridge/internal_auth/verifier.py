"""
HMAC Verifier
=============
Timestamp-signature authentication: the caller signs the current epoch
milliseconds with the shared secret and sends both values.

Verification order:
1. timestamp parses and lies within ``signature_timeout_ms`` of now
2. signature is 64 hex characters
3. expected signature (secret resolved via SecretProvider) matches in constant time

Steps 1 and 2 never touch the secret. A SecretUnavailable from step 3 is
re-raised so callers can report a service fault rather than a bad signature.
"""

import hmac
import time
from typing import Any, Callable, Dict, Optional

import structlog

from ..errors import (
    AuthenticationError,
    MalformedSignature,
    SecretUnavailable,
    SignatureMismatch,
    TimestampExpired,
    VerificationException,
)
from ..logging import log_performance, log_security_event, signature_prefix
from ..vault import MIN_SECRET_LENGTH, SecretProvider
from .models import VerificationReason, VerificationResult
from .signature import (
    DEFAULT_SIGNATURE_TIMEOUT_MS,
    SIGNATURE_ALGORITHM,
    check_timestamp_window,
    constant_time_equals,
    current_time_ms,
    is_valid_signature_format,
    parse_timestamp,
    sign,
)

logger = structlog.get_logger(__name__)


class HmacVerifier:
    """Signs and verifies timestamp signatures."""
    
    def __init__(
        self,
        secret_provider: SecretProvider,
        signature_timeout_ms: int = DEFAULT_SIGNATURE_TIMEOUT_MS,
        clock_ms: Callable[[], int] = current_time_ms,
    ):
        self.secret_provider = secret_provider
        self.signature_timeout_ms = signature_timeout_ms
        self.algorithm = SIGNATURE_ALGORITHM
        self._clock_ms = clock_ms

    def now_ms(self) -> int:
        return self._clock_ms()

    # =========================================================================
    # Signing
    # =========================================================================
    
    def generate_hmac(self, secret: str, data: str) -> str:
        if not secret or not data:
            raise ValueError("Secret and data are required for HMAC generation")
        return sign(secret, data)
    
    async def generate_signature(self, data: str) -> str:
        """Resolve the secret and sign ``data``."""
        if not data:
            raise ValueError("Data is required for signature generation")
        secret = await self.secret_provider.get_secret()
        return self.generate_hmac(secret, data)
    
    # =========================================================================
    # Validation
    # =========================================================================
    
    def _check_timestamp(self, timestamp: Optional[str]) -> int:
        parsed = parse_timestamp(timestamp)
        if parsed is None:
            log_security_event("invalid_timestamp_format", timestamp=timestamp)
            raise TimestampExpired("Invalid timestamp format")
        
        now = self._clock_ms()
        try:
            check_timestamp_window(parsed, now, self.signature_timeout_ms)
        except TimestampExpired as exc:
            log_security_event(
                "timestamp_rejected",
                code=exc.code,
                timestamp=parsed,
                current_time=now,
                time_diff_ms=abs(now - parsed),
                max_allowed_ms=self.signature_timeout_ms,
            )
            raise
        return parsed
    
    def validate_timestamp(self, timestamp: Optional[str]) -> bool:
        """True if the timestamp is well formed and inside the allowed window."""
        try:
            self._check_timestamp(timestamp)
        except TimestampExpired:
            return False
        return True
    
    async def validate_secret(self, provided_secret: Optional[str]) -> bool:
        """
        Constant-time check of a caller-supplied secret against the signing secret.
        
        Raises:
            SecretUnavailable: If the signing secret cannot be resolved
        """
        if not provided_secret or len(provided_secret) < MIN_SECRET_LENGTH:
            return False
        actual = await self.secret_provider.get_secret()
        return hmac.compare_digest(provided_secret.encode("utf-8"), actual.encode("utf-8"))
    
    # =========================================================================
    # Verification
    # =========================================================================
    
    async def _matches(self, timestamp: str, signature: str) -> bool:
        try:
            expected = await self.generate_signature(timestamp)
            return constant_time_equals(signature, expected)
        except SecretUnavailable:
            raise
        except Exception as exc:
            raise VerificationException("Signature comparison failed") from exc

    async def verify(self, timestamp: Optional[str], signature: Optional[str]) -> VerificationResult:
        """
        Verify a timestamp signature.
        
        Returns:
            VerificationResult; malformed and out-of-window timestamps both
            report ``timestamp_expired``
        
        Raises:
            SecretUnavailable: If the signing secret cannot be resolved
        """
        start = time.perf_counter()
        parsed: Optional[int] = None
        
        try:
            parsed = self._check_timestamp(timestamp)
            
            if not is_valid_signature_format(signature):
                log_security_event(
                    "invalid_signature_format",
                    signature_length=len(signature) if isinstance(signature, str) else None,
                    signature=signature_prefix(signature) if isinstance(signature, str) else None,
                )
                raise MalformedSignature()
            
            if not await self._matches(timestamp, signature):
                raise SignatureMismatch()
        except SecretUnavailable:
            raise
        except VerificationException as exc:
            logger.error(
                "signature_verification_error",
                error=str(exc.__cause__ or exc),
                processing_time_ms=round((time.perf_counter() - start) * 1000, 2),
                exc_info=exc,
            )
            return VerificationResult(is_valid=False, reason=VerificationReason(exc.reason))
        except AuthenticationError as exc:
            result = VerificationResult(
                is_valid=False,
                reason=VerificationReason(exc.reason),
                timestamp=parsed if isinstance(exc, SignatureMismatch) else None,
            )
        else:
            result = VerificationResult(is_valid=True, timestamp=parsed)
        
        log_performance(
            "hmac_verification",
            (time.perf_counter() - start) * 1000,
            is_valid=result.is_valid,
            reason=result.reason.value if result.reason else None,
        )
        return result
    
    # =========================================================================
    # Health
    # =========================================================================
    
    async def health_check(self) -> Dict[str, Any]:
        try:
            secret = await self.secret_provider.get_secret()
            self.generate_hmac(secret, "health-check")
        except Exception as e:
            return {"status": "unhealthy", "details": {"error": str(e)}}
        
        state = self.secret_provider.state
        return {
            "status": "healthy",
            "details": {
                "secret_length": len(secret),
                "algorithm": self.algorithm,
                "secret_source": state.source,
                "retry_count": state.retry_count,
            },
        }
