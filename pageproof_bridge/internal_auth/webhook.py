"""
Webhook Signature Verification
==============================
Checks that a webhook was signed by PageProof: ``x-pageproof-signature``
carries the HMAC-SHA256 of the raw request body.

The HMAC must be computed over the body bytes exactly as received;
re-serialized JSON can reorder keys or change whitespace. Every failure
path returns False.
"""

import time
from typing import Any, Dict, Optional, Union

import structlog

from ..errors import SecretUnavailable
from ..logging import log_performance, log_security_event, signature_prefix
from ..vault import SecretProvider
from .signature import SIGNATURE_ALGORITHM, constant_time_equals, is_valid_signature_format, sign_bytes

logger = structlog.get_logger(__name__)


class WebhookSignatureVerifier:
    """Verifies PageProof webhook signatures over raw bodies."""
    
    def __init__(self, secret_provider: SecretProvider):
        self.secret_provider = secret_provider
    
    async def initialize(self) -> bool:
        """Warm the secret cache at startup; failures are logged, never raised."""
        try:
            await self.secret_provider.get_secret()
        except Exception as e:
            logger.error("webhook_secret_initialization_failed", error=str(e))
            return False
        logger.info("webhook_secret_initialized", source=self.secret_provider.state.source)
        return True
    
    async def is_signed(self, raw_body: Optional[bytes], signature: Optional[str]) -> bool:
        """
        Verify a webhook signature.
        
        Args:
            raw_body: Request body bytes captured before any parsing
            signature: Value of the ``x-pageproof-signature`` header
            
        Returns:
            True only if the signature matches the body
        """
        start = time.perf_counter()
        
        try:
            if not isinstance(signature, str):
                log_security_event("webhook_signature_missing", has_signature=signature is not None)
                return False
            
            if not is_valid_signature_format(signature):
                log_security_event(
                    "webhook_signature_malformed",
                    signature_length=len(signature),
                    signature_prefix=signature_prefix(signature),
                )
                return False
            
            if not raw_body:
                log_security_event("webhook_body_missing", body_length=len(raw_body or b""))
                return False
            
            try:
                secret = await self.secret_provider.get_secret()
            except SecretUnavailable as e:
                logger.error("webhook_secret_unavailable", error=str(e))
                return False
            
            is_valid = constant_time_equals(signature, sign_bytes(secret, raw_body))
        except Exception as e:
            logger.exception(
                "webhook_signature_verification_error",
                error=str(e),
                processing_time_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            return False
        
        processing_ms = (time.perf_counter() - start) * 1000
        log_performance(
            "pageproof_signature_verification",
            processing_ms,
            is_valid=is_valid,
            body_length=len(raw_body),
        )
        if not is_valid:
            log_security_event(
                "webhook_signature_mismatch",
                body_length=len(raw_body),
                processing_time_ms=round(processing_ms, 2),
            )
        return is_valid
    
    async def generate_test_signature(self, data: Union[str, bytes]) -> str:
        """Sign ``data`` with the webhook secret (debugging and health checks)."""
        payload = data.encode("utf-8") if isinstance(data, str) else data
        secret = await self.secret_provider.get_secret()
        return sign_bytes(secret, payload)
    
    async def refresh_secret(self) -> None:
        """Drop and re-fetch the secret after a key rotation."""
        await self.secret_provider.refresh()
    
    async def health_check(self) -> Dict[str, Any]:
        try:
            signature = await self.generate_test_signature(f"health-check-{int(time.time() * 1000)}")
        except Exception as e:
            return {"status": "unhealthy", "details": {"error": str(e)}}
        
        return {
            "status": "healthy",
            "details": {
                "algorithm": SIGNATURE_ALGORITHM,
                "secret_source": self.secret_provider.state.source,
                "test_signature_length": len(signature),
            },
        }
