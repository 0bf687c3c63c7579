"""
Internal Authentication Module
==============================
HMAC request signing with replay protection, and PageProof webhook
signature verification.
"""

from .models import (
    REASON_MESSAGES,
    AuthDecision,
    AuthResult,
    VerificationReason,
    VerificationResult,
)
from .signature import (
    DEFAULT_SIGNATURE_TIMEOUT_MS,
    SIGNATURE_ALGORITHM,
    SIGNATURE_HEX_LENGTH,
    check_timestamp_window,
    constant_time_equals,
    current_time_ms,
    is_valid_signature_format,
    parse_timestamp,
    sign,
    sign_bytes,
)
from .headers import (
    SECRET_KEY_HEADER,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    WEBHOOK_SIGNATURE_HEADER,
    create_signed_headers,
    create_webhook_headers,
    extract_hmac_headers,
    first_header,
)
from .verifier import HmacVerifier
from .webhook import WebhookSignatureVerifier

__all__ = [
    # Models
    "REASON_MESSAGES",
    "AuthDecision",
    "AuthResult",
    "VerificationReason",
    "VerificationResult",
    # Signature
    "DEFAULT_SIGNATURE_TIMEOUT_MS",
    "SIGNATURE_ALGORITHM",
    "SIGNATURE_HEX_LENGTH",
    "check_timestamp_window",
    "constant_time_equals",
    "current_time_ms",
    "is_valid_signature_format",
    "parse_timestamp",
    "sign",
    "sign_bytes",
    # Headers
    "SECRET_KEY_HEADER",
    "SIGNATURE_HEADER",
    "TIMESTAMP_HEADER",
    "WEBHOOK_SIGNATURE_HEADER",
    "create_signed_headers",
    "create_webhook_headers",
    "extract_hmac_headers",
    "first_header",
    # Verifiers
    "HmacVerifier",
    "WebhookSignatureVerifier",
]
