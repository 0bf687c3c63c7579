"""
Bridge Exceptions
=================
Exception hierarchy for the bridge. Authentication failures carry the
reason code reported in a VerificationResult and the message shown to
the caller; internals never reach the response body.
"""

from typing import Optional


class BridgeError(Exception):
    """Base class for errors translated into HTTP responses."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    user_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, *, status_code: Optional[int] = None):
        super().__init__(message or self.user_message)
        if status_code is not None:
            self.status_code = status_code


class ConfigError(BridgeError):
    """Invalid or missing configuration."""
    code = "CONFIG_ERROR"
    user_message = "Service is misconfigured"


class RelayError(BridgeError):
    """Downstream PowerApps relay failed."""
    status_code = 502
    code = "RELAY_FAILED"
    user_message = "Failed to relay event"


# =============================================================================
# Authentication
# =============================================================================

class AuthenticationError(BridgeError):
    """Request could not be authenticated."""
    status_code = 401
    code = "AUTH_FAILED"
    reason: str = "verification_error"
    user_message = "HMAC verification failed"


class MissingCredentials(AuthenticationError):
    status_code = 400
    code = "MISSING_CREDENTIALS"
    reason = "missing_headers"
    user_message = "Missing required HMAC headers"


class MalformedSignature(AuthenticationError):
    code = "MALFORMED_SIGNATURE"
    reason = "signature_mismatch"
    user_message = "Invalid HMAC signature"


class SignatureMismatch(AuthenticationError):
    code = "SIGNATURE_MISMATCH"
    reason = "signature_mismatch"
    user_message = "Invalid HMAC signature"


# Malformed, expired and future timestamps share one reason code so the
# caller cannot tell them apart.
class TimestampExpired(AuthenticationError):
    code = "TIMESTAMP_EXPIRED"
    reason = "timestamp_expired"
    user_message = "HMAC signature has expired"


class TimestampFuture(TimestampExpired):
    code = "TIMESTAMP_FUTURE"


class VerificationException(AuthenticationError):
    """Unexpected failure while computing or comparing a signature."""
    code = "VERIFICATION_ERROR"
    reason = "verification_error"
    user_message = "HMAC verification failed"


# =============================================================================
# Secrets
# =============================================================================

class SecretUnavailable(BridgeError):
    """No valid secret could be obtained; a service fault, not a client fault."""
    status_code = 500
    code = "SECRET_UNAVAILABLE"
    user_message = "HMAC verification unavailable"


class SecretFetchExhausted(SecretUnavailable):
    """All fetch attempts failed and no usable fallback was configured."""
    code = "SECRET_FETCH_EXHAUSTED"


class InvalidSecret(ValueError):
    """A fetched secret is empty or shorter than the minimum length."""
