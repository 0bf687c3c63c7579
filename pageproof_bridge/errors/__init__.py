"""
Errors
======
Exception taxonomy and user-facing error responses.
"""

from .exceptions import (
    AuthenticationError,
    BridgeError,
    ConfigError,
    InvalidSecret,
    MalformedSignature,
    MissingCredentials,
    RelayError,
    SecretFetchExhausted,
    SecretUnavailable,
    SignatureMismatch,
    TimestampExpired,
    TimestampFuture,
    VerificationException,
)
from .responses import (
    error_response,
    generate_request_id,
    install_exception_handlers,
    sanitize_error_message,
)

__all__ = [
    # Exceptions
    "AuthenticationError",
    "BridgeError",
    "ConfigError",
    "InvalidSecret",
    "MalformedSignature",
    "MissingCredentials",
    "RelayError",
    "SecretFetchExhausted",
    "SecretUnavailable",
    "SignatureMismatch",
    "TimestampExpired",
    "TimestampFuture",
    "VerificationException",
    # Responses
    "error_response",
    "generate_request_id",
    "install_exception_handlers",
    "sanitize_error_message",
]
