"""
Signature Functions
===================
HMAC-SHA256 signing and verification primitives.

Two schemes share these primitives:
- timestamp signatures: HMAC over the decimal epoch-milliseconds string
- webhook signatures: HMAC over the raw request body bytes

Signatures are always 64 hex characters (32 bytes); anything else is
rejected before any comparison is attempted.
"""

import hashlib
import hmac
import re
import time
from typing import Optional

from ..errors import TimestampExpired, TimestampFuture

# Configuration
SIGNATURE_ALGORITHM = "sha256"
SIGNATURE_HEX_LENGTH = 64
DEFAULT_SIGNATURE_TIMEOUT_MS = 300_000  # 5 minutes

_SIGNATURE_PATTERN = re.compile(r"[a-fA-F0-9]{64}")
_TIMESTAMP_PATTERN = re.compile(r"\d{1,16}")


def current_time_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def sign(secret: str, timestamp: str) -> str:
    """
    Compute the HMAC-SHA256 signature of a timestamp string.
    
    Args:
        secret: Shared secret
        timestamp: Epoch milliseconds as a decimal string
        
    Returns:
        Hex-encoded HMAC-SHA256 signature
    """
    return hmac.new(
        secret.encode("utf-8"),
        timestamp.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def sign_bytes(secret: str, payload: bytes) -> str:
    """Compute the HMAC-SHA256 signature of raw bytes (e.g. a webhook body)."""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def is_valid_signature_format(signature: Optional[str]) -> bool:
    """True if ``signature`` is exactly 64 hex characters (either case)."""
    return isinstance(signature, str) and _SIGNATURE_PATTERN.fullmatch(signature) is not None


def constant_time_equals(provided_hex: str, expected_hex: str) -> bool:
    """
    Compare two hex signatures in constant time.
    
    Both sides are decoded to bytes first so that letter case does not
    matter; the comparison itself scans the full length regardless of where
    the values differ.
    """
    return hmac.compare_digest(bytes.fromhex(provided_hex), bytes.fromhex(expected_hex))


def parse_timestamp(timestamp: Optional[str]) -> Optional[int]:
    """Parse an epoch-milliseconds string; None if malformed or non-positive."""
    if not isinstance(timestamp, str) or _TIMESTAMP_PATTERN.fullmatch(timestamp.strip()) is None:
        return None
    value = int(timestamp.strip())
    return value if value > 0 else None


def check_timestamp_window(
    timestamp_ms: int,
    now_ms: int,
    timeout_ms: int = DEFAULT_SIGNATURE_TIMEOUT_MS,
) -> None:
    """
    Enforce ``|now - timestamp| <= timeout``.
    
    Raises:
        TimestampFuture: Timestamp is ahead of now by more than the timeout
        TimestampExpired: Timestamp is older than the timeout
    """
    if timestamp_ms > now_ms + timeout_ms:
        raise TimestampFuture("Timestamp too far in future")
    if now_ms - timestamp_ms > timeout_ms:
        raise TimestampExpired("Timestamp expired")
