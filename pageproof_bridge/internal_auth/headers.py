"""
Header Functions
================
Extraction and creation of authentication headers.
"""

from typing import Any, Dict, Mapping, Optional, Tuple

from .signature import current_time_ms, sign, sign_bytes

TIMESTAMP_HEADER = "x-timestamp"
SIGNATURE_HEADER = "x-signature"
SECRET_KEY_HEADER = "x-secret-key"
WEBHOOK_SIGNATURE_HEADER = "x-pageproof-signature"


def first_header(headers: Mapping[str, Any], name: str) -> Optional[str]:
    """
    Return the first value of a header, or None if absent or empty.
    
    Works with starlette ``Headers`` (repeated headers via ``getlist``) and
    with plain mappings whose values may be lists.
    """
    getlist = getattr(headers, "getlist", None)
    if getlist is not None:
        values = getlist(name)
        value = values[0] if values else None
    else:
        value = headers.get(name)
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
    return value or None


def extract_hmac_headers(headers: Mapping[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """Extract the (timestamp, signature) pair."""
    return first_header(headers, TIMESTAMP_HEADER), first_header(headers, SIGNATURE_HEADER)


def create_signed_headers(secret: str, timestamp_ms: Optional[int] = None) -> Dict[str, str]:
    """
    Create the headers a caller sends to an HMAC-protected endpoint.
    
    Args:
        secret: Shared secret
        timestamp_ms: Epoch milliseconds (defaults to now)
        
    Returns:
        Dictionary of headers to include in request
    """
    timestamp = str(timestamp_ms if timestamp_ms is not None else current_time_ms())
    return {
        TIMESTAMP_HEADER: timestamp,
        SIGNATURE_HEADER: sign(secret, timestamp),
    }


def create_webhook_headers(secret: str, raw_body: bytes) -> Dict[str, str]:
    """Create the signature header PageProof attaches to a webhook body."""
    return {WEBHOOK_SIGNATURE_HEADER: sign_bytes(secret, raw_body)}
