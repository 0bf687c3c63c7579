"""
Internal Auth Models
====================
Data models and enums for request authentication.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class AuthDecision(str, Enum):
    """Middleware decision types."""
    ALLOW = "ALLOW"
    BLOCK = "BLOCK"


class VerificationReason(str, Enum):
    """Reasons a signature verification failed."""
    TIMESTAMP_EXPIRED = "timestamp_expired"
    SIGNATURE_MISMATCH = "signature_mismatch"
    VERIFICATION_ERROR = "verification_error"


# Messages shown to callers, keyed by reason
REASON_MESSAGES: Dict[VerificationReason, str] = {
    VerificationReason.TIMESTAMP_EXPIRED: "HMAC signature has expired",
    VerificationReason.SIGNATURE_MISMATCH: "Invalid HMAC signature",
    VerificationReason.VERIFICATION_ERROR: "HMAC verification failed",
}


@dataclass
class VerificationResult:
    """Outcome of a timestamp-signature verification."""
    is_valid: bool
    reason: Optional[VerificationReason] = None
    timestamp: Optional[int] = None

    @property
    def message(self) -> Optional[str]:
        if self.is_valid:
            return None
        return REASON_MESSAGES.get(self.reason, "HMAC verification failed")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "reason": self.reason.value if self.reason else None,
            "timestamp": self.timestamp,
        }


@dataclass
class AuthResult:
    """Result of the authentication middleware for one request."""
    decision: AuthDecision
    status_code: int = 200
    message: Optional[str] = None
    reason: Optional[str] = None
    cached: bool = False

    @property
    def allowed(self) -> bool:
        return self.decision == AuthDecision.ALLOW
