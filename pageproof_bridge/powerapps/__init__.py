"""
PowerApps
=========
Outbound relay of PageProof events to the PowerApps flow.
"""

from .client import PowerAppsRelay, RetryableStatus, is_retryable, is_retryable_status

__all__ = [
    "PowerAppsRelay",
    "RetryableStatus",
    "is_retryable",
    "is_retryable_status",
]
