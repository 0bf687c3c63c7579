"""
Logging
=======
structlog setup and request-scoped logging context.
"""

from .structured import (
    RequestContextMiddleware,
    client_ip,
    log_performance,
    log_security_event,
    setup_logging,
    signature_prefix,
)

__all__ = [
    "RequestContextMiddleware",
    "client_ip",
    "log_performance",
    "log_security_event",
    "setup_logging",
    "signature_prefix",
]
