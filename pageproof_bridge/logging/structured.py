"""
Structured Logging
==================
structlog configuration shared by the bridge, plus helpers for the two
event families every component emits: security events and performance
measurements.

Usage:
    from pageproof_bridge.logging import setup_logging, log_security_event

    setup_logging(service_name="pageproof-bridge", level="INFO")
    log_security_event("timestamp_expired", ip="10.0.0.4", time_diff_ms=301000)
"""

import logging
import sys
import time
from typing import Any, Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from ..errors.responses import generate_request_id

logger = structlog.get_logger(__name__)

SLOW_OPERATION_MS = 1000.0
REQUEST_ID_HEADER = "X-Request-ID"


# =============================================================================
# Setup
# =============================================================================

def setup_logging(
    service_name: str,
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        service_name: Name bound to every log event
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render JSON (production) instead of console lines
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)

    logger.info("logging_configured", service=service_name, level=level.upper())


# =============================================================================
# Event helpers
# =============================================================================

def log_security_event(event: str, **context: Any) -> None:
    """Log a security-relevant event at WARNING severity."""
    logger.warning(event, security=True, **context)


def log_performance(operation: str, duration_ms: float, **context: Any) -> None:
    """Log an operation duration; slow operations are promoted to INFO."""
    log = logger.info if duration_ms >= SLOW_OPERATION_MS else logger.debug
    log(
        "performance",
        operation=operation,
        duration_ms=round(duration_ms, 2),
        slow=duration_ms >= SLOW_OPERATION_MS,
        **context,
    )


def signature_prefix(signature: Optional[str], length: int = 8) -> Optional[str]:
    """Truncate a signature for logging; never log it in full."""
    if signature is None:
        return None
    return signature[:length] + "..."


def client_ip(request: Request) -> str:
    """Extract the caller IP, honouring X-Forwarded-For."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


# =============================================================================
# Middleware
# =============================================================================

class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Binds a request id and basic request context to structlog contextvars
    for the lifetime of the request, and echoes the id in the response.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        request.state.request_id = request_id

        start = time.perf_counter()
        with structlog.contextvars.bound_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        ):
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000
            logger.debug("request_completed", duration_ms=round(duration_ms, 2))

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
