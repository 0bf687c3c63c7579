"""
Error Responses
===============
Standardized JSON error bodies. Details and stack traces are only
included in development mode.

CRITICAL: Never expose secrets, computed signatures or internal error
details to callers.
"""

import re
import time
import traceback
import uuid
from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from .exceptions import BridgeError

logger = structlog.get_logger(__name__)

_SENSITIVE_PATTERNS = [
    re.compile(r"password\s*[:=]\s*\S+", re.IGNORECASE),
    re.compile(r"token\s*[:=]\s*\S+", re.IGNORECASE),
    re.compile(r"secret\s*[:=]\s*\S+", re.IGNORECASE),
    re.compile(r"key\s*[:=]\s*\S+", re.IGNORECASE),
    re.compile(r"authorization\s*[:=]\s*\S+", re.IGNORECASE),
]


def sanitize_error_message(message: str) -> str:
    """Redact credential-looking fragments from a message."""
    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub("[REDACTED]", sanitized)
    return sanitized


def generate_request_id() -> str:
    """Generate a request id for tracking, e.g. ``req_1718000000000_1a2b3c4d5``."""
    return f"req_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def error_response(
    status_code: int,
    message: str,
    exc: Optional[BaseException] = None,
    request_id: Optional[str] = None,
    debug: bool = False,
    extra: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """
    Build a JSON error response.

    Args:
        status_code: HTTP status code
        message: Human-readable message for the ``error`` field
        exc: Underlying exception (only exposed when ``debug`` is set)
        request_id: Request id echoed back to the caller
        debug: Development mode flag
        extra: Additional top-level fields

    Returns:
        JSONResponse with an ``error`` field
    """
    content: Dict[str, Any] = {"error": message}
    if extra:
        content.update(extra)
    if debug and exc is not None:
        content["details"] = sanitize_error_message(str(exc))
        content["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
    if request_id:
        content["requestId"] = request_id
    return JSONResponse(status_code=status_code, content=content)


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def install_exception_handlers(app: FastAPI, debug: bool = False) -> None:
    """Register handlers that translate exceptions into sanitized JSON bodies."""

    @app.exception_handler(BridgeError)
    async def handle_bridge_error(request: Request, exc: BridgeError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "request_failed",
            code=exc.code,
            status_code=exc.status_code,
            path=request.url.path,
            error=sanitize_error_message(str(exc)),
        )
        return error_response(
            exc.status_code,
            exc.user_message,
            exc=exc,
            request_id=_request_id(request),
            debug=debug,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg")}
            for err in exc.errors()
        ]
        logger.warning("validation_error", path=request.url.path, errors=errors)
        return error_response(
            400,
            "Validation failed",
            request_id=_request_id(request),
            extra={"details": errors},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "internal_server_error",
            path=request.url.path,
            error_type=type(exc).__name__,
        )
        return error_response(
            500,
            "Internal server error",
            exc=exc,
            request_id=_request_id(request),
            debug=debug,
        )
