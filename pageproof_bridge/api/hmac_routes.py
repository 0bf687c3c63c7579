"""
HMAC Routes
===========
Issues signed timestamps to callers holding the shared secret.
"""

import time

import structlog
from fastapi import APIRouter, Request

from ..errors import SecretUnavailable, error_response
from ..internal_auth import SECRET_KEY_HEADER, first_header
from ..logging import client_ip, log_security_event
from .schemas import SignedTimestamp

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/hmac", tags=["HMAC"])


@router.get("/generate-hmac", response_model=SignedTimestamp)
async def generate_hmac(request: Request):
    """
    Return a signature for the current epoch-millisecond timestamp.
    
    The caller proves knowledge of the signing secret via ``x-secret-key``.
    """
    services = request.app.state.services
    verifier = services.hmac_verifier
    request_id = getattr(request.state, "request_id", None)
    start = time.perf_counter()

    try:
        provided = first_header(request.headers, SECRET_KEY_HEADER)
        if not await verifier.validate_secret(provided):
            log_security_event(
                "hmac_generation_unauthorized",
                client_ip=client_ip(request),
                user_agent=request.headers.get("user-agent"),
            )
            return error_response(401, "Invalid or missing x-secret-key header", request_id=request_id)

        timestamp = str(verifier.now_ms())
        signature = await verifier.generate_signature(timestamp)
    except SecretUnavailable as e:
        logger.error("hmac_generation_failed", error=str(e))
        return error_response(500, "Failed to generate HMAC signature", request_id=request_id)

    logger.info(
        "hmac_signature_generated",
        client_ip=client_ip(request),
        duration_ms=round((time.perf_counter() - start) * 1000, 2),
    )
    return SignedTimestamp(timestamp=timestamp, signature=signature)
