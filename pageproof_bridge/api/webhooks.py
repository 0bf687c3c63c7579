"""
Webhook Routes
==============
Receives PageProof webhooks and relays them to PowerApps.

Each request is handled in a fixed order: body validated against its
schema (400), signature verified over the raw body bytes (403), event
relayed (502 on relay failure), acknowledgement returned.
"""

import json
import time
from typing import Any, Dict, Optional, Type, Union

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from ..internal_auth import WEBHOOK_SIGNATURE_HEADER, first_header
from ..logging import client_ip, log_performance
from ..metrics import MetricNames
from .schemas import OverdueWebhook, ProofWebhook, WebhookAck

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

PROOF_STATUS_EVENT = "proof_status"
PROOF_OVERDUE_EVENT = "proof_overdue"


def _rejection(status_code: int, error: str, details: Any = None) -> JSONResponse:
    content: Dict[str, Any] = {"statusCode": status_code, "error": error}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def _parse_body(raw_body: bytes, schema: Type[BaseModel]) -> Union[BaseModel, JSONResponse]:
    try:
        data = json.loads(raw_body or b"null")
    except ValueError:
        return _rejection(400, "Invalid body", [{"loc": [], "msg": "Body is not valid JSON"}])
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        return _rejection(400, "Invalid body", json.loads(e.json(include_url=False)))


async def _validate_and_verify(
    request: Request,
    schema: Type[BaseModel],
    context: str,
) -> Union[BaseModel, JSONResponse]:
    services = request.app.state.services
    raw_body = await request.body()
    request.state.raw_body = raw_body

    parsed = _parse_body(raw_body, schema)
    if isinstance(parsed, JSONResponse):
        logger.warning("webhook_invalid_body", handler=context, client_ip=client_ip(request))
        return parsed

    signature: Optional[str] = first_header(request.headers, WEBHOOK_SIGNATURE_HEADER)
    is_valid = await services.webhook_verifier.is_signed(raw_body, signature)
    services.metrics.increment(
        MetricNames.WEBHOOK_SIGNATURES,
        labels={"result": "valid" if is_valid else "invalid"},
    )
    if not is_valid:
        logger.warning("webhook_invalid_signature", handler=context, client_ip=client_ip(request))
        return _rejection(403, "Invalid signature")
    return parsed


def _relay_payload(body: BaseModel) -> Dict[str, Any]:
    return body.model_dump(by_alias=True, exclude_none=True)


@router.post("/proof-status")
async def proof_status(request: Request):
    """Relay a proof status change."""
    start = time.perf_counter()
    parsed = await _validate_and_verify(request, ProofWebhook, "proof_status")
    if isinstance(parsed, JSONResponse):
        return parsed

    payload = _relay_payload(parsed)
    await request.app.state.services.relay.send(PROOF_STATUS_EVENT, payload)
    log_performance("webhook_proof_status", (time.perf_counter() - start) * 1000, proof_id=parsed.proof.id)
    return WebhookAck(
        message=f"Proof {parsed.proof.id} status '{parsed.proof.status}' processed",
        proofData=payload["proof"],
    ).model_dump(exclude_none=True)


@router.post("/overdue")
async def proof_overdue(request: Request):
    """Relay an overdue proof notification."""
    start = time.perf_counter()
    parsed = await _validate_and_verify(request, OverdueWebhook, "proof_overdue")
    if isinstance(parsed, JSONResponse):
        return parsed

    payload = _relay_payload(parsed)
    await request.app.state.services.relay.send(PROOF_OVERDUE_EVENT, payload)
    log_performance("webhook_proof_overdue", (time.perf_counter() - start) * 1000, proof_id=parsed.proof.id)
    return WebhookAck(
        message=f"Overdue proof {parsed.proof.id} processed",
        overdueData=payload["proof"],
    ).model_dump(exclude_none=True)
