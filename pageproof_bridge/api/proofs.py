"""
Proof Routes
============
Internal endpoints guarded by HMAC authentication.
"""

from typing import Any, Dict

from fastapi import APIRouter, Request

router = APIRouter(prefix="/proofs", tags=["Proofs"])


@router.get("/session")
async def session_status(request: Request) -> Dict[str, Any]:
    """Report which PageProof account the stored session belongs to."""
    services = request.app.state.services
    user = await services.lookup_session_user() if services.session_store is not None else None
    return {
        "authenticated": bool(getattr(request.state, "hmac_authenticated", False)),
        "sessionConfigured": services.session_store is not None,
        "sessionUser": user,
    }
