"""
API Schemas
===========
Pydantic models for webhook bodies and route responses.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# =============================================================================
# Webhooks
# =============================================================================

class WebhookProof(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    status: str
    name: Optional[str] = None
    due_date: Optional[str] = Field(default=None, alias="dueDate")


class StatusProof(WebhookProof):
    approved_date: Optional[str] = Field(default=None, alias="approvedDate")


class WebhookTrigger(BaseModel):
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)


class ProofWebhook(BaseModel):
    """Body of a PageProof proof-status webhook."""
    proof: StatusProof
    trigger: Optional[WebhookTrigger] = None


class OverdueWebhook(BaseModel):
    """Body of a PageProof overdue webhook."""
    proof: WebhookProof


class WebhookAck(BaseModel):
    statusCode: int = 200
    message: str
    proofData: Optional[Dict[str, Any]] = None
    overdueData: Optional[Dict[str, Any]] = None


# =============================================================================
# HMAC
# =============================================================================

class SignedTimestamp(BaseModel):
    timestamp: str
    signature: str


# =============================================================================
# Health
# =============================================================================

class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    status: str
    latency_ms: Optional[float] = None
    details: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: HealthStatus
    service: str
    version: str
    environment: str
    uptime_seconds: float
    timestamp: float
