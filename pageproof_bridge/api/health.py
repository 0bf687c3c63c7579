"""
Health Routes
=============
Liveness, readiness and component status for the bridge.
"""

import time
from typing import Any, Awaitable, Callable, Dict

import structlog
from fastapi import APIRouter, Request, Response
from fastapi.responses import PlainTextResponse

from ..metrics import MetricNames
from .schemas import ComponentHealth, HealthResponse, HealthStatus

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


async def _timed_check(check: Callable[[], Awaitable[Dict[str, Any]]]) -> ComponentHealth:
    start = time.perf_counter()
    try:
        result = await check()
    except Exception as e:
        logger.error("health_check_failed", error=str(e))
        return ComponentHealth(status="unhealthy", error=str(e))
    latency = (time.perf_counter() - start) * 1000
    return ComponentHealth(
        status=result.get("status", "unhealthy"),
        latency_ms=round(latency, 2),
        details=result.get("details"),
    )


def _overall(components: Dict[str, ComponentHealth]) -> HealthStatus:
    statuses = [c.status for c in components.values()]
    if all(s == "healthy" for s in statuses):
        return HealthStatus.HEALTHY
    # The signing secret is required for every authenticated route
    if components.get("hmac") is not None and components["hmac"].status != "healthy":
        return HealthStatus.UNHEALTHY
    return HealthStatus.DEGRADED


@router.get("", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    services = request.app.state.services
    return HealthResponse(
        status=HealthStatus.HEALTHY,
        service=services.config.service_name,
        version=services.config.version,
        environment=services.config.environment,
        uptime_seconds=round(services.uptime(), 3),
        timestamp=time.time(),
    )


@router.get("/detailed")
async def detailed(request: Request, response: Response) -> Dict[str, Any]:
    """Component health for the HMAC and webhook verifiers plus cache stats."""
    services = request.app.state.services
    components = {
        "hmac": await _timed_check(services.hmac_verifier.health_check),
        "webhook": await _timed_check(services.webhook_verifier.health_check),
    }
    status = _overall(components)
    if status == HealthStatus.UNHEALTHY:
        response.status_code = 503

    return {
        "status": status.value,
        "service": services.config.service_name,
        "version": services.config.version,
        "environment": services.config.environment,
        "uptime_seconds": round(services.uptime(), 3),
        "components": {name: c.model_dump(exclude_none=True) for name, c in components.items()},
        "cache": services.cache.stats().to_dict(),
        "relay": {"configured": services.relay.configured},
        "timestamp": time.time(),
    }


@router.get("/cache")
async def cache_status(request: Request) -> Dict[str, Any]:
    cache = request.app.state.services.cache
    return {
        "running": cache.running,
        "stats": cache.stats().to_dict(),
        "timestamp": time.time(),
    }


@router.get("/metrics")
async def metrics(request: Request, format: str = "json"):
    services = request.app.state.services
    services.metrics.set_gauge(MetricNames.CACHE_KEYS, len(services.cache))
    if format == "prometheus":
        return PlainTextResponse(services.metrics.export_prometheus())
    return {"metrics": services.metrics.snapshot(), "timestamp": time.time()}


@router.get("/ready")
async def readiness(request: Request):
    """Ready once the HMAC signing secret can be resolved."""
    services = request.app.state.services
    hmac_health = await _timed_check(services.hmac_verifier.health_check)
    if hmac_health.status != "healthy":
        return Response(
            content='{"status": "not_ready", "reason": "hmac_secret_unavailable"}',
            status_code=503,
            media_type="application/json",
        )
    return {"status": "ready"}


@router.get("/live")
async def liveness():
    return {"status": "alive"}
