"""Health check endpoints for liveness and readiness probes."""
from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from subscription_analytics.api.deps import get_services
from subscription_analytics.services.provider import ServiceProvider

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health", status_code=status.HTTP_200_OK, tags=["Health"])
async def health_check() -> dict[str, str]:
    """
    Liveness probe.

    Returns basic health status if the service is alive (process running).
    Does not check external dependencies.

    Returns:
        dict: Health status with timestamp
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "0.1.0",
    }


@router.get("/health/ready", tags=["Health"])
async def readiness_check(services: ServiceProvider = Depends(get_services)) -> JSONResponse:
    """
    Readiness probe.

    Redis must answer. Stripe is reported as configured or not, but no
    remote call is made.

    Returns:
        JSONResponse: Readiness status with dependency checks
    """
    checks = {
        "redis": "unknown",
        "stripe": "configured" if services.settings.stripe_secret_key else "not_configured",
    }
    ready = True

    ping = getattr(services.cache_backend, "ping", None)
    if ping is None or await ping():
        checks["redis"] = "connected"
    else:
        logger.error("redis_health_check_failed")
        checks["redis"] = "disconnected"
        ready = False

    status_code = status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE

    return JSONResponse(
        status_code=status_code,
        content={
            "ready": ready,
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
