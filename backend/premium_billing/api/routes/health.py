from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from premium_billing.db import ping_database, ping_redis

router = APIRouter()

SERVICE_NAME = "premium-billing"


@router.get("/health")
async def health_check(request: Request):
    """Liveness probe for the load balancer.

    Returns 503 after SIGTERM so traffic drains before shutdown.
    """
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(status_code=503, content={"status": "shutting_down", "service": SERVICE_NAME})
    return {"status": "healthy", "service": SERVICE_NAME}


@router.get("/ready")
async def readiness_check(request: Request):
    """Readiness probe: the database and Redis must both answer."""
    checks = {
        "database": await ping_database(request.app.state.session_factory),
        "redis": await ping_redis(request.app.state.redis),
    }
    ready = all(checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "degraded", "checks": checks},
    )
