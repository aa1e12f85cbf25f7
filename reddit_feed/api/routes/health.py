"""
Health check endpoint.
"""

import time

from fastapi import APIRouter, Depends

from reddit_feed import __version__
from reddit_feed.api.dependencies import get_database
from reddit_feed.api.models import ComponentHealth, HealthResponse
from reddit_feed.config.settings import get_settings
from reddit_feed.storage.database import Database

router = APIRouter()


async def _check_database(db: Database | None) -> ComponentHealth:
    """Check database connectivity and measure latency."""
    if db is None:
        if get_settings().store_configured:
            return ComponentHealth(status="unhealthy", details={"error": "connection failed"})
        return ComponentHealth(status="disabled")
    start = time.perf_counter()
    healthy = await db.health_check()
    latency_ms = (time.perf_counter() - start) * 1000
    return ComponentHealth(
        status="healthy" if healthy else "unhealthy",
        latency_ms=round(latency_ms, 2),
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(db: Database | None = Depends(get_database)) -> HealthResponse:
    """
    Status logic:
    - unhealthy: Reddit client credentials missing
    - degraded: credential database configured but unreachable
    - healthy: otherwise
    """
    settings = get_settings()
    db_health = await _check_database(db)

    if not settings.reddit_configured:
        overall = "unhealthy"
    elif db_health.status == "unhealthy":
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        reddit_configured=settings.reddit_configured,
        components={"database": db_health},
        version=__version__,
    )
