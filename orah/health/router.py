"""Health check endpoints."""

from fastapi import APIRouter, Request

from orah.config import get_settings
from orah.core.database import AsyncCassandraConnection
from orah.core.redis import get_redis


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool]:
    """Readiness probe - reports the database, Redis and the job scheduler.

    Only Cassandra is required; without Redis jobs run unlocked.
    """
    settings = get_settings()
    scheduler = getattr(request.app.state, "job_scheduler", None)
    cassandra_ok = AsyncCassandraConnection.is_connected()
    return {
        "status": "ready" if cassandra_ok else "degraded",
        "environment": settings.environment,
        "cassandra": cassandra_ok,
        "redis": get_redis() is not None,
        "scheduler": scheduler is not None and scheduler.running,
    }


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
