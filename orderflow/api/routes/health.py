import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from orderflow.core.config import get_settings

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Liveness check.

    Returns 503 during graceful shutdown so the load balancer stops routing traffic.
    """
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(
            status_code=503,
            content={"status": "shutting_down", "service": "orderflow"},
        )
    return {"status": "healthy", "service": "orderflow"}


@router.get("/ready")
async def readiness_check():
    """Readiness check - verifies the database (and Redis, when notifications are on)."""
    checks = {"database": False}

    try:
        from orderflow.db.base import get_session_factory

        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error("readiness_database_failed", error=str(e))

    if get_settings().notifications_enabled:
        checks["redis"] = False
        try:
            from orderflow.db.redis import get_redis

            redis = get_redis()
            if redis is not None:
                await redis.ping()
                checks["redis"] = True
        except Exception as e:
            logger.error("readiness_redis_failed", error=str(e))

    all_healthy = all(checks.values())
    status_code = 200 if all_healthy else 503

    return JSONResponse(
        status_code=status_code,
        content={"status": "ready" if all_healthy else "degraded", "checks": checks},
    )
