"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import text

from mathtutor.config import get_settings
from mathtutor.database import get_session_factory
from mathtutor.dependencies import get_redis_dep

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe; 200 while the process is alive."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(redis=Depends(get_redis_dep)) -> dict[str, object]:  # noqa: B008
    """Readiness probe. The database is required; Redis is reported but optional."""
    checks: dict[str, object] = {}

    try:
        async with get_session_factory()() as db:
            result = await db.execute(text("SELECT 1"))
            result.scalar()
        checks["database"] = "ok"
    except Exception as exc:  # noqa: BLE001
        checks["database"] = f"error: {exc}"

    if redis is None:
        checks["redis"] = "disabled"
    else:
        try:
            await redis.ping()
            checks["redis"] = "ok"
        except Exception as exc:  # noqa: BLE001
            checks["redis"] = f"error: {exc}"

    ready = checks["database"] == "ok" and checks["redis"] in ("ok", "disabled")
    return {"status": "ready" if ready else "degraded", "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
    }
