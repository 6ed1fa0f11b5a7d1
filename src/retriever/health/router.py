"""Liveness, readiness and version probes."""

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from retriever.config import get_settings
from retriever.database import get_session
from retriever.redis_client import ping_redis

logger = structlog.get_logger()

router = APIRouter(tags=["Health"])

SERVICE_NAME = "item-retriever-api"


async def _check_database(db: AsyncSession) -> str:
    try:
        await db.scalar(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("readiness_database_failed", error=str(exc))
        return f"error: {exc}"
    return "ok"


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "healthy"}


@router.get("/ready", response_model=None)
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object] | JSONResponse:
    """
    Readiness probe.

    Accounts cannot be created without the database, so a failed database
    check answers 503. Redis only backs rate limiting; losing it degrades
    the service but keeps it ready.
    """
    checks = {"database": await _check_database(db), "redis": await ping_redis()}

    if checks["database"] != "ok":
        return JSONResponse(status_code=503, content={"status": "unavailable", "checks": checks})
    status = "ready" if checks["redis"] == "ok" else "degraded"
    return {"status": status, "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    settings = get_settings()
    return {
        "service": SERVICE_NAME,
        "version": settings.app_version,
        "environment": settings.environment,
    }
