"""Item Retriever API application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import APIRouter, FastAPI

from retriever.auth.router import router as auth_router
from retriever.config import get_settings
from retriever.database import close_db, init_db
from retriever.email.service import get_email_service, reset_email_service
from retriever.health.router import router as health_router
from retriever.middleware import setup_middleware
from retriever.redis_client import close_redis, get_redis_or_none, init_redis
from retriever.users.router import router as users_router

logger = structlog.get_logger()

ROUTERS: tuple[APIRouter, ...] = (health_router, auth_router, users_router)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    get_email_service(redis=get_redis_or_none())
    logger.info(
        "api_started",
        environment=settings.environment,
        version=settings.app_version,
        email_provider=settings.email_provider,
    )

    yield

    reset_email_service()
    await close_db()
    await close_redis()
    logger.info("api_stopped")


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="Item Retriever API",
        description="Account registration and email activation for the Item Retriever lost-and-found service",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    setup_middleware(app, settings)
    for router in ROUTERS:
        app.include_router(router)
    return app


app = create_app()
