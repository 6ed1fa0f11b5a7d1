"""Async engine and per-request sessions.

PostgreSQL (asyncpg) in deployment, SQLite (aiosqlite) under test.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

_engine: AsyncEngine | None = None
_sessions: async_sessionmaker[AsyncSession] | None = None

_NOT_INITIALISED = "Database not initialized. Call init_db() first."


def _engine_options(url: str) -> dict[str, Any]:
    options: dict[str, Any] = {"pool_pre_ping": True}
    if make_url(url).get_backend_name() == "postgresql":
        # statement cache off: PgBouncer in transaction mode
        options.update(pool_size=10, max_overflow=10, connect_args={"statement_cache_size": 0})
    return options


async def init_db(url: str) -> None:
    global _engine, _sessions  # noqa: PLW0603
    _engine = create_async_engine(url, **_engine_options(url))
    _sessions = async_sessionmaker(_engine, expire_on_commit=False)


async def create_tables() -> None:
    """Create the schema straight from the ORM metadata. Deployments use Alembic."""
    from retriever.db import models  # noqa: F401
    from retriever.db.base import Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    global _engine, _sessions  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _sessions = None


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALISED)
    return _engine


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, rolled back if the handler raises."""
    if _sessions is None:
        raise RuntimeError(_NOT_INITIALISED)
    async with _sessions() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
