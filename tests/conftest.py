"""Shared test fixtures."""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

os.environ["RETRIEVER_JWT_ALGORITHM"] = "HS256"
os.environ["RETRIEVER_JWT_SECRET"] = "test-secret-for-jwt-signing-only-0123456789"
os.environ["RETRIEVER_LOG_FORMAT"] = "console"
os.environ["RETRIEVER_LOG_LEVEL"] = "WARNING"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from retriever.auth.jwt import reset_keys  # noqa: E402
from retriever.config import get_settings  # noqa: E402
from retriever.database import close_db, create_tables, get_session, init_db  # noqa: E402
from helpers import registration_payload  # noqa: E402

get_settings.cache_clear()
reset_keys()


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[str, None]:
    """Fresh SQLite database per test, schema created from the ORM metadata."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'retriever.db'}"
    await init_db(url)
    await create_tables()
    yield url
    await close_db()


@pytest.fixture
def mock_email_service(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    """Replace the email service singleton; every send succeeds unless told otherwise."""
    service = MagicMock()
    service.send_template = AsyncMock(return_value=True)
    monkeypatch.setattr("retriever.email.service._email_service", service)
    return service


@pytest.fixture
def app(database: str, mock_email_service: MagicMock) -> FastAPI:
    from retriever.main import create_app

    return create_app()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client bound to the app. Redis stays uninitialized."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def db_session(database: str) -> AsyncGenerator[AsyncSession, None]:
    sessions = get_session()
    session = await anext(sessions)
    yield session
    await sessions.aclose()


@pytest_asyncio.fixture
async def registered(client: AsyncClient) -> dict[str, Any]:
    """Register the default account; returns the response body."""
    response = await client.post("/api/v1/auth/register", json=registration_payload())
    assert response.status_code == 201, response.text
    return response.json()