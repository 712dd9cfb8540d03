"""Shared test fixtures for pytest.

Env defaults are set before any application import so the cached settings
see a test environment with a model credential present.
"""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool


os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")

from dependencies.db import get_db
from dependencies.services import get_frame_sampler, get_vision_client
from main import app
from models.base import Base


pytest_plugins = ("tests.fixtures.assessment_fixtures",)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """In-memory SQLite session with the assessments table created."""
    engine: AsyncEngine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", future=True, poolclass=StaticPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    SessionLocal = async_sessionmaker(
        engine, expire_on_commit=False, class_=AsyncSession
    )
    async with SessionLocal() as session:
        yield session
    await engine.dispose()


@pytest_asyncio.fixture
async def async_client(
    db_session: AsyncSession, fake_vision_client, fake_frame_sampler
) -> AsyncGenerator[AsyncClient, None]:
    """Async client wired to SQLite, a fake vision client and a fake sampler."""

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_vision_client] = lambda: fake_vision_client
    app.dependency_overrides[get_frame_sampler] = lambda: fake_frame_sampler
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_vision_client, None)
    app.dependency_overrides.pop(get_frame_sampler, None)


@pytest.fixture(autouse=True)
def _clear_dependency_overrides():
    yield
    app.dependency_overrides.clear()
