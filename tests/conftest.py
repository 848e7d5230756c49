"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from mathtutor.config import get_settings
from mathtutor.database import build_session_factory, create_schema
from mathtutor.dependencies import get_redis_dep, get_store
from mathtutor.main import create_app
from mathtutor.store import SqlProgressStore
from tests.fakes import InMemoryProgressStore


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch):
    """Pin settings that affect day boundaries and logging."""
    monkeypatch.setenv("MT_STUDY_TIMEZONE", "UTC")
    monkeypatch.setenv("MT_LOG_FORMAT", "console")
    monkeypatch.setenv("MT_REDIS_URL", "")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite database with the progress tables created."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'progress.db'}")
    await create_schema(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def store(session_factory) -> SqlProgressStore:
    return SqlProgressStore(session_factory)


@pytest.fixture
def memory_store() -> InMemoryProgressStore:
    return InMemoryProgressStore()


async def _no_redis() -> AsyncGenerator[object, None]:
    yield None


@pytest_asyncio.fixture
async def client(store) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the app with the SQL store and caching disabled."""
    app = create_app()
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_redis_dep] = _no_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def memory_client(memory_store) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the app backed by the in-memory store."""
    app = create_app()
    app.dependency_overrides[get_store] = lambda: memory_store
    app.dependency_overrides[get_redis_dep] = _no_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
