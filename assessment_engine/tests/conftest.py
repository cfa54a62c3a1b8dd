"""
Shared fixtures: a throwaway SQLite database per test and an HTTP client
bound to the app with the database dependency overridden.
"""
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_engine.database import build_engine, build_sessionmaker, init_db, get_db
from assessment_engine.main import app
from assessment_engine.rate_limit import limiter


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed engine so independent sessions really are concurrent."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'assessment_test.db'}")
    await init_db(engine)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return build_sessionmaker(engine)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with a fresh database session per request."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    limiter.enabled = False

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    limiter.enabled = True


@pytest.fixture
def owner_id() -> str:
    return "learner-1"
