import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from manaquery.api.translate import get_live_validator, get_query_translator
from manaquery.db.database import get_session
from manaquery.main import app
from manaquery.models.db import Base
from manaquery.services.query_cache import reset_query_cache
from manaquery.services.rate_limiter import reset_rate_limiter


@pytest.fixture(autouse=True)
def reset_shared_state():
    """Fresh rate-limit windows and cache tier for every test."""
    reset_rate_limiter()
    reset_query_cache()
    yield
    reset_rate_limiter()
    reset_query_cache()


@pytest.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def session(async_engine) -> AsyncSession:
    """Provide a database session for tests."""
    async_session = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:
        yield session


@pytest.fixture
async def client(async_engine):
    """
    Async test client with an in-memory database.

    Live validation and the AI fallback are switched off; tests that need
    them override the dependencies themselves.
    """
    async_session = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_session():
        async with async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_live_validator] = lambda: None
    app.dependency_overrides[get_query_translator] = lambda: None

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
