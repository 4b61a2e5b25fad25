import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")

from typing import AsyncGenerator, Callable

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.payment_gateway import get_gateway_factory
from app.db.session import Base, get_db
from app.main import app
from factories import FakeGateway


@pytest.fixture()
async def engine(tmp_path):
    """Fresh SQLite file per test; every session gets its own connection."""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", future=True)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture()
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Session for arranging and asserting; the app gets a separate session per request."""
    session_factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with session_factory() as session:
        yield session
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture()
def gateway() -> FakeGateway:
    fake = FakeGateway()

    def factory(api_key: str) -> FakeGateway:
        fake.api_keys.append(api_key)
        return fake

    app.dependency_overrides[get_gateway_factory] = lambda: factory
    yield fake
    app.dependency_overrides.pop(get_gateway_factory, None)


@pytest.fixture()
def gateway_factory(gateway: FakeGateway) -> Callable[[str], FakeGateway]:
    """Factory for calling services directly."""

    def factory(api_key: str) -> FakeGateway:
        gateway.api_keys.append(api_key)
        return gateway

    return factory


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

