import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.auth import get_current_user
from app.core.database import get_db
from app.main import app
from app.models import Base
from app.schemas.auth import TokenData

from tests.fakes import FakeStripeService

TEST_USER = TokenData(user_id="user_1", email="user1@example.com", name="User One")


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async def init_models() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(init_models())
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_stripe():
    return FakeStripeService()


@pytest.fixture
def user():
    return TEST_USER


@pytest.fixture
def client(session_factory, fake_stripe):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: TEST_USER
    app.state.stripe_service = fake_stripe
    yield TestClient(app)
    app.dependency_overrides.clear()
    del app.state.stripe_service


@pytest.fixture
def run(session_factory):
    """Run an async seeding function with its own session from sync tests"""
    def _run(fn, *args, **kwargs):
        async def _inner():
            async with session_factory() as session:
                return await fn(session, *args, **kwargs)
        return asyncio.run(_inner())
    return _run
