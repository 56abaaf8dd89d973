"""Shared test fixtures.

Tests run against in-memory SQLite (aiosqlite) by default. Set
GRW_TEST_DATABASE_URL to a PostgreSQL URL to run them against a real server;
the tables are dropped and recreated for every test.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from goalrewards.auth.jwt import create_access_token, reset_keys
from goalrewards.config import get_settings
from goalrewards.database import get_session
from goalrewards.db.base import Base
from goalrewards.db.models import User
from goalrewards.gamification.seed import seed_badges
from goalrewards.main import create_app
from goalrewards.users.service import provision_user

TEST_DATABASE_URL = os.environ.get("GRW_TEST_DATABASE_URL", "sqlite+aiosqlite://")


def _make_engine(url: str) -> AsyncEngine:
    if not url.startswith("sqlite"):
        return create_async_engine(url)

    engine = create_async_engine(
        url,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _record):  # noqa: ANN001
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):  # noqa: ANN001
        conn.exec_driver_sql("BEGIN")

    return engine


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    eng = _make_engine(TEST_DATABASE_URL)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """A session with the badge catalog seeded."""
    async with session_factory() as session:
        await seed_badges(session)
        yield session


UserFactory = Callable[..., Awaitable[User]]


@pytest.fixture
def make_user(db_session: AsyncSession) -> UserFactory:
    """Provision and commit a user with empty balances."""
    counter = {"n": 0}

    async def _make(username: str | None = None, role: str = "user") -> User:
        counter["n"] += 1
        user = await provision_user(db_session, username or f"fan{counter['n']}", role=role)
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    """Bearer headers signed with the configured HS256 secret."""
    get_settings.cache_clear()
    reset_keys()

    def _headers(user_id: int, role: str = "user") -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}

    return _headers


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the test database. Redis is not configured, so pushes are skipped."""
    app = create_app()

    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
