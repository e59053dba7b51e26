"""Pytest configuration and fixtures for testing."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Awaitable, Callable
from unittest.mock import AsyncMock, MagicMock

import fakeredis
import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from artbid.core.database import Base
from artbid.models.auction import STATUS_ACTIVE, Auction
from artbid.services.connection_registry import ConnectionRegistry


def enable_immediate_transactions(engine: AsyncEngine) -> None:
    """Make every SQLite transaction take the write lock up front.

    Without this, two sessions that both read before writing fail with
    "database is locked" on the lock upgrade instead of queueing.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


# Mock Redis client fixture
@pytest.fixture
def mock_redis() -> AsyncMock:
    """Create a mock Redis client."""
    redis = AsyncMock()

    # Mock common Redis operations
    redis.hset = AsyncMock(return_value=1)
    redis.hgetall = AsyncMock(return_value={})
    redis.smembers = AsyncMock(return_value=set())
    redis.scard = AsyncMock(return_value=0)
    redis.delete = AsyncMock(return_value=1)

    # Lua scripts: register_script is synchronous, the script object is awaited
    redis.script = AsyncMock(return_value=None)
    redis.register_script = MagicMock(return_value=redis.script)

    return redis


# In-memory Redis that runs the registry's Lua scripts and pub/sub
@pytest_asyncio.fixture
async def fake_redis() -> AsyncGenerator[fakeredis.FakeAsyncRedis, None]:
    redis = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield redis
    await redis.flushall()
    await redis.aclose()


# Mock registry fixture for broadcast and API tests
@pytest.fixture
def mock_registry() -> MagicMock:
    """Create a mock ConnectionRegistry with no subscribers."""
    registry = MagicMock(spec=ConnectionRegistry)
    registry.register = AsyncMock(return_value=None)
    registry.subscribe = AsyncMock(return_value=None)
    registry.disconnect = AsyncMock(return_value=True)
    registry.unsubscribe = AsyncMock(return_value=True)
    registry.find_by_auction = AsyncMock(return_value=[])
    registry.find_wildcard = AsyncMock(return_value=[])
    registry.owners = AsyncMock(return_value={})
    return registry


# Database fixtures (file-backed SQLite so concurrent sessions see one database)
@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'artbid.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    enable_immediate_transactions(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest.fixture
def make_auction(session_maker) -> Callable[..., Awaitable[Auction]]:
    """Factory inserting an auction; defaults to an active one open for an hour."""

    async def factory(**overrides) -> Auction:
        now = datetime.now(timezone.utc)
        starting_bid = Decimal(str(overrides.pop("starting_bid", "500.00")))
        values = {
            "title": "Harbour at Dusk",
            "seller_id": "seller-1",
            "images": [],
            "starting_bid": starting_bid,
            "current_bid": starting_bid,
            "bid_increment": Decimal("1.00"),
            "bid_count": 0,
            "status": STATUS_ACTIVE,
            "start_time": now - timedelta(hours=1),
            "end_time": now + timedelta(hours=1),
        }
        values.update(overrides)

        async with session_maker() as session:
            auction = Auction(**values)
            session.add(auction)
            await session.commit()
            await session.refresh(auction)
            return auction

    return factory

