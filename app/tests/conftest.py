"""
Pytest configuration and fixtures for testing
"""
import asyncio
import os
import pytest
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from infrastructure.postgres_connection import Base
from models.friend_request import FriendRequest, canonical_pair_key
from models.profile import Profile
from datetime import datetime, UTC, timedelta


# Test database URL - using file-based SQLite to avoid in-memory connection issues
TEST_DATABASE_PATH = "./test_friend_requests.db"
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{TEST_DATABASE_PATH}"

ALICE = "user-alice"
BOB = "user-bob"
CAROL = "user-carol"


@pytest.fixture(scope="function")
async def db_engine():
    """Create a test database engine"""
    # Remove test database if it exists
    if os.path.exists(TEST_DATABASE_PATH):
        os.remove(TEST_DATABASE_PATH)

    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=NullPool,
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables and close
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()

    # Remove test database file
    if os.path.exists(TEST_DATABASE_PATH):
        os.remove(TEST_DATABASE_PATH)


@pytest.fixture(scope="function")
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database"""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def profiles(db_session: AsyncSession) -> dict:
    """Profiles for Alice and Bob; Carol has none"""
    alice = Profile(user_id=ALICE, full_name="Alice Liddell", avatar_url="https://cdn.test/alice.png")
    bob = Profile(user_id=BOB, full_name="Bob Builder", avatar_url=None)
    db_session.add_all([alice, bob])
    await db_session.commit()
    return {ALICE: alice, BOB: bob}


async def _add_request(
    db_session: AsyncSession,
    sender_id: str,
    receiver_id: str,
    status: str,
    created_at: datetime
) -> FriendRequest:
    friend_request = FriendRequest(
        sender_id=sender_id,
        receiver_id=receiver_id,
        pair_key=canonical_pair_key(sender_id, receiver_id),
        status=status,
        created_at=created_at,
    )
    db_session.add(friend_request)
    await db_session.commit()
    await db_session.refresh(friend_request)
    return friend_request


@pytest.fixture
async def pending_request(db_session: AsyncSession) -> FriendRequest:
    """Create a pending request from Alice to Bob"""
    return await _add_request(db_session, ALICE, BOB, "pending", datetime.now(UTC) - timedelta(minutes=5))


@pytest.fixture
async def accepted_request(db_session: AsyncSession) -> FriendRequest:
    """Create an accepted request from Carol to Alice"""
    return await _add_request(db_session, CAROL, ALICE, "accepted", datetime.now(UTC) - timedelta(days=1))


@pytest.fixture
async def unrelated_request(db_session: AsyncSession) -> FriendRequest:
    """Create a pending request from Bob to Carol (does not involve Alice)"""
    return await _add_request(db_session, BOB, CAROL, "pending", datetime.now(UTC) - timedelta(minutes=1))


@pytest.fixture
async def redis_client():
    """Create a test Redis client using fakeredis"""
    import fakeredis.aioredis

    redis = fakeredis.aioredis.FakeRedis(decode_responses=True)

    yield redis

    # Cleanup
    await redis.flushall()
    await redis.aclose()


@pytest.fixture
def wait_for():
    """Poll a predicate until it holds or the timeout expires"""
    async def _wait_for(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            if predicate():
                return True
            await asyncio.sleep(interval)
        return predicate()

    return _wait_for
