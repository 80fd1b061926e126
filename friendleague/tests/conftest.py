"""
Shared pytest configuration for friendleague tests.

Service tests run against an in-memory SQLite database through aiosqlite,
so no PostgreSQL server is needed. Route tests build their own file-backed
database (see test_api_routes.py).
"""

import os

# Must be set before the app is imported: disables rate limiting
os.environ.setdefault("ENV", "test")

import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402

from friendleague.database.db import Base  # noqa: E402
from friendleague.database.models import User  # noqa: E402


@pytest_asyncio.fixture
async def db_session():
    """Create a test database session backed by in-memory SQLite."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_maker() as session:
        yield session

    await engine.dispose()


async def _create_user(db_session, username):
    """Helper: create a user, return its id."""
    user = User(username=username, email=f"{username}@example.com")
    db_session.add(user)
    await db_session.flush()
    return user.id


@pytest_asyncio.fixture
async def users(db_session):
    """Create five users and return their ids by name."""
    ids = {}
    for name in ("alice", "bob", "carol", "dave", "erin"):
        ids[name] = await _create_user(db_session, name)
    await db_session.commit()
    return ids
