"""Pytest fixtures for testing."""
import os
from collections.abc import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from models.base import Base
from services.blob_store import InMemoryBlobStore
from services.page_content_store import PageContentStore

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Must be set before anything triggers Settings validation
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """
    Create an in-memory database with all tables.

    StaticPool keeps a single connection so every session in the test sees
    the same in-memory database.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create an async session for a single test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    """Fresh in-memory blob store."""
    return InMemoryBlobStore()


@pytest.fixture
def content_store(blob_store: InMemoryBlobStore) -> PageContentStore:
    """Content store backed by the in-memory blob store."""
    return PageContentStore(blob_store)
