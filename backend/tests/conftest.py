"""Pytest configuration and fixtures."""
from collections.abc import AsyncGenerator, Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from qctool.core.cache import InMemoryCache, ResultCache
from qctool.db import models  # noqa: F401  registers ORM models with Base.metadata
from qctool.db.session import Base


# =============================================================================
# Database Fixtures
# =============================================================================
@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Async DB session for API and repository tests.

    Every test gets its own in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    await engine.dispose()


@pytest.fixture(scope="function")
def sync_session_factory() -> Generator[sessionmaker, None, None]:
    """
    Sync session factory, as used by Celery workers.

    All sessions from one factory share a single in-memory database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )

    engine.dispose()


@pytest.fixture
def sync_db(sync_session_factory) -> Generator[Session, None, None]:
    """A single sync session."""
    with sync_session_factory() as session:
        yield session


# =============================================================================
# Cache Fixtures
# =============================================================================
@pytest.fixture
def result_cache() -> ResultCache:
    """Result cache on the in-memory backend."""
    return ResultCache(InMemoryCache(max_size=100))
