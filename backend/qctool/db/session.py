"""Database session management."""
from typing import AsyncGenerator

import sqlalchemy
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from qctool.core.config import get_settings

settings = get_settings()

sqlite_connect_args = {"check_same_thread": False}
pool_kwargs = {}
if "sqlite" in settings.database_url:
    sqlite_connect_args.update({
        "timeout": 30,  # seconds to wait on a locked database
    })
else:
    pool_kwargs = {
        "pool_size": 5,
        "max_overflow": 10,
    }

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    connect_args=sqlite_connect_args if "sqlite" in settings.database_url else {},
    **pool_kwargs,
)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=True,
)


# ============================================================================
# Sync Session Factory for Celery Workers
# ============================================================================
# Celery workers cannot use async drivers (asyncpg/aiosqlite) without an event
# loop, so the worker side gets its own sync engine.

sync_database_url = settings.get_sync_database_url()

sync_pool_kwargs = {}
if "sqlite" in sync_database_url:
    sync_connect_args = {"check_same_thread": False}
else:
    sync_connect_args = {}
    sync_pool_kwargs = {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_pre_ping": True,
    }

sync_engine = create_engine(
    sync_database_url,
    echo=settings.debug,
    connect_args=sync_connect_args,
    **sync_pool_kwargs,
)

SyncSessionLocal = sessionmaker(
    bind=sync_engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base ORM model."""
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Database session dependency."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db():
    """Initialize database tables."""
    # Register models with Base.metadata
    from qctool.db import models  # noqa: F401

    async with engine.begin() as conn:
        if "sqlite" in str(engine.url):
            await conn.execute(sqlalchemy.text("PRAGMA journal_mode=WAL"))
            await conn.execute(sqlalchemy.text("PRAGMA synchronous=NORMAL"))
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database connections."""
    await engine.dispose()
    sync_engine.dispose()
