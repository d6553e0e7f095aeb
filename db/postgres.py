from __future__ import annotations

import logging
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from settings.config import settings

logger = logging.getLogger(__name__)

# Created on first use so importing this module never opens a connection
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def database_url() -> str:
    """pgbouncer when configured, otherwise Postgres directly."""
    return settings.PGBOUNCER_DSN or settings.POSTGRES_DSN


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _engine, _session_factory
    if _session_factory is None:
        _engine = create_async_engine(
            database_url(),
            pool_size=settings.POSTGRES_POOL_SIZE,
            max_overflow=settings.POSTGRES_MAX_OVERFLOW,
            pool_pre_ping=True,
            echo=settings.SQL_ECHO,
        )
        # Statement rows are read after commit (status polling, response bodies)
        _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _session_factory


async def get_async_session() -> AsyncIterator[AsyncSession]:
    """Request-scoped session; routes and services commit explicitly."""
    async with get_session_factory()() as session:
        yield session


async def init_postgres() -> None:
    get_session_factory()
    assert _engine is not None
    async with _engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("Database connection verified")


async def close_postgres() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
