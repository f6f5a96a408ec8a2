"""Async engine and session plumbing for the tracker database.

The HTTP surface only reads, so request handlers get a read-only session.
Writes happen in the refresh pipeline and the CLI, which open their own
sessions from ``app.state.session_maker`` (or a locally built maker) and
commit explicitly.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from typing import Annotated, NamedTuple, TypedDict

from fastapi import Depends, Request
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import QueuePool

from core.config import get_settings

logger = logging.getLogger(__name__)

CONNECT_CHECK_TIMEOUT_SECONDS = 30


class Base(DeclarativeBase):
    pass


class PoolStatus(NamedTuple):
    pool_size: int
    checked_out: int
    overflow: int
    checked_in: int


class HealthCheckResult(TypedDict):
    database: bool
    pool: PoolStatus | None


def _warn_on_pool_overflow(engine: AsyncEngine) -> None:
    """Log whenever a checkout has to borrow an overflow connection.

    A refresh batch holds one connection per in-flight user, so sustained
    overflow usually means ``refresh_concurrency`` exceeds ``db_pool_size``.
    """
    pool = engine.sync_engine.pool
    if not isinstance(pool, QueuePool):
        return

    @event.listens_for(pool, "checkout")
    def _checkout(dbapi_conn, connection_record, connection_proxy):
        overflow = pool.overflow()
        if overflow <= 0:
            return
        logger.warning(
            "db.pool.overflow",
            extra={
                "db_pool_size": pool.size(),
                "db_pool_checked_out": pool.checkedout(),
                "db_pool_overflow_count": overflow,
            },
        )


def create_engine() -> AsyncEngine:
    settings = get_settings()
    engine = create_async_engine(
        settings.database_url,
        echo=settings.db_echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_pool_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        connect_args={
            "server_settings": {
                "statement_timeout": str(settings.db_statement_timeout_ms)
            }
        },
    )
    _warn_on_pool_overflow(engine)
    return engine


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Records are handed to the caller after commit, so keep them loaded
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def get_db_readonly(request: Request) -> AsyncGenerator[AsyncSession]:
    """Yield a session whose transaction PostgreSQL will refuse to write in."""
    session_maker: async_sessionmaker[AsyncSession] = request.app.state.session_maker
    async with session_maker() as session:
        await session.execute(text("SET TRANSACTION READ ONLY"))
        try:
            yield session
        finally:
            # Nothing to keep; end the transaction before the session closes
            await session.rollback()


DbSessionReadOnly = Annotated[AsyncSession, Depends(get_db_readonly)]


async def check_db_connection(engine: AsyncEngine) -> None:
    async with asyncio.timeout(CONNECT_CHECK_TIMEOUT_SECONDS):
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            await conn.rollback()


async def init_db(engine: AsyncEngine) -> None:
    """Fail startup early if the database cannot be reached.

    Tables come from Alembic; see ``create_tables`` for a local shortcut.
    """
    await check_db_connection(engine)
    logger.info("db.reachable")


async def create_tables(engine: AsyncEngine) -> None:
    """Create every mapped table directly, skipping migrations."""
    import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("db.tables.created", extra={"tables": len(Base.metadata.tables)})


async def dispose_engine(engine: AsyncEngine) -> None:
    await engine.dispose()
    logger.info("db.engine.disposed")


def get_pool_status(engine: AsyncEngine) -> PoolStatus | None:
    pool = engine.sync_engine.pool
    if not isinstance(pool, QueuePool):
        return None
    return PoolStatus(
        pool_size=pool.size(),
        checked_out=pool.checkedout(),
        overflow=pool.overflow(),
        checked_in=pool.checkedin(),
    )


async def comprehensive_health_check(engine: AsyncEngine) -> HealthCheckResult:
    """Check the database and report pool usage alongside."""
    reachable = True
    try:
        await check_db_connection(engine)
    except Exception:
        logger.warning("db.health_check.failed", exc_info=True)
        reachable = False
    return {"database": reachable, "pool": get_pool_status(engine)}
