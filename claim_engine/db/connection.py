"""
Database Connection Management
Process-wide async engine and session factory for the claims store.
Source: https://docs.sqlalchemy.org/en/20/orm/extensions/asyncio.html
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from claim_engine.api.config import settings
from claim_engine.models.base import Base
from claim_engine.utils.errors import describe_error
from claim_engine.utils.logging import get_logger

logger = get_logger(__name__)


_engine: AsyncEngine | None = None
_async_session_maker: async_sessionmaker[AsyncSession] | None = None


def _engine_options(url: str) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": settings.DEBUG}
    if settings.is_testing or url.startswith("sqlite"):
        # No pool sizing for SQLite or test runs
        options["poolclass"] = NullPool
        return options
    options.update(
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_pre_ping=True,
    )
    return options


def get_engine() -> AsyncEngine:
    """Engine singleton, created on first use."""
    global _engine

    if _engine is None:
        url = settings.database_url
        _engine = create_async_engine(url, **_engine_options(url))
        logger.info(f"Claims database engine ready: {settings.database_location}")

    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """
    Session factory singleton.

    Sessions keep loaded attributes after commit and never autoflush; the
    services flush and commit their own units of work.
    """
    global _async_session_maker

    if _async_session_maker is None:
        _async_session_maker = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    return _async_session_maker


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency: one session per request.

    Work still pending when the handler returns is committed; any error
    rolls the session back before propagating.
    """
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Request session rolled back: {describe_error(e)}")
            raise


async def create_tables() -> None:
    """create_all for development databases; production uses managed schemas."""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Created {len(Base.metadata.tables)} claim engine tables")


async def close_db_connection() -> None:
    global _engine, _async_session_maker

    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _async_session_maker = None
    logger.info("Claims database engine disposed")


async def check_db_connection() -> bool:
    """True when SELECT 1 succeeds; failures are logged, not raised."""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Claims database unreachable: {describe_error(e)}")
        return False
    return True
