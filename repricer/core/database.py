"""
PostgreSQL access for the execution history.

The engine is built on first use so that importing the application does
not require a reachable database or an installed driver.
"""
from functools import lru_cache
from typing import Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from repricer.core.config import get_settings
from repricer.models.database import Base


@lru_cache
def get_engine() -> AsyncEngine:
    settings = get_settings()
    return create_async_engine(
        str(settings.database_url),
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        echo=settings.app_debug,
    )


@lru_cache
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    """Create the history tables if they do not exist."""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def check_database_connection() -> tuple[bool, Optional[str]]:
    """
    Run a trivial query.

    Returns:
        tuple: (is_connected, error_message)
    """
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True, None
    except (SQLAlchemyError, OSError) as e:
        return False, str(e)


async def close_db() -> None:
    if get_engine.cache_info().currsize:
        await get_engine().dispose()
