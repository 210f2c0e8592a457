"""Database connection and session handling for the monitor service."""

from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from src.config import get_settings


@lru_cache
def get_engine() -> AsyncEngine:
    """Create the engine on first use so importing models needs no DATABASE_URL."""
    return create_async_engine(get_settings().database_url, echo=False, pool_pre_ping=True)


@lru_cache
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(get_engine(), expire_on_commit=False)

