"""
Bookings Database

Async SQLAlchemy 2.0 engine and session factory for the catalogue, customers
and bookings. Tests build their own engine with build_engine().
"""

import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from app.config import settings
from app.models.database import Base

logger = logging.getLogger(__name__)


def _connect_args(url: str) -> dict:
    """Driver timeouts so no store call blocks indefinitely."""
    if url.startswith("postgresql+asyncpg"):
        return {
            "timeout": settings.database_timeout,
            "command_timeout": settings.database_timeout,
        }
    return {}


def build_engine(url: str) -> AsyncEngine:
    """Create an async engine for the given URL."""
    return create_async_engine(
        url,
        echo=settings.debug,
        poolclass=NullPool,
        connect_args=_connect_args(url),
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessions keep loaded rows usable after commit."""
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(settings.database_url)

async_session_factory = build_session_factory(engine)


async def init_db(bind: AsyncEngine = engine) -> None:
    """
    Create missing tables.

    Development and tests only; production schemas are migrated.
    """
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the application engine on shutdown."""
    await engine.dispose()


async def check_db_health() -> bool:
    """Run SELECT 1 against the bookings database."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database health check failed: {e}")
        return False
