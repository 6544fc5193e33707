"""Database wiring: the asyncpg engine, session factory, and transaction helpers.

Request handlers get a session through ``get_session``; background work
(poller, event subscribers) opens its own with ``session_scope``. Both
commit on success and roll back on error.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from rivor.config import settings

logger = logging.getLogger(__name__)


def build_engine(url: str | None = None) -> AsyncEngine:
    return create_async_engine(
        url or settings.db.database_url,
        echo=settings.log_level == "DEBUG",
        pool_size=settings.db.pool_size,
        max_overflow=settings.db.max_overflow,
        pool_pre_ping=True,
    )


engine = build_engine()

# expire_on_commit=False: services return ORM objects that are read after commit
async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@contextlib.asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """One session, one transaction."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency wrapping ``session_scope``."""
    async with session_scope() as session:
        yield session


@contextlib.asynccontextmanager
async def db_lifespan() -> AsyncIterator[None]:
    """Check connectivity on startup (creating tables outside production); dispose the pool on exit."""
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        if settings.db.create_tables and not settings.is_production:
            from rivor.models import Base

            await conn.run_sync(Base.metadata.create_all)
            logger.info("Ensured %d tables exist", len(Base.metadata.tables))
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Database pool disposed")
