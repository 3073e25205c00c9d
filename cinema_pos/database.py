"""
SQL engine and session handling for rooms, showtimes and bookings.

Seat holds are not stored here; they live in Redis (see ``cache.py``).
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
    AsyncEngine,
)

from .config import get_settings
from .models.base import Base
from .cache import init_cache, close_cache

logger = logging.getLogger(__name__)

engine: AsyncEngine | None = None
async_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_database_engine(database_url: str | None = None) -> AsyncEngine:
    settings = get_settings()
    url = database_url or settings.database_url

    if url.startswith("sqlite"):
        # Dev and tests: a single file, no pool tuning
        return create_async_engine(url, echo=settings.debug)

    return create_async_engine(
        url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        pool_recycle=1800,
        echo=settings.debug,
        connect_args={"server_settings": {"application_name": settings.app_name}},
    )


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Booking responses read ORM attributes after commit
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


async def create_tables(target: AsyncEngine) -> None:
    """Create any missing tables. Alembic owns schema changes after that."""
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_database() -> None:
    """Open the SQL engine and the Redis connection used for seat holds."""
    global engine, async_session_factory

    engine = create_database_engine()
    async_session_factory = create_session_factory(engine)
    await create_tables(engine)
    logger.info(f"Booking database ready ({engine.url.get_backend_name()})")

    await init_cache()


async def close_database() -> None:
    global engine, async_session_factory

    if engine is not None:
        await engine.dispose()
        engine = None
        async_session_factory = None
        logger.info("Booking database closed")

    await close_cache()


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Session that commits on success and rolls back on any error."""
    if async_session_factory is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session."""
    async with get_db_session() as session:
        yield session
