"""Async database plumbing for ResourcePlan.

Provides:
- Base: DeclarativeBase for all ORM rows
- build_engine: async engine for a URL (pool options only where the driver has a pool)
- engine / async_session_factory: process-wide instances built from settings
- get_async_session: FastAPI dependency with Unit-of-Work commit/rollback
- ping_database: connectivity probe used by /health
"""

import logging
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from resourceplan.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass


def build_engine(settings: Settings) -> AsyncEngine:
    kwargs: dict[str, Any] = {"echo": settings.DB_ECHO}
    if not settings.DATABASE_URL.startswith("sqlite"):
        kwargs.update(pool_pre_ping=True, pool_size=settings.DB_POOL_SIZE)
    return create_async_engine(settings.DATABASE_URL, **kwargs)


engine = build_engine(get_settings())

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session with Unit-of-Work semantics.

    Allocation writes commit inside ``AllocationStore.user_transaction``;
    anything still pending commits when the request succeeds and is rolled
    back on any exception.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def ping_database() -> bool:
    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Database ping failed: %s", exc)
        return False
    return True
