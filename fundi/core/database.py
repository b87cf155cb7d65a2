"""
Async engine and session factory construction.

The application lifespan builds one engine per process; tests build their
own against SQLite and hand it to ``create_app``.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from fundi.core.config import Settings
from fundi.models import Base

logger = logging.getLogger(__name__)


def build_engine(settings: Settings) -> AsyncEngine:
    kwargs: dict = {"echo": settings.sql_echo, "pool_pre_ping": True}
    # SQLite (tests, local tooling) uses a pool without size controls
    if not settings.database_url.startswith("sqlite"):
        kwargs["pool_size"] = settings.db_pool_size
        kwargs["max_overflow"] = settings.db_max_overflow
    return create_async_engine(settings.database_url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_schema(engine: AsyncEngine) -> None:
    """Create every table that does not exist yet. Idempotent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured (%d tables)", len(Base.metadata.tables))
