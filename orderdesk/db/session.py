# orderdesk/db/session.py
# Lazily created async engine + session factory, and the FastAPI dependency
from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from orderdesk.core.config import get_settings
from orderdesk.db.engine import create_async_engine_safe

log = logging.getLogger("orderdesk.db")


@lru_cache
def get_engine() -> AsyncEngine:
    """
    The one pooled engine of the process: created on first use, disposed at shutdown.
    """
    settings = get_settings()
    engine = create_async_engine_safe(settings.DATABASE_URL, echo=settings.SQL_ECHO)
    log.info("database engine created: backend=%s", engine.url.get_backend_name())
    return engine


@lru_cache
def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=get_engine(), class_=AsyncSession, expire_on_commit=False)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one AsyncSession per request."""
    async with get_sessionmaker()() as session:
        yield session


async def close_engine() -> None:
    if get_engine.cache_info().currsize:
        await get_engine().dispose()
    get_sessionmaker.cache_clear()
    get_engine.cache_clear()
