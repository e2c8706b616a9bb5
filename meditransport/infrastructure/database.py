"""
Async SQLAlchemy engine and session factory.

The storage backend is selected explicitly by ``DATABASE_URL``:

* ``postgresql+asyncpg://`` -- production.  Pool is bounded and every
  connect / command carries a timeout so a stalled database surfaces as an
  error instead of a hung request.
* ``sqlite+aiosqlite://``  -- local runs and the test-suite.

There is no runtime fallback between the two: if the configured database
is unreachable, ``check_connection`` fails and startup aborts.
"""

import asyncio
import logging

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from meditransport.config import settings

logger = logging.getLogger(__name__)


def _build_engine(url: str) -> AsyncEngine:
    backend = make_url(url).get_backend_name()
    if backend == "sqlite":
        return create_async_engine(
            url,
            echo=False,
            connect_args={"timeout": settings.db_command_timeout_seconds},
        )
    return create_async_engine(
        url,
        echo=False,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout_seconds,
        pool_pre_ping=True,
        connect_args={
            "timeout": settings.db_connect_timeout_seconds,
            "command_timeout": settings.db_command_timeout_seconds,
        },
    )


engine = _build_engine(settings.database_url)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


async def check_connection() -> None:
    """Fail fast when the configured database cannot be reached."""
    async with engine.connect() as conn:
        await asyncio.wait_for(
            conn.execute(text("SELECT 1")),
            timeout=settings.db_connect_timeout_seconds,
        )
    logger.info("Storage backend ready (%s)", engine.dialect.name)


async def create_schema() -> None:
    # Import for side effects: registers every table on Base.metadata.
    from meditransport.infrastructure import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
