"""Async engine and session factory for the fleet registry.

Only the registry lives here. Tenant databases are never connected to
directly; all tenant SQL goes through the management API.
"""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from launchpad.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Fleet batches keep one session open for many minutes
engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=settings.registry_pool_size,
    max_overflow=settings.registry_max_overflow,
    pool_pre_ping=True,
)

async_session_factory = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields a registry session."""
    async with async_session_factory() as session:
        yield session


async def init_db() -> None:
    """Create missing registry tables, unless Alembic owns the schema."""
    if not settings.registry_create_tables:
        logger.info("Registry schema managed by Alembic; skipping create_all")
        return
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
