"""Database connection and session management.

PostgreSQL holds posts and categories. The recommendation endpoints only
read; the sole writes are schema creation at startup.
"""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from aninotion.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

# SQL echo stays off regardless of debug; the engine logs are lowered in main
engine = create_async_engine(
    settings.database_url,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    echo=False,
    pool_pre_ping=True,
    pool_recycle=300,
)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def init_db():
    """Create the post/category tables if they do not exist yet."""
    # Register the models on Base.metadata
    from aninotion.db import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)
    logger.info(f"Database schema ready ({len(Base.metadata.tables)} tables)")


async def check_db() -> bool:
    """Round-trip a trivial query; False when the database is unreachable."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


async def get_db() -> AsyncSession:
    """Dependency yielding a request-scoped session."""
    async with async_session() as session:
        yield session
