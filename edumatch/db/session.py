"""
Database Session Management
PostgreSQL connection and session handling
"""

from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from edumatch.core.config import settings
from edumatch.core.exceptions import AppException
from edumatch.core.logging import get_logger
from edumatch.db.base import Base

logger = get_logger(__name__)

# Engine
engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker] = None


async def init_db() -> None:
    """Initialize database engine and create tables"""
    global engine, async_session_maker

    logger.info(f"Connecting to PostgreSQL at {settings.POSTGRES_HOST}:{settings.POSTGRES_PORT}")

    engine = create_async_engine(
        settings.POSTGRES_URL,
        echo=settings.DEBUG,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )

    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    # Import models so they register with Base
    from edumatch.db import models  # noqa: F401

    # Create tables (use Alembic for production migrations)
    if settings.ENVIRONMENT == "development":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")


async def close_db() -> None:
    """Close database connections"""
    global engine

    if engine:
        await engine.dispose()
        logger.info("Database connection closed")


def get_session_factory() -> async_sessionmaker:
    """Session factory for components that open their own sessions"""
    if async_session_maker is None:
        raise AppException("Database not initialized")
    return async_session_maker


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session (dependency injection)"""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
