"""Database connection and session management.

Transaction Guarantees:
- Each request gets its own session
- All operations within a request are atomic
- On any exception, the entire transaction is rolled back
- Sessions are properly closed after each request
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from .config import Settings, get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def engine_options(config: Settings) -> dict[str, Any]:
    """Pool and driver options for the configured database."""
    if config.is_sqlite:
        # In-memory SQLite must share one connection across the pool
        return {
            "echo": config.database_echo,
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }

    return {
        "echo": config.database_echo,
        "pool_size": config.database_pool_size,
        "max_overflow": config.database_max_overflow,
        "pool_pre_ping": True,  # Check connection health before use
        "pool_recycle": 300,
        "pool_timeout": config.store_timeout_seconds,
        "connect_args": {
            "timeout": config.store_timeout_seconds,
            "command_timeout": config.store_timeout_seconds,
        },
    }


def create_engine(config: Settings) -> AsyncEngine:
    """Create the async engine for the given settings."""
    db_url = config.database_url.replace("postgresql://", "postgresql+asyncpg://")
    logger.info(f"Database URL (masked): {db_url[:30]}...")
    return create_async_engine(db_url, **engine_options(config))


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory - creates new sessions for each unit of work."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,  # Don't expire objects after commit
        autoflush=False,         # Manual flush for better control
    )


engine = create_engine(settings)
async_session_factory = create_session_factory(engine)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a transactional database session.

    Transaction Behavior:
    - Session starts in a transaction automatically
    - On successful completion: COMMIT
    - On any exception: ROLLBACK
    - Session is always closed properly
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
            logger.debug("Transaction committed successfully")
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database error, transaction rolled back: {e}")
            raise
        except Exception as e:
            await session.rollback()
            logger.error(f"Error during request, transaction rolled back: {e}")
            raise
        finally:
            await session.close()


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """Context manager for database sessions (for use outside FastAPI)."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """Initialize database (create tables if needed)."""
    from ..models import Base

    async with engine.begin() as conn:
        # In production, use migrations instead
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
