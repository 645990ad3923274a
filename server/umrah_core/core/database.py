"""Database configuration and async session management."""

import asyncio
import enum
from collections.abc import Awaitable
from typing import AsyncGenerator, TypeVar

from sqlalchemy import Enum as SAEnum
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from .config import settings
from .exceptions import PersistenceTimeoutError

T = TypeVar("T")


def _engine_options(database_url: str) -> dict:
    """Build dialect specific engine options."""
    if "sqlite" in database_url:
        options: dict = {"connect_args": {"check_same_thread": False}}
        # In-memory databases only exist on a single shared connection
        if ":memory:" in database_url:
            options["poolclass"] = StaticPool
        return options

    # Server side guard in addition to the client side timeout
    statement_timeout_ms = int(settings.persistence_timeout_seconds * 1000)
    return {
        "pool_pre_ping": True,
        "connect_args": {"server_settings": {"statement_timeout": str(statement_timeout_ms)}},
    }


# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_options(settings.database_url),
)

# Create async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False,
)

# Create declarative base for models
Base = declarative_base()


def enum_type(enum_cls: type[enum.Enum]) -> SAEnum:
    """Column type storing an Enum by value in a portable VARCHAR."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency function that yields database sessions.

    Yields:
        AsyncSession: Database session
    """
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# Alias for FastAPI dependency injection
get_db = get_async_session


async def with_timeout(awaitable: Awaitable[T], operation: str, timeout: float | None = None) -> T:
    """
    Await a persistence call under the configured timeout.

    Args:
        awaitable: The pending database call
        operation: Operation name reported in the error
        timeout: Override for settings.persistence_timeout_seconds

    Returns:
        Result of the awaited call

    Raises:
        PersistenceTimeoutError: If the call did not finish in time
    """
    limit = timeout if timeout is not None else settings.persistence_timeout_seconds
    try:
        return await asyncio.wait_for(awaitable, limit)
    except asyncio.TimeoutError as e:
        raise PersistenceTimeoutError(operation=operation, timeout_seconds=limit) from e


async def init_db() -> None:
    """Initialize the database by creating all tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
