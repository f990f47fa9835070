# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Registry database connection management using SQLAlchemy async.

The registry database holds the tenant directory (``tenant_mapping``) and
the global identity tables (``users``, ``refresh_tokens``). Its engine is a
process-wide singleton created once at startup; tenant pools are managed
separately by TenantPoolCache.

Example:
    from campus.infrastructure.database.connection import (
        init_registry_database,
        get_registry_session,
    )

    # Initialize at application startup
    await init_registry_database(settings)

    # Use in request handlers
    async with get_registry_session() as session:
        result = await session.execute(select(TenantRecord))
        tenants = result.scalars().all()
"""

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from campus.infrastructure.database.models import RegistryBase

if TYPE_CHECKING:
    from campus.core.config.settings import Settings

# Module-level state for the registry database connection
_registry_engine: Optional[AsyncEngine] = None
_registry_sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None


class DatabaseError(Exception):
    """Base exception for database operations.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying SQLAlchemy or database error.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        """Initialize the database error.

        Args:
            message: Human-readable error description.
            original_error: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


def create_registry_engine(settings: "Settings") -> AsyncEngine:
    """Build the registry engine from settings.

    Args:
        settings: Application settings containing database configuration.

    Returns:
        A new AsyncEngine bound to the registry database.
    """
    db = settings.registry_db
    return create_async_engine(
        db.url,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_pre_ping=True,
        pool_recycle=1800,
        connect_args={"timeout": db.connect_timeout},
        echo=settings.debug and settings.log_level == "DEBUG",
    )


async def init_registry_database(settings: "Settings") -> None:
    """Initialize the registry database connection pool.

    This should be called once at application startup.

    Args:
        settings: Application settings containing database configuration.

    Raises:
        DatabaseError: If connection pool creation fails.
    """
    global _registry_engine, _registry_sessionmaker

    try:
        _registry_engine = create_registry_engine(settings)
        _registry_sessionmaker = async_sessionmaker(
            bind=_registry_engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to initialize registry database connection", e) from e


async def create_registry_schema(engine: AsyncEngine | None = None) -> None:
    """Create the registry tables if they do not exist yet.

    Args:
        engine: Engine to use. Defaults to the initialized registry engine.

    Raises:
        DatabaseError: If the DDL fails.
    """
    engine = engine or get_registry_engine()
    try:
        async with engine.begin() as conn:
            await conn.run_sync(RegistryBase.metadata.create_all, checkfirst=True)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to create registry schema", e) from e


async def close_registry_database() -> None:
    """Close the registry database connection pool."""
    global _registry_engine, _registry_sessionmaker

    if _registry_engine is not None:
        await _registry_engine.dispose()
        _registry_engine = None
        _registry_sessionmaker = None


def get_registry_engine() -> AsyncEngine:
    """Get the registry database async engine.

    Returns:
        The SQLAlchemy async engine for the registry database.

    Raises:
        DatabaseError: If the database has not been initialized.
    """
    if _registry_engine is None:
        raise DatabaseError(
            "Registry database not initialized. Call init_registry_database() first."
        )
    return _registry_engine


def get_registry_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Get the registry database sessionmaker.

    Returns:
        The SQLAlchemy async sessionmaker for the registry database.

    Raises:
        DatabaseError: If the database has not been initialized.
    """
    if _registry_sessionmaker is None:
        raise DatabaseError(
            "Registry database not initialized. Call init_registry_database() first."
        )
    return _registry_sessionmaker


@asynccontextmanager
async def get_registry_session() -> AsyncIterator[AsyncSession]:
    """Get an async session for the registry database.

    The session is committed on success and rolled back on exception.
    IntegrityError is re-raised untouched so callers can map unique
    violations to domain errors; other database failures are wrapped
    in DatabaseError.

    Yields:
        AsyncSession for database operations.

    Raises:
        DatabaseError: If the database has not been initialized or
            if a database operation fails.
    """
    sessionmaker = get_registry_sessionmaker()

    async with sessionmaker() as session:
        try:
            yield session
            await session.commit()
        except IntegrityError:
            await session.rollback()
            raise
        except SQLAlchemyError as e:
            await session.rollback()
            raise DatabaseError("Database operation failed", e) from e
        except Exception:
            await session.rollback()
            raise


async def check_registry_database_connection() -> bool:
    """Check if the registry database is reachable.

    Returns:
        True if the database is reachable, False otherwise.
    """
    if _registry_engine is None:
        return False

    try:
        async with _registry_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False
