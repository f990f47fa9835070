# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Per-tenant connection pool cache.

Every tenant schema lives in the registry database, so a tenant pool is
an engine on the same server whose connections start with
``search_path = "<schema>", public``. Queries issued through it never
name a schema and cannot see another tenant's tables.

Pools are lazily created on first access, cached for the life of the
process and shared by all concurrent requests for that tenant. The
cache is an ordinary object held on ``app.state``; tests can build one
with a fake lookup and engine factory.

Example:
    from campus.infrastructure.database.pool_cache import TenantPoolCache

    cache = TenantPoolCache(settings)

    pool = await cache.get_pool_for("acme")
    async with pool.session() as session:
        result = await session.execute(select(Course))
        courses = result.scalars().all()

    # Cleanup on shutdown
    await cache.close_all()
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, AsyncIterator, Awaitable, Callable

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from campus.core.tenancy import (
    TenancyError,
    TenantPoolError,
    TenantUnavailableError,
    UnknownTenantError,
    normalize_tenant_id,
    quote_schema,
)
from campus.infrastructure.database.connection import DatabaseError, get_registry_session
from campus.infrastructure.database.models.registry import TenantRecord, TenantStatus

if TYPE_CHECKING:
    from campus.core.config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantDirectoryEntry:
    """The registry facts a pool is built from.

    Attributes:
        tenant_id: Tenant slug.
        schema_name: Schema holding the tenant tables.
        status: Registry status (provisioning, active, failed).
    """

    tenant_id: str
    schema_name: str
    status: str


TenantLookup = Callable[[str], Awaitable[TenantDirectoryEntry | None]]
EngineFactory = Callable[[str], AsyncEngine]


@dataclass
class TenantPool:
    """A live connection pool scoped to one tenant schema.

    Attributes:
        tenant_id: Tenant slug.
        schema_name: Schema every connection defaults to.
        engine: Async engine owning the connections.
        sessionmaker: Session factory bound to the engine.
    """

    tenant_id: str
    schema_name: str
    engine: AsyncEngine
    sessionmaker: async_sessionmaker[AsyncSession] = field(repr=False)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Get an async session scoped to the tenant schema.

        The session is automatically committed on success and rolled back
        on exception.

        Yields:
            AsyncSession for tenant queries.

        Raises:
            SQLAlchemyError: If a database operation fails.
        """
        async with self.sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def check_connection(self) -> bool:
        """Check if the tenant schema is reachable through this pool."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    async def dispose(self) -> None:
        """Close every connection held by the pool."""
        await self.engine.dispose()


async def lookup_tenant(tenant_id: str) -> TenantDirectoryEntry | None:
    """Read a tenant's directory entry from the registry.

    Args:
        tenant_id: Normalized tenant id.

    Returns:
        The entry, or None if the tenant is not registered.

    Raises:
        DatabaseError: If the registry query fails.
    """
    async with get_registry_session() as session:
        result = await session.execute(
            select(
                TenantRecord.tenant_id,
                TenantRecord.schema_name,
                TenantRecord.status,
            ).where(TenantRecord.tenant_id == tenant_id)
        )
        row = result.one_or_none()

    if row is None:
        return None
    return TenantDirectoryEntry(
        tenant_id=row.tenant_id,
        schema_name=row.schema_name,
        status=row.status,
    )


def create_tenant_engine(settings: "Settings", schema_name: str) -> AsyncEngine:
    """Build an engine whose connections default to a tenant schema.

    Args:
        settings: Application settings.
        schema_name: Tenant schema name.

    Returns:
        A new AsyncEngine. No connection is opened until first use.
    """
    db = settings.registry_db
    pool = settings.tenant_pool
    return create_async_engine(
        db.url,
        pool_size=pool.pool_size,
        max_overflow=pool.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_pre_ping=True,
        pool_recycle=pool.pool_recycle,
        connect_args={
            "timeout": db.connect_timeout,
            "command_timeout": pool.command_timeout,
            "server_settings": {"search_path": f"{quote_schema(schema_name)}, public"},
        },
        echo=settings.debug and settings.log_level == "DEBUG",
    )


class TenantPoolCache:
    """Process-wide cache of tenant connection pools.

    The cache exclusively owns the lifecycle of each tenant pool: no other
    component creates or disposes tenant engines. Concurrent first
    requests for the same tenant wait on a per-tenant lock, so exactly
    one pool is built per tenant.

    Attributes:
        settings: Application settings used for engine construction.

    Example:
        cache = TenantPoolCache(settings)
        pool = await cache.get_pool_for("acme")
        assert pool is await cache.get_pool_for("acme")
    """

    def __init__(
        self,
        settings: "Settings",
        lookup: TenantLookup | None = None,
        engine_factory: EngineFactory | None = None,
    ) -> None:
        """Initialize the pool cache.

        Args:
            settings: Application settings.
            lookup: Coroutine returning the directory entry for a tenant.
                Defaults to a registry query.
            engine_factory: Callable building an engine for a schema name.
                Defaults to create_tenant_engine().
        """
        self._settings = settings
        self._lookup = lookup or lookup_tenant
        self._engine_factory = engine_factory or (
            lambda schema_name: create_tenant_engine(settings, schema_name)
        )
        self._pools: dict[str, TenantPool] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def get_pool_for(self, tenant_id: str) -> TenantPool:
        """Get the pool for a tenant, creating it on first access.

        Args:
            tenant_id: Tenant id from the caller's identity claim.

        Returns:
            The cached TenantPool; the same instance on every call.

        Raises:
            InvalidTenantIdFormatError: If the id is malformed.
            UnknownTenantError: If no registry record exists.
            TenantUnavailableError: If the tenant is not active yet.
            TenantPoolError: If the registry or engine setup fails.
        """
        tenant_id = normalize_tenant_id(tenant_id)

        pool = self._pools.get(tenant_id)
        if pool is not None:
            return pool

        lock = self._locks.setdefault(tenant_id, asyncio.Lock())
        async with lock:
            # Another request may have built it while we waited
            pool = self._pools.get(tenant_id)
            if pool is not None:
                return pool

            try:
                entry = await self._resolve_entry(tenant_id)
                # A fresh lock may have been issued after a failed attempt
                pool = self._pools.get(tenant_id)
                if pool is not None:
                    return pool
                pool = self._build_pool(entry)
            except TenancyError:
                # Ids that never resolve must not accumulate locks
                if self._locks.get(tenant_id) is lock:
                    del self._locks[tenant_id]
                raise
            self._pools[tenant_id] = pool
            logger.info("Created pool for tenant %s (schema %s)", tenant_id, entry.schema_name)
            return pool

    async def _resolve_entry(self, tenant_id: str) -> TenantDirectoryEntry:
        try:
            entry = await self._lookup(tenant_id)
        except (DatabaseError, SQLAlchemyError) as e:
            logger.error("Registry lookup failed for tenant %s: %s", tenant_id, e)
            raise TenantPoolError(tenant_id, f"registry lookup failed: {e}") from e

        if entry is None:
            raise UnknownTenantError(tenant_id)
        if entry.status != TenantStatus.ACTIVE.value:
            raise TenantUnavailableError(tenant_id, entry.status)
        return entry

    def _build_pool(self, entry: TenantDirectoryEntry) -> TenantPool:
        try:
            engine = self._engine_factory(entry.schema_name)
        except SQLAlchemyError as e:
            raise TenantPoolError(entry.tenant_id, f"engine creation failed: {e}") from e

        return TenantPool(
            tenant_id=entry.tenant_id,
            schema_name=entry.schema_name,
            engine=engine,
            sessionmaker=async_sessionmaker(
                bind=engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            ),
        )

    def get_cached(self, tenant_id: str) -> TenantPool | None:
        """Return the cached pool for a tenant without creating one."""
        return self._pools.get(tenant_id)

    def __contains__(self, tenant_id: object) -> bool:
        return tenant_id in self._pools

    def __len__(self) -> int:
        return len(self._pools)

    async def close_all(self) -> None:
        """Close all tenant pools.

        This should be called at application shutdown.
        """
        pools = list(self._pools.values())
        self._pools.clear()
        self._locks.clear()

        for pool in pools:
            try:
                await pool.dispose()
            except SQLAlchemyError as e:
                logger.warning("Error closing pool for tenant %s: %s", pool.tenant_id, e)

        if pools:
            logger.info("Closed %d tenant pools", len(pools))
