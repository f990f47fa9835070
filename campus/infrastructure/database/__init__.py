# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure for PostgreSQL connections.

This package provides SQLAlchemy async database connections for:
- Registry database: tenant directory and global identities
- Tenant schemas: per-tenant LMS data, one PostgreSQL schema each

All tenant schemas live in the registry database. A tenant pool is an
engine whose connections default to the tenant's schema.

Example:
    from campus.infrastructure.database import (
        get_registry_session,
        TenantPoolCache,
    )

    # Get registry database session
    async with get_registry_session() as session:
        result = await session.execute(select(TenantRecord))

    # Get tenant schema session
    cache = TenantPoolCache(settings)
    pool = await cache.get_pool_for("acme")
    async with pool.session() as session:
        result = await session.execute(select(Course))
"""

from campus.infrastructure.database.connection import (
    DatabaseError,
    check_registry_database_connection,
    close_registry_database,
    create_registry_engine,
    create_registry_schema,
    get_registry_engine,
    get_registry_session,
    get_registry_sessionmaker,
    init_registry_database,
)
from campus.infrastructure.database.pool_cache import (
    TenantDirectoryEntry,
    TenantPool,
    TenantPoolCache,
    create_tenant_engine,
    lookup_tenant,
)

__all__ = [
    # Registry database
    "DatabaseError",
    "check_registry_database_connection",
    "close_registry_database",
    "create_registry_engine",
    "create_registry_schema",
    "get_registry_engine",
    "get_registry_session",
    "get_registry_sessionmaker",
    "init_registry_database",
    # Tenant pools
    "TenantDirectoryEntry",
    "TenantPool",
    "TenantPoolCache",
    "create_tenant_engine",
    "lookup_tenant",
]
