# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

This module provides dependency functions for FastAPI endpoints.
Dependencies are used to:
- Get database sessions (registry and tenant schema)
- Get authenticated users and check their permissions
- Get service instances

Example:
    @router.get("/stats")
    async def get_stats(
        db: AsyncSession = Depends(get_tenant_db),
        current_user: CurrentUser = Depends(require_auth),
    ):
        ...
"""

import logging
from typing import AsyncGenerator

from fastapi import Depends, FastAPI, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from campus.api.middleware.auth import CurrentUser, get_current_user
from campus.api.middleware.tenant import get_tenant_pool_from_request
from campus.core.config import get_settings
from campus.domains.auth.jwt import JWTManager
from campus.domains.auth.password import PasswordHasher
from campus.domains.auth.service import AuthService
from campus.domains.tenancy.service import TenantService
from campus.infrastructure.database.connection import (
    close_registry_database,
    create_registry_schema,
    get_registry_session,
    init_registry_database,
)
from campus.infrastructure.database.pool_cache import TenantPool, TenantPoolCache

logger = logging.getLogger(__name__)


async def init_db(app: FastAPI) -> None:
    """Initialize the registry database and the tenant pool cache."""
    settings = get_settings()

    await init_registry_database(settings)
    await create_registry_schema()

    app.state.tenant_pools = TenantPoolCache(settings)


async def close_db(app: FastAPI) -> None:
    """Close tenant pools and the registry database."""
    cache: TenantPoolCache | None = getattr(app.state, "tenant_pools", None)
    if cache is not None:
        await cache.close_all()
        app.state.tenant_pools = None

    await close_registry_database()


async def get_registry_db() -> AsyncGenerator[AsyncSession, None]:
    """Get registry database session.

    Yields:
        AsyncSession for the registry database.
    """
    async with get_registry_session() as session:
        yield session


def get_pool_cache(request: Request) -> TenantPoolCache:
    """Get the tenant pool cache held on application state.

    Raises:
        HTTPException: If the cache was not initialized.
    """
    cache = getattr(request.app.state, "tenant_pools", None)
    if cache is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Tenant pools not initialized",
        )
    return cache


# =========================================================================
# Authentication Dependencies
# =========================================================================


def require_auth(request: Request) -> CurrentUser:
    """Require authenticated user.

    Raises:
        HTTPException: If not authenticated.
    """
    user = get_current_user(request)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_admin(request: Request) -> CurrentUser:
    """Require institution admin user.

    Raises:
        HTTPException: If not authenticated or not admin.
    """
    user = require_auth(request)
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


class RequirePermission:
    """Dependency for requiring tenant-local permissions.

    Permission codes come from the caller's token, which carries the
    permissions of its active role grants.

    Example:
        @router.get("/roles")
        async def list_roles(
            user: CurrentUser = Depends(RequirePermission("users:read")),
        ):
            ...
    """

    def __init__(self, *permissions: str, require_all: bool = False) -> None:
        """Initialize permission requirement.

        Args:
            permissions: Required permission codes.
            require_all: If True, require all permissions. If False, any.
        """
        self.permissions = permissions
        self.require_all = require_all

    def __call__(self, user: CurrentUser = Depends(require_auth)) -> CurrentUser:
        """Check permissions and return user.

        Raises:
            HTTPException: If missing required permissions.
        """
        granted = [p for p in self.permissions if user.has_permission(p)]

        if self.require_all:
            if len(granted) != len(self.permissions):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Missing permissions: {', '.join(self.permissions)}",
                )
        elif not granted:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of: {', '.join(self.permissions)}",
            )

        return user


# =========================================================================
# Tenant Dependencies
# =========================================================================


def get_tenant_pool(request: Request) -> TenantPool:
    """Get the tenant pool attached by TenantMiddleware.

    Raises:
        HTTPException: 401 if not authenticated, 400 if no pool was resolved.
    """
    require_auth(request)
    pool = get_tenant_pool_from_request(request)
    if pool is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Tenant context required",
        )
    return pool


async def get_tenant_db(
    pool: TenantPool = Depends(get_tenant_pool),
) -> AsyncGenerator[AsyncSession, None]:
    """Get a session scoped to the caller's tenant schema.

    Yields:
        AsyncSession whose queries resolve against the tenant schema.
    """
    async with pool.session() as session:
        yield session


# =========================================================================
# Service Dependencies
# =========================================================================


def get_jwt_manager() -> JWTManager:
    """Get JWT manager instance."""
    settings = get_settings()
    return JWTManager(settings.jwt)


def get_password_hasher() -> PasswordHasher:
    """Get password hasher instance."""
    return PasswordHasher()


async def get_auth_service(
    db: AsyncSession = Depends(get_registry_db),
    jwt_manager: JWTManager = Depends(get_jwt_manager),
    hasher: PasswordHasher = Depends(get_password_hasher),
    pool_cache: TenantPoolCache = Depends(get_pool_cache),
) -> AuthService:
    """Get AuthService instance bound to the registry session."""
    return AuthService(db, jwt_manager, hasher, pool_cache)


async def get_tenant_service(
    db: AsyncSession = Depends(get_registry_db),
) -> TenantService:
    """Get TenantService instance bound to the registry session."""
    return TenantService(db)

