# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant resolution middleware.

Attaches the caller's tenant pool to the request. The tenant is taken
from the ``tenant_id`` claim of the authenticated user, which
AuthMiddleware stored in ``request.state.user``; there is no header or
subdomain override.

Resolution fails closed: if an authenticated request names a tenant
whose pool cannot be obtained, the request is answered here and never
reaches a handler.

Example:
    GET /api/v1/tenant/stats
    Authorization: Bearer <token with tenant_id "acme">

    # handler sees request.state.tenant_pool scoped to acme_schema
"""

import logging
from typing import Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from campus.api.middleware.auth import is_public_path
from campus.core.tenancy import (
    InvalidTenantIdFormatError,
    TenancyError,
    TenantPoolError,
    TenantUnavailableError,
    UnknownTenantError,
)
from campus.infrastructure.database.pool_cache import TenantPool, TenantPoolCache
from campus.utils.logging import bind_context

logger = logging.getLogger(__name__)

# Resolution failures and the status they answer with
RESOLUTION_STATUS: dict[type[TenancyError], int] = {
    InvalidTenantIdFormatError: status.HTTP_400_BAD_REQUEST,
    UnknownTenantError: status.HTTP_404_NOT_FOUND,
    TenantUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    TenantPoolError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class TenantMiddleware(BaseHTTPMiddleware):
    """Middleware attaching the tenant pool to authenticated requests.

    Sets ``request.state.tenant_pool`` and ``request.state.tenant_id``.
    Requests without a user pass through with both set to None; the
    tenant dependencies reject them before any tenant query runs.

    The pool cache is read from ``request.app.state.tenant_pools``,
    created by the application lifespan.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response],
    ) -> Response:
        """Process the request and resolve the tenant pool.

        Args:
            request: Incoming HTTP request.
            call_next: Next middleware/handler.

        Returns:
            HTTP response.
        """
        request.state.tenant_pool = None
        request.state.tenant_id = None

        if is_public_path(request.url.path):
            return await call_next(request)

        user = getattr(request.state, "user", None)
        if user is None:
            return await call_next(request)

        cache: TenantPoolCache | None = getattr(request.app.state, "tenant_pools", None)
        if cache is None:
            logger.error("Tenant pool cache is not initialized")
            return _error_response(
                status.HTTP_503_SERVICE_UNAVAILABLE,
                "Tenant pools are not available",
                "tenant_pool_error",
            )

        try:
            pool: TenantPool = await cache.get_pool_for(user.tenant_id)
        except TenancyError as e:
            status_code = RESOLUTION_STATUS.get(type(e), status.HTTP_503_SERVICE_UNAVAILABLE)
            if e.is_client_error:
                logger.warning("Tenant resolution rejected for user %s: %s", user.id, e.message)
            else:
                logger.error("Tenant resolution failed for user %s: %s", user.id, e.message)
            return _error_response(status_code, e.message, e.code)

        request.state.tenant_pool = pool
        request.state.tenant_id = pool.tenant_id
        bind_context(tenant_id=pool.tenant_id, user_id=user.id)
        logger.debug("Tenant resolved: %s", pool.tenant_id)

        return await call_next(request)


def _error_response(status_code: int, detail: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code})


def get_tenant_pool_from_request(request: Request) -> TenantPool | None:
    """Get the resolved tenant pool from request state."""
    return getattr(request.state, "tenant_pool", None)
