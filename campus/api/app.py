# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI Application Factory.

This module provides the main application factory for the Campus LMS API.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError

from campus import __version__
from campus.api.dependencies import close_db, init_db
from campus.api.middleware.auth import AuthMiddleware
from campus.api.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from campus.api.middleware.tenant import TenantMiddleware
from campus.api.routes import health
from campus.api.v1 import router as v1_router
from campus.core.config import get_settings
from campus.core.tenancy import (
    DuplicateEmailError,
    DuplicateTenantError,
    InvalidTenantIdFormatError,
    MigrationError,
    ProvisioningError,
    TenancyError,
    TenantPoolError,
    TenantUnavailableError,
    UnknownTenantError,
)
from campus.infrastructure.database.connection import DatabaseError
from campus.utils.logging import clear_context, setup_logging

logger = logging.getLogger(__name__)

TENANCY_ERROR_STATUS: dict[type[TenancyError], int] = {
    DuplicateTenantError: status.HTTP_409_CONFLICT,
    DuplicateEmailError: status.HTTP_409_CONFLICT,
    InvalidTenantIdFormatError: status.HTTP_400_BAD_REQUEST,
    UnknownTenantError: status.HTTP_404_NOT_FOUND,
    TenantUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    TenantPoolError: status.HTTP_503_SERVICE_UNAVAILABLE,
    ProvisioningError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    MigrationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# PostgreSQL SQLSTATE codes surfaced to clients
INTEGRITY_STATUS: dict[str, tuple[int, str]] = {
    "23505": (status.HTTP_409_CONFLICT, "Resource already exists"),
    "23503": (status.HTTP_400_BAD_REQUEST, "Referenced resource does not exist"),
    "23502": (status.HTTP_400_BAD_REQUEST, "Required field is missing"),
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Initializes the registry database, creates missing registry tables
    and the tenant pool cache; disposes every pool at shutdown.

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.
    """
    settings = get_settings()
    setup_logging(settings)
    logger.info("Starting Campus LMS API (environment %s)", settings.environment)

    # =========================================================================
    # Startup
    # =========================================================================
    await init_db(app)
    logger.info("Database connections initialized")

    yield

    # =========================================================================
    # Shutdown
    # =========================================================================
    try:
        await close_db(app)
        logger.info("Database connections closed")
    except (DatabaseError, SQLAlchemyError) as e:
        logger.warning("Error closing database connections: %s", str(e))

    logger.info("Shutting down Campus LMS API")


# =========================================================================
# Exception handlers
# =========================================================================


def _error(status_code: int, detail: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code})


async def tenancy_error_handler(request: Request, exc: TenancyError) -> JSONResponse:
    """Map tenancy errors to HTTP responses."""
    status_code = next(
        (code for cls, code in TENANCY_ERROR_STATUS.items() if isinstance(exc, cls)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if exc.is_client_error:
        logger.info("Tenancy request rejected: %s", exc.message)
        return _error(status_code, exc.message, exc.code)

    logger.error("Tenancy failure on %s %s: %s", request.method, request.url.path, exc)
    detail = exc.message
    if isinstance(exc, ProvisioningError):
        detail = "Failed to provision institution"
    return _error(status_code, detail, exc.code)


async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    logger.error("Database failure on %s %s: %s", request.method, request.url.path, exc)
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Database unavailable", "database_error")


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Map constraint violations by SQLSTATE."""
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    status_code, detail = INTEGRITY_STATUS.get(
        sqlstate or "",
        (status.HTTP_500_INTERNAL_SERVER_ERROR, "Database constraint violated"),
    )
    logger.warning("Integrity error %s on %s: %s", sqlstate, request.url.path, orig)
    return _error(status_code, detail, "integrity_error")


async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Unhandled database error on %s %s: %s", request.method, request.url.path, exc)
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Database unavailable", "database_error")
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal database error", "database_error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(TenancyError, tenancy_error_handler)
    app.add_exception_handler(DatabaseError, database_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_error_handler)


async def clear_log_context(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Start every request with an empty logging context."""
    clear_context()
    return await call_next(request)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Campus LMS API",
        description="Multi-tenant learning management backend",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        redirect_slashes=False,
    )

    # =========================================================================
    # State
    # =========================================================================
    app.state.limiter = limiter
    app.state.tenant_pools = None

    register_exception_handlers(app)

    # =========================================================================
    # Middleware (order matters - last added is first executed)
    # =========================================================================

    # Tenant middleware - needs request.state.user, so it must run after auth
    app.add_middleware(TenantMiddleware)

    # Auth middleware - validates JWT tokens
    app.add_middleware(AuthMiddleware)

    app.middleware("http")(clear_log_context)

    # CORS middleware (should be last to execute first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins_list,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=settings.cors.allow_methods,
        allow_headers=settings.cors.allow_headers,
    )

    # =========================================================================
    # Routes
    # =========================================================================
    app.include_router(health.router, tags=["Health"])
    app.include_router(v1_router)

    return app
