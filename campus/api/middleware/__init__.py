# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API middleware components.

This package provides middleware for request processing:
- AuthMiddleware: JWT authentication.
- TenantMiddleware: Attaches the caller's tenant pool (runs after auth).
- limiter: slowapi rate limiter.

Exports:
    AuthMiddleware: JWT authentication middleware.
    TenantMiddleware: Tenant resolution middleware.
    limiter: Rate limiter instance.
"""

from campus.api.middleware.auth import AuthMiddleware
from campus.api.middleware.rate_limit import limiter
from campus.api.middleware.tenant import TenantMiddleware

__all__ = [
    "AuthMiddleware",
    "TenantMiddleware",
    "limiter",
]
