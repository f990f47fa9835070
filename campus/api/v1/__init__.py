# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

Modules:
    auth: Registration, login, refresh and logout.
    tenant: Institution info, stats and user administration.
"""

from fastapi import APIRouter

from campus.api.v1 import auth, tenant

# Create the main v1 router
router = APIRouter(prefix="/api/v1")

router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(tenant.router, prefix="/tenant", tags=["Tenant Admin"])

__all__ = ["router"]
