# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant admin API endpoints.

This module provides endpoints scoped to the caller's institution:
- GET /info - Get institution info
- PUT /info - Rename the institution (admin)
- GET /stats - Usage counts from the tenant schema
- GET /users - List institution users (admin)
- PATCH /users/{id}/deactivate - Deactivate a user (admin)
- PATCH /users/{id}/activate - Reactivate a user (admin)
- GET /roles - List tenant roles (users:read)
- POST /users/{id}/roles - Grant a role (users:update)
- DELETE /users/{id}/roles/{role_id} - Revoke a role (users:update)

The tenant is always the one in the caller's token; there is no way to
address another institution from these routes.

Example:
    GET /api/v1/tenant/stats
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from campus.api.dependencies import (
    RequirePermission,
    get_tenant_db,
    get_tenant_service,
    require_admin,
    require_auth,
)
from campus.api.middleware.auth import CurrentUser
from campus.domains.tenancy.service import RoleNotFoundError, TenantService, UserNotFoundError
from campus.models.auth import UserResponse
from campus.models.tenant import (
    GrantRoleRequest,
    RoleListResponse,
    RoleResponse,
    TenantInfoResponse,
    TenantStatsResponse,
    TenantUserListResponse,
    UpdateTenantRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/info",
    response_model=TenantInfoResponse,
    summary="Get institution info",
)
async def get_tenant_info(
    current_user: CurrentUser = Depends(require_auth),
    service: TenantService = Depends(get_tenant_service),
) -> TenantInfoResponse:
    """Get the registry record of the caller's institution."""
    record = await service.get_info(current_user.tenant_id)
    return TenantInfoResponse.model_validate(record)


@router.put(
    "/info",
    response_model=TenantInfoResponse,
    summary="Rename institution",
)
async def update_tenant_info(
    data: UpdateTenantRequest,
    current_user: CurrentUser = Depends(require_admin),
    service: TenantService = Depends(get_tenant_service),
) -> TenantInfoResponse:
    """Change the institution display name."""
    record = await service.update_institution_name(
        current_user.tenant_id,
        data.institution_name,
    )
    return TenantInfoResponse.model_validate(record)


@router.get(
    "/stats",
    response_model=TenantStatsResponse,
    summary="Get institution statistics",
)
async def get_tenant_stats(
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_tenant_db),
    service: TenantService = Depends(get_tenant_service),
) -> TenantStatsResponse:
    """Count active students, teachers, courses and enrollments."""
    logger.info("Getting tenant stats for: %s", current_user.tenant_id)

    stats = await service.get_stats(db)
    return TenantStatsResponse(
        students=stats.students,
        teachers=stats.teachers,
        courses=stats.courses,
        active_enrollments=stats.active_enrollments,
    )


@router.get(
    "/users",
    response_model=TenantUserListResponse,
    summary="List institution users",
)
async def list_tenant_users(
    role: str | None = Query(None, pattern="^(admin|teacher|student)$"),
    include_inactive: bool = Query(True, alias="includeInactive"),
    current_user: CurrentUser = Depends(require_admin),
    service: TenantService = Depends(get_tenant_service),
) -> TenantUserListResponse:
    """List the identities belonging to the caller's institution."""
    users = await service.list_users(
        current_user.tenant_id,
        role=role,
        include_inactive=include_inactive,
    )
    return TenantUserListResponse(
        users=[UserResponse.model_validate(user) for user in users],
        total=len(users),
    )


async def _set_user_active(
    user_id: UUID,
    active: bool,
    current_user: CurrentUser,
    service: TenantService,
) -> UserResponse:
    if str(user_id) == current_user.id and not active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot deactivate your own account",
        )

    try:
        user = await service.set_user_active(current_user.tenant_id, user_id, active)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return UserResponse.model_validate(user)


@router.patch(
    "/users/{user_id}/deactivate",
    response_model=UserResponse,
    summary="Deactivate a user",
)
async def deactivate_user(
    user_id: UUID,
    current_user: CurrentUser = Depends(require_admin),
    service: TenantService = Depends(get_tenant_service),
) -> UserResponse:
    """Deactivate a user of the caller's institution."""
    return await _set_user_active(user_id, False, current_user, service)


@router.patch(
    "/users/{user_id}/activate",
    response_model=UserResponse,
    summary="Activate a user",
)
async def activate_user(
    user_id: UUID,
    current_user: CurrentUser = Depends(require_admin),
    service: TenantService = Depends(get_tenant_service),
) -> UserResponse:
    """Reactivate a user of the caller's institution."""
    return await _set_user_active(user_id, True, current_user, service)


@router.get(
    "/roles",
    response_model=RoleListResponse,
    summary="List roles",
)
async def list_roles(
    current_user: CurrentUser = Depends(RequirePermission("users:read")),
    db: AsyncSession = Depends(get_tenant_db),
    service: TenantService = Depends(get_tenant_service),
) -> RoleListResponse:
    """List the active roles of the caller's institution."""
    roles = await service.list_roles(db)
    return RoleListResponse(roles=[RoleResponse.model_validate(role) for role in roles])


@router.post(
    "/users/{user_id}/roles",
    response_model=RoleResponse,
    summary="Grant a role",
)
async def grant_role(
    user_id: UUID,
    data: GrantRoleRequest,
    current_user: CurrentUser = Depends(RequirePermission("users:update")),
    db: AsyncSession = Depends(get_tenant_db),
    service: TenantService = Depends(get_tenant_service),
) -> RoleResponse:
    """Grant a tenant-local role to a user of the caller's institution."""
    try:
        role = await service.grant_role(
            db,
            current_user.tenant_id,
            user_id,
            data.role_id,
            assigned_by=current_user.id,
        )
    except (UserNotFoundError, RoleNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return RoleResponse.model_validate(role)


@router.delete(
    "/users/{user_id}/roles/{role_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke a role",
)
async def revoke_role(
    user_id: UUID,
    role_id: UUID,
    current_user: CurrentUser = Depends(RequirePermission("users:update")),
    db: AsyncSession = Depends(get_tenant_db),
    service: TenantService = Depends(get_tenant_service),
) -> None:
    """Revoke a tenant-local role from a user of the caller's institution."""
    try:
        revoked = await service.revoke_role(db, current_user.tenant_id, user_id, role_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    if not revoked:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User does not hold this role",
        )
