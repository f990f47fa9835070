# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant administration request and response models."""

from datetime import datetime
from uuid import UUID

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from campus.models.auth import CamelModel, UserResponse


class TenantInfoResponse(CamelModel):
    """Registry view of the caller's institution."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    tenant_id: str
    institution_name: str
    schema_name: str
    status: str
    created_at: datetime
    provisioned_at: datetime | None = None


class UpdateTenantRequest(CamelModel):
    """Display name change."""

    institution_name: str = Field(min_length=3, max_length=200)


class TenantStatsResponse(CamelModel):
    """Usage counts from the tenant schema."""

    students: int
    teachers: int
    courses: int
    active_enrollments: int


class TenantUserListResponse(CamelModel):
    """Identities belonging to the institution."""

    users: list[UserResponse]
    total: int


class RoleResponse(CamelModel):
    """Tenant-local role with its holder count."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id: UUID
    name: str
    description: str | None = None
    permissions: list[str]
    user_count: int = 0


class RoleListResponse(CamelModel):
    """Active roles of the institution."""

    roles: list[RoleResponse]


class GrantRoleRequest(CamelModel):
    """Role to grant to a user."""

    role_id: UUID
