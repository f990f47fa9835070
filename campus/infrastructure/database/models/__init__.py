# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""ORM models for the registry database and tenant schemas."""

from campus.infrastructure.database.models.base import (
    RegistryBase,
    TenantBase,
    TimestampMixin,
)
from campus.infrastructure.database.models.registry import (
    RefreshToken,
    TenantRecord,
    TenantStatus,
    User,
    UserRole,
)
from campus.infrastructure.database.models.tenant import (
    Branch,
    Course,
    Enrollment,
    Role,
    RoleGrant,
    Student,
    Teacher,
)

__all__ = [
    "RegistryBase",
    "TenantBase",
    "TimestampMixin",
    # Registry
    "RefreshToken",
    "TenantRecord",
    "TenantStatus",
    "User",
    "UserRole",
    # Tenant
    "Branch",
    "Course",
    "Enrollment",
    "Role",
    "RoleGrant",
    "Student",
    "Teacher",
]
