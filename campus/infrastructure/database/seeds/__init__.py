# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Seed data for tenant schemas."""

from campus.infrastructure.database.seeds.tenant import (
    ADMIN_ROLE,
    DEFAULT_ROLES,
    ROLE_FOR_IDENTITY,
    STUDENT_ROLE,
    TEACHER_ROLE,
    permissions_for,
    seed_default_roles,
)

__all__ = [
    "ADMIN_ROLE",
    "DEFAULT_ROLES",
    "ROLE_FOR_IDENTITY",
    "STUDENT_ROLE",
    "TEACHER_ROLE",
    "permissions_for",
    "seed_default_roles",
]
