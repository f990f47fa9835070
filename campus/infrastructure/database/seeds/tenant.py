# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant schema seed data.

Every tenant schema starts with three roles. Seeding is idempotent: a
role whose name already exists in the schema is left untouched, so the
provisioner and repair runs can call it any number of times.
"""

import logging

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncConnection

from campus.infrastructure.database.models.tenant import Role

logger = logging.getLogger(__name__)

ADMIN_ROLE = "ADMIN"
TEACHER_ROLE = "TEACHER"
STUDENT_ROLE = "STUDENT"

# Maps the global identity role to its tenant-local role name
ROLE_FOR_IDENTITY = {
    "admin": ADMIN_ROLE,
    "teacher": TEACHER_ROLE,
    "student": STUDENT_ROLE,
}

DEFAULT_ROLES = [
    {
        "name": ADMIN_ROLE,
        "description": "Institution administrator with full access",
        "permissions": [
            "system:admin",
            "users:read", "users:create", "users:update", "users:delete",
            "courses:read", "courses:create", "courses:update", "courses:delete",
            "assignments:read", "assignments:create", "assignments:update", "assignments:delete",
            "quizzes:read", "quizzes:create", "quizzes:update", "quizzes:delete",
            "grades:read", "grades:create", "grades:update",
            "lectures:read", "lectures:create", "lectures:delete",
            "notifications:send",
        ],
    },
    {
        "name": TEACHER_ROLE,
        "description": "Teaches courses and grades students",
        "permissions": [
            "users:read",
            "courses:read", "courses:create", "courses:update",
            "assignments:read", "assignments:create", "assignments:update",
            "quizzes:read", "quizzes:create", "quizzes:update",
            "grades:read", "grades:create", "grades:update",
            "lectures:read", "lectures:create",
            "notifications:send",
        ],
    },
    {
        "name": STUDENT_ROLE,
        "description": "Enrolls in courses and submits work",
        "permissions": [
            "courses:read",
            "assignments:read", "assignments:submit",
            "quizzes:read", "quizzes:submit",
            "grades:read",
            "lectures:read",
        ],
    },
]


async def seed_default_roles(conn: AsyncConnection) -> int:
    """Insert the default roles into the current tenant schema.

    The connection must already have the tenant schema on its
    search_path.

    Args:
        conn: Connection inside the tenant transaction.

    Returns:
        Number of roles inserted by this call.
    """
    stmt = (
        insert(Role.__table__)
        .values(
            [
                {
                    "name": role["name"],
                    "description": role["description"],
                    "permissions": role["permissions"],
                    "is_active": True,
                }
                for role in DEFAULT_ROLES
            ]
        )
        .on_conflict_do_nothing(index_elements=["name"])
        .returning(Role.__table__.c.name)
    )
    result = await conn.execute(stmt)
    inserted = [row[0] for row in result]
    if inserted:
        logger.info("Seeded roles: %s", ", ".join(inserted))
    return len(inserted)


def permissions_for(role_name: str) -> list[str]:
    """Return the default permission list of a tenant role.

    Args:
        role_name: ADMIN, TEACHER or STUDENT.

    Returns:
        Permission codes, empty for unknown roles.
    """
    for role in DEFAULT_ROLES:
        if role["name"] == role_name:
            return list(role["permissions"])
    return []
