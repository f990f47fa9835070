# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Add branches and a required courses.branch_id.

Existing courses are assigned to a default branch, created per tenant
only when some course has no branch yet. Freshly provisioned schemas
start with an empty branches table.

Migration strategy:
1. Create branches table
2. Add branch_id column to courses as nullable
3. Ensure the default branch exists if any course lacks a branch
4. Backfill existing courses with the default branch
5. Make column NOT NULL
6. Add foreign key and index

Every step checks the catalog before acting, so a schema that already
went through part of this revision converges instead of failing.

Revision ID: 002_add_course_branches
Revises: 001_initial_schema
Create Date: 2025-11-05
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

from campus.infrastructure.database.migrations import guards

revision: str = "002_add_course_branches"
down_revision: str = "001_initial_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

DEFAULT_BRANCH_CODE = "MAIN"
DEFAULT_BRANCH_NAME = "Main Campus"

FK_NAME = "fk_courses_branch_id"
INDEX_NAME = "idx_courses_branch"


def upgrade() -> None:
    """Add branches and assign every course to one."""
    bind = op.get_bind()

    # Step 1: Create branches table
    with guards.step("create_branches_table"):
        if not guards.table_exists(bind, "branches"):
            op.create_table(
                "branches",
                sa.Column(
                    "id",
                    postgresql.UUID(as_uuid=False),
                    server_default=sa.text("gen_random_uuid()"),
                    primary_key=True,
                ),
                sa.Column("code", sa.String(20), nullable=False),
                sa.Column("name", sa.String(200), nullable=False),
                sa.Column("is_default", sa.Boolean, nullable=False, server_default="false"),
                sa.Column(
                    "created_at",
                    sa.DateTime(timezone=True),
                    nullable=False,
                    server_default=sa.text("now()"),
                ),
                sa.Column(
                    "updated_at",
                    sa.DateTime(timezone=True),
                    nullable=False,
                    server_default=sa.text("now()"),
                ),
                sa.UniqueConstraint("code", name="uq_branches_code"),
            )

    # Step 2: Add branch_id column as nullable
    with guards.step("add_branch_id_column"):
        if not guards.column_exists(bind, "courses", "branch_id"):
            op.add_column(
                "courses",
                sa.Column("branch_id", postgresql.UUID(as_uuid=False), nullable=True),
            )

    # Step 3: Ensure the default branch exists when courses need one
    with guards.step("ensure_default_branch"):
        unassigned = bind.execute(
            sa.text("SELECT 1 FROM courses WHERE branch_id IS NULL LIMIT 1")
        ).first()
        if unassigned:
            bind.execute(
                sa.text(
                    "INSERT INTO branches (code, name, is_default) "
                    "VALUES (:code, :name, true) "
                    "ON CONFLICT (code) DO NOTHING"
                ),
                {"code": DEFAULT_BRANCH_CODE, "name": DEFAULT_BRANCH_NAME},
            )

    # Step 4: Backfill existing rows
    with guards.step("backfill_branch_id"):
        bind.execute(
            sa.text(
                "UPDATE courses SET branch_id = "
                "(SELECT id FROM branches WHERE code = :code) "
                "WHERE branch_id IS NULL"
            ),
            {"code": DEFAULT_BRANCH_CODE},
        )

    # Step 5: Make column NOT NULL
    with guards.step("set_branch_id_not_null"):
        if guards.column_is_nullable(bind, "courses", "branch_id"):
            op.alter_column(
                "courses",
                "branch_id",
                nullable=False,
                existing_type=postgresql.UUID(as_uuid=False),
            )

    # Step 6: Add foreign key and index
    with guards.step("add_branch_fk"):
        if not guards.constraint_exists(bind, "courses", FK_NAME):
            op.create_foreign_key(FK_NAME, "courses", "branches", ["branch_id"], ["id"])

    with guards.step("add_branch_index"):
        if not guards.index_exists(bind, INDEX_NAME):
            op.create_index(INDEX_NAME, "courses", ["branch_id"])


def downgrade() -> None:
    """Remove branch assignment from courses."""
    op.drop_index(INDEX_NAME, table_name="courses")
    op.drop_constraint(FK_NAME, "courses", type_="foreignkey")
    op.drop_column("courses", "branch_id")
    op.drop_table("branches")
