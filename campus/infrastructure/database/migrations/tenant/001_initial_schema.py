# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Initial tenant schema.

Creates every tenant-local table in dependency order, then the
secondary indexes used by the course, enrollment and notification
queries. Each table and index is created only when missing so the
revision converges on schemas that were built by hand or partially.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2025-10-10
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import SchemaItem

from campus.infrastructure.database.migrations import guards

revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = ("tenant",)
depends_on: Union[str, Sequence[str], None] = None

# (index name, table, columns)
INDEXES = [
    ("idx_students_email", "students", ["email"]),
    ("idx_teachers_email", "teachers", ["email"]),
    ("idx_courses_teacher", "courses", ["teacher_id"]),
    ("idx_enrollments_student", "enrollments", ["student_id"]),
    ("idx_enrollments_course", "enrollments", ["course_id"]),
    ("idx_assignments_course", "assignments", ["course_id"]),
    ("idx_quizzes_course", "quizzes", ["course_id"]),
    ("idx_grades_student", "grades", ["student_id"]),
    ("idx_notifications_user", "notifications", ["user_id"]),
    ("idx_file_uploads_related", "file_uploads", ["related_entity_type", "related_entity_id"]),
    ("idx_lectures_course", "lectures", ["course_id"]),
    ("idx_user_roles_user", "user_roles", ["user_id"]),
]


def _id() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=False),
        server_default=sa.text("gen_random_uuid()"),
        primary_key=True,
    )


def _fk(name: str, target: str, nullable: bool = False, ondelete: str | None = None) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=False),
        sa.ForeignKey(f"{target}.id", ondelete=ondelete),
        nullable=nullable,
    )


def _timestamps() -> list[sa.Column]:
    return [
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
    ]


def _create_table(name: str, *columns: SchemaItem) -> None:
    bind = op.get_bind()
    with guards.step(f"create_table:{name}"):
        if not guards.table_exists(bind, name):
            op.create_table(name, *columns)


def upgrade() -> None:
    """Create tenant tables and their secondary indexes."""
    # =========================================================================
    # PROFILE AND ROLE TABLES (no tenant-local dependencies)
    # =========================================================================

    _create_table(
        "students",
        _id(),
        sa.Column("user_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("student_id", sa.String(50), unique=True, nullable=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("date_of_birth", sa.Date, nullable=True),
        sa.Column("address", sa.Text, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(),
    )

    _create_table(
        "teachers",
        _id(),
        sa.Column("user_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("teacher_id", sa.String(50), unique=True, nullable=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("department", sa.String(100), nullable=True),
        sa.Column("specialization", sa.String(200), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(),
    )

    _create_table(
        "roles",
        _id(),
        sa.Column("name", sa.String(50), unique=True, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column(
            "permissions",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(),
    )

    # =========================================================================
    # COURSES AND ROLE GRANTS
    # =========================================================================

    _create_table(
        "courses",
        _id(),
        sa.Column("course_code", sa.String(20), unique=True, nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        _fk("teacher_id", "teachers"),
        sa.Column("credits", sa.Integer, nullable=True, server_default="3"),
        sa.Column("semester", sa.String(20), nullable=True),
        sa.Column("academic_year", sa.String(10), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(),
    )

    _create_table(
        "user_roles",
        _id(),
        sa.Column("user_id", postgresql.UUID(as_uuid=False), nullable=False),
        _fk("role_id", "roles", ondelete="CASCADE"),
        sa.Column("assigned_by", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column(
            "assigned_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.UniqueConstraint("user_id", "role_id", name="uq_user_roles_user_role"),
    )

    # =========================================================================
    # COURSE CONTENT
    # =========================================================================

    _create_table(
        "enrollments",
        _id(),
        _fk("student_id", "students"),
        _fk("course_id", "courses"),
        sa.Column(
            "enrollment_date",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.text("now()"),
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("grade", sa.String(5), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("student_id", "course_id", name="uq_enrollments_student_course"),
        sa.CheckConstraint(
            "status IN ('active', 'dropped', 'completed')",
            name="ck_enrollments_status",
        ),
    )

    _create_table(
        "assignments",
        _id(),
        _fk("course_id", "courses"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_points", sa.Integer, nullable=True, server_default="100"),
        sa.Column("assignment_type", sa.String(50), nullable=True, server_default="homework"),
        sa.Column("instructions", sa.Text, nullable=True),
        sa.Column("attachments", postgresql.JSONB, nullable=True),
        sa.Column("is_published", sa.Boolean, nullable=False, server_default="false"),
        *_timestamps(),
    )

    _create_table(
        "quizzes",
        _id(),
        _fk("course_id", "courses"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("time_limit", sa.Integer, nullable=True, server_default="60"),
        sa.Column("max_attempts", sa.Integer, nullable=True, server_default="1"),
        sa.Column("max_points", sa.Integer, nullable=True, server_default="100"),
        sa.Column("questions", postgresql.JSONB, nullable=False),
        sa.Column("is_published", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("available_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("available_until", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    _create_table(
        "lectures",
        _id(),
        _fk("course_id", "courses", ondelete="CASCADE"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("video_path", sa.String(500), nullable=False),
        sa.Column("created_by", postgresql.UUID(as_uuid=False), nullable=True),
        *_timestamps(),
    )

    # =========================================================================
    # SUBMISSIONS AND GRADES
    # =========================================================================

    _create_table(
        "assignment_submissions",
        _id(),
        _fk("assignment_id", "assignments"),
        _fk("student_id", "students"),
        sa.Column("submission_text", sa.Text, nullable=True),
        sa.Column("attachments", postgresql.JSONB, nullable=True),
        sa.Column(
            "submitted_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.text("now()"),
        ),
        sa.Column("grade", sa.Numeric(5, 2), nullable=True),
        sa.Column("feedback", sa.Text, nullable=True),
        sa.Column("is_late", sa.Boolean, nullable=False, server_default="false"),
        *_timestamps(),
        sa.UniqueConstraint(
            "assignment_id", "student_id", name="uq_assignment_submissions_assignment_student"
        ),
    )

    _create_table(
        "quiz_submissions",
        _id(),
        _fk("quiz_id", "quizzes"),
        _fk("student_id", "students"),
        sa.Column("answers", postgresql.JSONB, nullable=False),
        sa.Column("score", sa.Numeric(5, 2), nullable=True),
        sa.Column("time_taken", sa.Integer, nullable=True),
        sa.Column(
            "submitted_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.text("now()"),
        ),
        sa.Column("attempt_number", sa.Integer, nullable=False, server_default="1"),
        *_timestamps(),
        sa.UniqueConstraint(
            "quiz_id", "student_id", "attempt_number",
            name="uq_quiz_submissions_quiz_student_attempt",
        ),
    )

    _create_table(
        "grades",
        _id(),
        _fk("student_id", "students"),
        _fk("course_id", "courses"),
        _fk("assignment_id", "assignments", nullable=True),
        _fk("quiz_id", "quizzes", nullable=True),
        sa.Column("grade", sa.Numeric(5, 2), nullable=False),
        sa.Column("max_points", sa.Integer, nullable=True, server_default="100"),
        sa.Column("grade_type", sa.String(50), nullable=False),
        sa.Column("feedback", sa.Text, nullable=True),
        _fk("graded_by", "teachers", nullable=True),
        sa.Column(
            "graded_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.text("now()"),
        ),
        *_timestamps(),
    )

    # =========================================================================
    # UNREFERENCED TABLES
    # =========================================================================

    _create_table(
        "notifications",
        _id(),
        sa.Column("user_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("type", sa.String(50), nullable=True, server_default="info"),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("related_entity_type", sa.String(50), nullable=True),
        sa.Column("related_entity_id", postgresql.UUID(as_uuid=False), nullable=True),
        *_timestamps(),
    )

    _create_table(
        "file_uploads",
        _id(),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("original_name", sa.String(255), nullable=False),
        sa.Column("file_path", sa.String(500), nullable=False),
        sa.Column("file_size", sa.Integer, nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("uploaded_by", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("related_entity_type", sa.String(50), nullable=True),
        sa.Column("related_entity_id", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("is_public", sa.Boolean, nullable=False, server_default="false"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )

    # =========================================================================
    # SECONDARY INDEXES
    # =========================================================================

    bind = op.get_bind()
    for index_name, table, columns in INDEXES:
        with guards.step(f"create_index:{index_name}"):
            if not guards.index_exists(bind, index_name):
                op.create_index(index_name, table, columns)


def downgrade() -> None:
    """Drop all tenant tables in reverse dependency order."""
    for table in (
        "file_uploads",
        "notifications",
        "grades",
        "quiz_submissions",
        "assignment_submissions",
        "lectures",
        "quizzes",
        "assignments",
        "enrollments",
        "user_roles",
        "courses",
        "roles",
        "teachers",
        "students",
    ):
        op.drop_table(table)
