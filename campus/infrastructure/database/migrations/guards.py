# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Catalog checks used to make tenant revisions re-runnable.

Every structural step in a tenant revision asks the catalog first and
only acts when the object is missing. All checks look at
``current_schema()``, which the runner points at the tenant schema
through the transaction's search_path, so revision code never names a
schema.

Example:
    from alembic import op
    from campus.infrastructure.database.migrations import guards

    def upgrade() -> None:
        bind = op.get_bind()
        with guards.step("add_branch_column"):
            if not guards.column_exists(bind, "courses", "branch_id"):
                op.add_column("courses", sa.Column("branch_id", ...))
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import text
from sqlalchemy.engine import Connection


class MigrationStepError(Exception):
    """Wraps a failure inside a named revision step.

    Attributes:
        step: Name of the failing step.
    """

    def __init__(self, step: str, original_error: Exception) -> None:
        super().__init__(f"{step}: {original_error}")
        self.step = step
        self.original_error = original_error


@contextmanager
def step(name: str) -> Iterator[None]:
    """Label a block of revision code for error reporting.

    Args:
        name: Step name reported when the block raises.

    Raises:
        MigrationStepError: If the block raises.
    """
    try:
        yield
    except MigrationStepError:
        raise
    except Exception as e:
        raise MigrationStepError(name, e) from e


def current_schema(bind: Connection) -> str:
    """Return the schema new objects are created in."""
    return bind.execute(text("SELECT current_schema()")).scalar_one()


def table_exists(bind: Connection, table: str) -> bool:
    """Check whether a table exists in the current schema."""
    return bool(
        bind.execute(
            text(
                "SELECT 1 FROM information_schema.tables "
                "WHERE table_schema = current_schema() AND table_name = :table"
            ),
            {"table": table},
        ).first()
    )


def column_exists(bind: Connection, table: str, column: str) -> bool:
    """Check whether a column exists on a table of the current schema."""
    return bool(
        bind.execute(
            text(
                "SELECT 1 FROM information_schema.columns "
                "WHERE table_schema = current_schema() "
                "AND table_name = :table AND column_name = :column"
            ),
            {"table": table, "column": column},
        ).first()
    )


def column_is_nullable(bind: Connection, table: str, column: str) -> bool:
    """Check whether a column still accepts NULL.

    Returns:
        True if the column is nullable, False if NOT NULL or missing.
    """
    value = bind.execute(
        text(
            "SELECT is_nullable FROM information_schema.columns "
            "WHERE table_schema = current_schema() "
            "AND table_name = :table AND column_name = :column"
        ),
        {"table": table, "column": column},
    ).scalar_one_or_none()
    return value == "YES"


def constraint_exists(bind: Connection, table: str, name: str) -> bool:
    """Check whether a named constraint exists on a table of the current schema."""
    return bool(
        bind.execute(
            text(
                "SELECT 1 FROM pg_constraint c "
                "JOIN pg_class t ON t.oid = c.conrelid "
                "JOIN pg_namespace n ON n.oid = t.relnamespace "
                "WHERE n.nspname = current_schema() "
                "AND t.relname = :table AND c.conname = :name"
            ),
            {"table": table, "name": name},
        ).first()
    )


def index_exists(bind: Connection, name: str) -> bool:
    """Check whether a named index exists in the current schema."""
    return bool(
        bind.execute(
            text(
                "SELECT 1 FROM pg_indexes "
                "WHERE schemaname = current_schema() AND indexname = :name"
            ),
            {"name": name},
        ).first()
    )
