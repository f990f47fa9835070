# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the tenant revision modules.

Each revision is imported the way the runner imports it and its upgrade()
runs under alembic Operations in offline (SQL output) mode. Catalog
guards are patched, so no database is needed.
"""

import importlib
import io
from collections.abc import Generator
from types import ModuleType
from unittest.mock import MagicMock, patch

import pytest
from alembic.operations import Operations
from alembic.runtime.migration import MigrationContext

from campus.infrastructure.database.migrations.runner import TENANT_MIGRATIONS

GUARDS = "campus.infrastructure.database.migrations.guards"


def _load(revision: str) -> ModuleType:
    return importlib.import_module(f"campus.infrastructure.database.migrations.tenant.{revision}")


@pytest.fixture
def bind() -> MagicMock:
    """Connection returned by op.get_bind() for data statements."""
    return MagicMock()


def _run_offline(upgrade_fn, bind: MagicMock) -> str:
    """Run a revision's upgrade() and return the DDL it emitted."""
    buffer = io.StringIO()
    context = MigrationContext.configure(
        dialect_name="postgresql",
        opts={"as_sql": True, "output_buffer": buffer},
    )
    with patch.object(Operations, "get_bind", lambda self: bind):
        with Operations.context(context):
            upgrade_fn()
    return buffer.getvalue()


@pytest.fixture
def fresh_schema() -> Generator[None, None, None]:
    """Guards report an empty schema."""
    with patch.multiple(
        GUARDS,
        table_exists=MagicMock(return_value=False),
        column_exists=MagicMock(return_value=False),
        column_is_nullable=MagicMock(return_value=True),
        constraint_exists=MagicMock(return_value=False),
        index_exists=MagicMock(return_value=False),
    ):
        yield


@pytest.fixture
def migrated_schema() -> Generator[None, None, None]:
    """Guards report every object as already present."""
    with patch.multiple(
        GUARDS,
        table_exists=MagicMock(return_value=True),
        column_exists=MagicMock(return_value=True),
        column_is_nullable=MagicMock(return_value=False),
        constraint_exists=MagicMock(return_value=True),
        index_exists=MagicMock(return_value=True),
    ):
        yield


class TestRevisionModules:
    """Every declared revision is importable and well formed."""

    @pytest.mark.parametrize("revision", TENANT_MIGRATIONS)
    def test_imports_with_upgrade(self, revision: str) -> None:
        module = _load(revision)

        assert module.revision == revision
        assert callable(module.upgrade)

    def test_revisions_form_a_chain(self) -> None:
        previous = None
        for revision in TENANT_MIGRATIONS:
            assert _load(revision).down_revision == previous
            previous = revision


@pytest.mark.usefixtures("fresh_schema")
class TestUpgradeOnFreshSchema:
    """Tests for upgrade() when nothing exists yet."""

    def test_initial_schema_creates_tables_and_indexes(self, bind: MagicMock) -> None:
        sql = _run_offline(_load("001_initial_schema").upgrade, bind)

        for table in ("students", "teachers", "roles", "courses", "enrollments", "grades"):
            assert f"CREATE TABLE {table}" in sql
        assert "CREATE INDEX idx_courses_teacher ON courses (teacher_id)" in sql
        assert sql.index("CREATE TABLE courses") < sql.index("CREATE TABLE enrollments")

    def test_branches_revision_adds_required_column(self, bind: MagicMock) -> None:
        bind.execute.return_value.first.return_value = (1,)

        sql = _run_offline(_load("002_add_course_branches").upgrade, bind)

        assert "CREATE TABLE branches" in sql
        assert "ALTER TABLE courses ADD COLUMN branch_id" in sql
        assert "ALTER TABLE courses ALTER COLUMN branch_id SET NOT NULL" in sql
        assert "ADD CONSTRAINT fk_courses_branch_id" in sql
        assert "CREATE INDEX idx_courses_branch" in sql

        statements = [str(call.args[0]) for call in bind.execute.call_args_list]
        assert any("INSERT INTO branches" in stmt for stmt in statements)
        assert any(stmt.startswith("UPDATE courses") for stmt in statements)

    def test_no_default_branch_without_unassigned_courses(self, bind: MagicMock) -> None:
        bind.execute.return_value.first.return_value = None

        _run_offline(_load("002_add_course_branches").upgrade, bind)

        statements = [str(call.args[0]) for call in bind.execute.call_args_list]
        assert not any("INSERT INTO branches" in stmt for stmt in statements)


@pytest.mark.usefixtures("migrated_schema")
class TestUpgradeOnMigratedSchema:
    """Re-running a revision against a converged schema emits no DDL."""

    @pytest.mark.parametrize("revision", TENANT_MIGRATIONS)
    def test_emits_no_ddl(self, revision: str, bind: MagicMock) -> None:
        bind.execute.return_value.first.return_value = None

        sql = _run_offline(_load(revision).upgrade, bind)

        assert "CREATE" not in sql
        assert "ALTER" not in sql
