# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for tenant provisioning.

Registry sessions and the DDL engine are fakes; the revision runner and
the role seeder are patched so failures can be injected at each step.
"""

from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from campus.core.tenancy import (
    DuplicateTenantError,
    InvalidTenantIdFormatError,
    MigrationError,
    ProvisioningError,
    UnknownTenantError,
)
from campus.domains.tenancy.provisioner import ProvisionedTenant, TenantProvisioner
from campus.infrastructure.database.models.registry import TenantRecord

RUNNER = "campus.domains.tenancy.provisioner.run_tenant_migrations"
SEEDER = "campus.domains.tenancy.provisioner.seed_default_roles"

ALL_REVISIONS = ["001_initial_schema", "002_add_course_branches"]


class FakeRegistry:
    """Records what the provisioner writes to the registry."""

    def __init__(self, existing: dict[str, SimpleNamespace] | None = None) -> None:
        self.records = dict(existing or {})
        self.added: list[TenantRecord] = []
        self.statements: list = []
        self.session = AsyncMock()
        self.session.add = MagicMock(side_effect=self._add)
        self.session.execute = AsyncMock(side_effect=self._execute)
        self.session.get = AsyncMock(side_effect=lambda model, key: self.records.get(key))

    def _add(self, record: TenantRecord) -> None:
        self.added.append(record)
        self.records[record.tenant_id] = record

    async def _execute(self, stmt):
        self.statements.append(stmt)
        result = MagicMock()
        # select(TenantRecord.tenant_id).where(...) duplicate check
        tenant_id = stmt.compile().params.get("tenant_id_1")
        result.scalar_one_or_none.return_value = (
            tenant_id if tenant_id in self.records else None
        )
        return result

    @property
    def status_updates(self) -> list[str]:
        return [
            stmt.compile().params["status"]
            for stmt in self.statements
            if stmt.is_dml
        ]

    @asynccontextmanager
    async def factory(self):
        yield self.session


def _engine() -> tuple[MagicMock, AsyncMock]:
    conn = AsyncMock()
    engine = MagicMock()

    @asynccontextmanager
    async def begin():
        yield conn

    engine.begin = MagicMock(side_effect=begin)
    return engine, conn


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def engine_and_conn() -> tuple[MagicMock, AsyncMock]:
    return _engine()


@pytest.fixture
def provisioner(registry: FakeRegistry, engine_and_conn) -> TenantProvisioner:
    engine, _ = engine_and_conn
    return TenantProvisioner(engine=engine, session_factory=registry.factory)


class TestProvisionTenant:
    """Tests for TenantProvisioner.provision_tenant."""

    @pytest.mark.asyncio
    async def test_provisions_new_tenant(
        self,
        provisioner: TenantProvisioner,
        registry: FakeRegistry,
        engine_and_conn,
    ) -> None:
        """Test that a new tenant is registered, built and activated."""
        _, conn = engine_and_conn

        with patch(RUNNER, AsyncMock(return_value=ALL_REVISIONS)) as runner, \
                patch(SEEDER, AsyncMock(return_value=3)) as seeder:
            result = await provisioner.provision_tenant("Acme", "Acme University")

        assert result == ProvisionedTenant(
            tenant_id="acme",
            schema_name="acme_schema",
            institution_name="Acme University",
            applied_revisions=tuple(ALL_REVISIONS),
        )

        record = registry.added[0]
        assert record.tenant_id == "acme"
        assert record.schema_name == "acme_schema"
        assert record.status == "provisioning"

        create_schema_sql = str(conn.execute.await_args_list[0].args[0])
        assert create_schema_sql == 'CREATE SCHEMA IF NOT EXISTS "acme_schema"'
        runner.assert_awaited_once_with(conn, "acme", "acme_schema")
        seeder.assert_awaited_once_with(conn)
        assert registry.status_updates == ["active"]

    @pytest.mark.asyncio
    async def test_duplicate_tenant_raises_before_any_ddl(
        self,
        engine_and_conn,
    ) -> None:
        """Test that an existing tenant id is rejected without touching schemas."""
        engine, _ = engine_and_conn
        registry = FakeRegistry({"acme": SimpleNamespace(tenant_id="acme")})
        provisioner = TenantProvisioner(engine=engine, session_factory=registry.factory)

        with patch(RUNNER, AsyncMock()) as runner:
            with pytest.raises(DuplicateTenantError):
                await provisioner.provision_tenant("acme", "Acme Again")

        engine.begin.assert_not_called()
        runner.assert_not_awaited()
        assert registry.added == []

    @pytest.mark.asyncio
    async def test_concurrent_registration_race_is_duplicate(
        self,
        provisioner: TenantProvisioner,
        registry: FakeRegistry,
        engine_and_conn,
    ) -> None:
        """Test that a primary key violation on commit maps to DuplicateTenantError."""
        engine, _ = engine_and_conn

        @asynccontextmanager
        async def racing_factory():
            yield registry.session
            raise IntegrityError("INSERT", {}, Exception("duplicate key"))

        provisioner = TenantProvisioner(engine=engine, session_factory=racing_factory)

        with pytest.raises(DuplicateTenantError):
            await provisioner.provision_tenant("acme", "Acme University")

        engine.begin.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_tenant_id_raises(
        self,
        provisioner: TenantProvisioner,
        registry: FakeRegistry,
    ) -> None:
        with pytest.raises(InvalidTenantIdFormatError):
            await provisioner.provision_tenant("acme-university", "Acme")

        assert registry.statements == []

    @pytest.mark.asyncio
    async def test_table_failure_marks_tenant_failed(
        self,
        provisioner: TenantProvisioner,
        registry: FakeRegistry,
    ) -> None:
        """Test that a failing revision leaves the tenant failed with the step named."""
        error = MigrationError("acme", "001_initial_schema", "permission denied", step="create_table:users")

        with patch(RUNNER, AsyncMock(side_effect=error)), patch(SEEDER, AsyncMock()) as seeder:
            with pytest.raises(ProvisioningError) as exc_info:
                await provisioner.provision_tenant("acme", "Acme University")

        assert exc_info.value.tenant_id == "acme"
        assert exc_info.value.step == "create_tables"
        assert exc_info.value.reason == "permission denied"
        assert exc_info.value.__cause__ is error
        seeder.assert_not_awaited()
        assert registry.status_updates == ["failed"]

    @pytest.mark.asyncio
    async def test_index_failure_reports_index_step(
        self,
        provisioner: TenantProvisioner,
    ) -> None:
        error = MigrationError(
            "acme", "001_initial_schema", "out of memory", step="create_index:ix_courses_code"
        )

        with patch(RUNNER, AsyncMock(side_effect=error)):
            with pytest.raises(ProvisioningError) as exc_info:
                await provisioner.provision_tenant("acme", "Acme University")

        assert exc_info.value.step == "create_indexes"

    @pytest.mark.asyncio
    async def test_seed_failure_reports_seed_step(
        self,
        provisioner: TenantProvisioner,
        registry: FakeRegistry,
    ) -> None:
        seed_error = OperationalError("INSERT", {}, Exception("disk full"))

        with patch(RUNNER, AsyncMock(return_value=ALL_REVISIONS)), \
                patch(SEEDER, AsyncMock(side_effect=seed_error)):
            with pytest.raises(ProvisioningError) as exc_info:
                await provisioner.provision_tenant("acme", "Acme University")

        assert exc_info.value.step == "seed_roles"
        assert registry.status_updates == ["failed"]

    @pytest.mark.asyncio
    async def test_schema_creation_failure_reports_first_step(
        self,
        provisioner: TenantProvisioner,
        engine_and_conn,
    ) -> None:
        _, conn = engine_and_conn
        conn.execute.side_effect = OperationalError("CREATE SCHEMA", {}, Exception("denied"))

        with patch(RUNNER, AsyncMock()) as runner:
            with pytest.raises(ProvisioningError) as exc_info:
                await provisioner.provision_tenant("acme", "Acme University")

        assert exc_info.value.step == "create_schema"
        runner.assert_not_awaited()


class TestRepairTenant:
    """Tests for TenantProvisioner.repair_tenant."""

    @pytest.mark.asyncio
    async def test_repairs_failed_tenant(self, engine_and_conn) -> None:
        engine, conn = engine_and_conn
        registry = FakeRegistry({
            "acme": SimpleNamespace(
                tenant_id="acme",
                schema_name="acme_schema",
                institution_name="Acme University",
                status="failed",
            ),
        })
        provisioner = TenantProvisioner(engine=engine, session_factory=registry.factory)

        with patch(RUNNER, AsyncMock(return_value=["002_add_course_branches"])), \
                patch(SEEDER, AsyncMock(return_value=0)):
            result = await provisioner.repair_tenant("acme")

        assert result.applied_revisions == ("002_add_course_branches",)
        assert registry.status_updates == ["provisioning", "active"]

    @pytest.mark.asyncio
    async def test_active_tenant_is_left_alone(self, engine_and_conn) -> None:
        engine, _ = engine_and_conn
        registry = FakeRegistry({
            "acme": SimpleNamespace(
                tenant_id="acme",
                schema_name="acme_schema",
                institution_name="Acme University",
                status="active",
            ),
        })
        provisioner = TenantProvisioner(engine=engine, session_factory=registry.factory)

        result = await provisioner.repair_tenant("acme")

        assert result.schema_name == "acme_schema"
        engine.begin.assert_not_called()
        assert registry.status_updates == []

    @pytest.mark.asyncio
    async def test_unknown_tenant_raises(self, provisioner: TenantProvisioner) -> None:
        with pytest.raises(UnknownTenantError):
            await provisioner.repair_tenant("nobody")
