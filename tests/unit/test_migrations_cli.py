# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the tenant migration command line."""

from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from campus.core.tenancy import ProvisioningError, UnknownTenantError
from campus.domains.tenancy.migrator import MigrationReport, TenantMigrationResult
from campus.domains.tenancy.provisioner import ProvisionedTenant
from campus.infrastructure.database.migrations.__main__ import main

MODULE = "campus.infrastructure.database.migrations.__main__"


@pytest.fixture
def migrator() -> Generator[MagicMock, None, None]:
    """Patch out the database and hand back the migrator instance."""
    instance = MagicMock()
    instance.migrate_all_tenants = AsyncMock(return_value=MigrationReport())
    instance.migrate_tenant = AsyncMock()
    instance.status = AsyncMock()

    with patch(f"{MODULE}.init_registry_database", AsyncMock()), \
            patch(f"{MODULE}.close_registry_database", AsyncMock()) as close, \
            patch(f"{MODULE}.setup_logging"), \
            patch(f"{MODULE}.TenantMigrator", return_value=instance) as cls:
        instance.close = close
        instance.cls = cls
        yield instance


class TestMigrationsCli:
    """Tests for the migration entry point."""

    def test_all_tenants_success_exits_zero(
        self,
        migrator: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        report = MigrationReport()
        report.add(TenantMigrationResult("acme", "acme_schema", applied=["002_add_course_branches"]))
        report.skipped.append("initech")
        migrator.migrate_all_tenants.return_value = report

        assert main([]) == 0

        out = capsys.readouterr().out
        assert "acme: 002_add_course_branches" in out
        assert "skipped initech" in out
        assert "1 succeeded, 0 failed, 1 skipped" in out
        migrator.close.assert_awaited_once()

    def test_any_failure_exits_one(
        self,
        migrator: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        report = MigrationReport()
        report.add(TenantMigrationResult("acme", "acme_schema"))
        report.add(
            TenantMigrationResult(
                "globex",
                "globex_schema",
                error="column exists",
                failed_revision="002_add_course_branches",
                failed_step="add_branch_id_column",
            )
        )
        migrator.migrate_all_tenants.return_value = report

        assert main([]) == 1

        out = capsys.readouterr().out
        assert "FAILED  globex at 002_add_course_branches:add_branch_id_column" in out

    def test_concurrency_and_target_are_passed(self, migrator: MagicMock) -> None:
        assert main(["--concurrency", "8", "--target", "001_initial_schema"]) == 0

        assert migrator.cls.call_args.kwargs["concurrency"] == 8
        migrator.migrate_all_tenants.assert_awaited_once_with("001_initial_schema")

    def test_single_tenant(self, migrator: MagicMock) -> None:
        migrator.migrate_tenant.return_value = TenantMigrationResult("acme", "acme_schema")

        assert main(["--tenant", "acme"]) == 0

        migrator.migrate_tenant.assert_awaited_once_with("acme", None)
        migrator.migrate_all_tenants.assert_not_awaited()

    def test_unknown_tenant_exits_one(
        self,
        migrator: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        migrator.migrate_tenant.side_effect = UnknownTenantError("nobody")

        assert main(["--tenant", "nobody"]) == 1

        assert "Tenant not found: nobody" in capsys.readouterr().err
        migrator.close.assert_awaited_once()

    def test_status_requires_tenant(self, migrator: MagicMock) -> None:
        assert main(["--status"]) == 2

    def test_status_prints_revisions(
        self,
        migrator: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        migrator.status.return_value = {
            "tenant_id": "acme",
            "tenant_status": "active",
            "applied_migrations": ["001_initial_schema"],
            "pending_migrations": ["002_add_course_branches"],
        }

        assert main(["--status", "--tenant", "acme"]) == 0

        out = capsys.readouterr().out
        assert "acme (active)" in out
        assert "pending: 002_add_course_branches" in out

    def test_zero_concurrency_is_usage_error(self, migrator: MagicMock) -> None:
        assert main(["--concurrency", "0"]) == 2

        migrator.cls.assert_not_called()


@pytest.fixture
def provisioner(migrator: MagicMock) -> Generator[MagicMock, None, None]:
    instance = MagicMock()
    instance.repair_tenant = AsyncMock()

    with patch(f"{MODULE}.TenantProvisioner", return_value=instance):
        yield instance


class TestRepairCli:
    """Tests for --repair."""

    def test_repair_rebuilds_failed_tenant(
        self,
        migrator: MagicMock,
        provisioner: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        provisioner.repair_tenant.return_value = ProvisionedTenant(
            "initech",
            "initech_schema",
            "Initech College",
            applied_revisions=("001_initial_schema", "002_add_course_branches"),
        )

        assert main(["--repair", "initech"]) == 0

        provisioner.repair_tenant.assert_awaited_once_with("initech")
        out = capsys.readouterr().out
        assert "repaired initech (initech_schema)" in out
        assert "002_add_course_branches" in out
        migrator.migrate_all_tenants.assert_not_awaited()
        migrator.close.assert_awaited_once()

    def test_repair_of_active_tenant(
        self,
        migrator: MagicMock,
        provisioner: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        provisioner.repair_tenant.return_value = ProvisionedTenant("acme", "acme_schema", "Acme University")

        assert main(["--repair", "acme"]) == 0

        assert "already active" in capsys.readouterr().out

    def test_repair_unknown_tenant_exits_one(
        self,
        migrator: MagicMock,
        provisioner: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        provisioner.repair_tenant.side_effect = UnknownTenantError("nobody")

        assert main(["--repair", "nobody"]) == 1

        assert "Tenant not found: nobody" in capsys.readouterr().err
        migrator.close.assert_awaited_once()

    def test_repair_failing_again_exits_one(self, migrator: MagicMock, provisioner: MagicMock) -> None:
        provisioner.repair_tenant.side_effect = ProvisioningError("initech", "create_tables", "disk full")

        assert main(["--repair", "initech"]) == 1
