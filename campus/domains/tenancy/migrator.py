# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Schema migration across all tenants.

Brings every active tenant schema to the latest revision. Each tenant
runs in its own transaction holding an advisory lock on its schema, so
one tenant's failure is rolled back and reported without affecting the
others. Tenants still provisioning, or left failed, are skipped until
repair_tenant() activates them.

Example:
    >>> migrator = TenantMigrator(concurrency=4)
    >>> report = await migrator.migrate_all_tenants()
    >>> report.ok
    True
"""

import asyncio
import logging
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from campus.core.tenancy import (
    MigrationError,
    TenantUnavailableError,
    UnknownTenantError,
    normalize_tenant_id,
)
from campus.infrastructure.database.connection import get_registry_engine, get_registry_session
from campus.infrastructure.database.migrations.runner import (
    TENANT_MIGRATIONS,
    get_migration_status,
    run_tenant_migrations,
)
from campus.infrastructure.database.models.registry import TenantRecord, TenantStatus
from campus.infrastructure.database.pool_cache import TenantDirectoryEntry

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

DEFAULT_CONCURRENCY = 4


@dataclass
class TenantMigrationResult:
    """Outcome of migrating one tenant schema.

    Attributes:
        tenant_id: Tenant id.
        schema_name: Schema that was migrated.
        applied: Revisions applied by this run.
        error: Failure description, None on success.
        failed_revision: Revision that failed.
        failed_step: Step inside the revision that failed, when known.
    """

    tenant_id: str
    schema_name: str
    applied: list[str] = field(default_factory=list)
    error: str | None = None
    failed_revision: str | None = None
    failed_step: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class MigrationReport:
    """Per-tenant results of a migration run."""

    succeeded: list[TenantMigrationResult] = field(default_factory=list)
    failed: list[TenantMigrationResult] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True if no tenant failed."""
        return not self.failed

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed) + len(self.skipped)

    def add(self, result: TenantMigrationResult) -> None:
        if result.succeeded:
            self.succeeded.append(result)
        else:
            self.failed.append(result)


class TenantMigrator:
    """Applies tenant revisions to every registered tenant schema.

    Attributes:
        concurrency: Maximum number of tenants migrated at once.
    """

    def __init__(
        self,
        engine: AsyncEngine | None = None,
        session_factory: SessionFactory | None = None,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        """Initialize the migrator.

        Args:
            engine: Engine used for tenant DDL. Defaults to the registry engine.
            session_factory: Registry session factory.
            concurrency: Maximum number of tenants migrated in parallel.

        Raises:
            ValueError: If concurrency is lower than 1.
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._engine = engine
        self._session_factory = session_factory or get_registry_session
        self.concurrency = concurrency

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = get_registry_engine()
        return self._engine

    async def list_tenants(self) -> list[TenantDirectoryEntry]:
        """List every registered tenant, ordered by id."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    TenantRecord.tenant_id,
                    TenantRecord.schema_name,
                    TenantRecord.status,
                ).order_by(TenantRecord.tenant_id)
            )
            rows = result.all()

        return [
            TenantDirectoryEntry(
                tenant_id=row.tenant_id,
                schema_name=row.schema_name,
                status=row.status,
            )
            for row in rows
        ]

    async def migrate_all_tenants(self, target_revision: str | None = None) -> MigrationReport:
        """Migrate every active tenant schema.

        A failing tenant is logged and recorded in the report; the
        remaining tenants still run.

        Args:
            target_revision: Optional revision to stop at (inclusive).

        Returns:
            MigrationReport with succeeded, failed and skipped tenants.

        Raises:
            ValueError: If target_revision is unknown.
        """
        _check_target(target_revision)

        tenants = await self.list_tenants()
        report = MigrationReport()

        runnable = []
        for entry in tenants:
            if entry.status == TenantStatus.ACTIVE.value:
                runnable.append(entry)
            else:
                logger.warning(
                    "Skipping tenant %s with status %s", entry.tenant_id, entry.status
                )
                report.skipped.append(entry.tenant_id)

        logger.info(
            "Migrating %d tenants (concurrency %d, %d skipped)",
            len(runnable),
            self.concurrency,
            len(report.skipped),
        )

        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(entry: TenantDirectoryEntry) -> TenantMigrationResult:
            async with semaphore:
                return await self._migrate_schema(entry, target_revision)

        results = await asyncio.gather(*(run(entry) for entry in runnable))
        for result in results:
            report.add(result)

        logger.info(
            "Migration finished: %d succeeded, %d failed, %d skipped",
            len(report.succeeded),
            len(report.failed),
            len(report.skipped),
        )
        return report

    async def migrate_tenant(
        self,
        tenant_id: str,
        target_revision: str | None = None,
    ) -> TenantMigrationResult:
        """Migrate a single tenant schema.

        Args:
            tenant_id: Tenant to migrate.
            target_revision: Optional revision to stop at (inclusive).

        Returns:
            TenantMigrationResult for the tenant.

        Raises:
            UnknownTenantError: If the tenant is not registered.
            TenantUnavailableError: If the tenant is not active.
            ValueError: If target_revision is unknown.
        """
        _check_target(target_revision)
        entry = await self._get_entry(tenant_id)
        if entry.status != TenantStatus.ACTIVE.value:
            raise TenantUnavailableError(entry.tenant_id, entry.status)
        return await self._migrate_schema(entry, target_revision)

    async def status(self, tenant_id: str) -> dict:
        """Get applied and pending revisions for a tenant.

        Raises:
            UnknownTenantError: If the tenant is not registered.
        """
        entry = await self._get_entry(tenant_id)
        async with self.engine.begin() as conn:
            status = await get_migration_status(conn, entry.schema_name)
        status["tenant_id"] = entry.tenant_id
        status["tenant_status"] = entry.status
        return status

    async def _get_entry(self, tenant_id: str) -> TenantDirectoryEntry:
        tenant_id = normalize_tenant_id(tenant_id)
        async with self._session_factory() as session:
            record = await session.get(TenantRecord, tenant_id)
            if record is None:
                raise UnknownTenantError(tenant_id)
            return TenantDirectoryEntry(
                tenant_id=record.tenant_id,
                schema_name=record.schema_name,
                status=record.status,
            )

    async def _migrate_schema(
        self,
        entry: TenantDirectoryEntry,
        target_revision: str | None,
    ) -> TenantMigrationResult:
        """Run pending revisions for one schema, capturing any failure."""
        result = TenantMigrationResult(tenant_id=entry.tenant_id, schema_name=entry.schema_name)
        try:
            async with self.engine.begin() as conn:
                result.applied = await run_tenant_migrations(
                    conn, entry.tenant_id, entry.schema_name, target_revision
                )
        except MigrationError as e:
            logger.error(
                "Migration failed for tenant %s at %s (step %s): %s",
                entry.tenant_id,
                e.revision,
                e.step or "-",
                e.reason,
            )
            result.applied = []
            result.error = e.reason
            result.failed_revision = e.revision
            result.failed_step = e.step
        except Exception as e:
            # Recorded per tenant so the rest of the batch still runs
            logger.exception("Migration failed for tenant %s", entry.tenant_id)
            result.applied = []
            result.error = str(e) or type(e).__name__
        else:
            if result.applied:
                logger.info(
                    "Migrated tenant %s: %s", entry.tenant_id, ", ".join(result.applied)
                )
        return result


def _check_target(target_revision: str | None) -> None:
    if target_revision and target_revision not in TENANT_MIGRATIONS:
        raise ValueError(f"Unknown target revision: {target_revision}")
