# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant schema provisioning.

Creates the isolated PostgreSQL schema for a new institution and records
it in the registry. The provisioning flow:

1. register: insert the registry row with status ``provisioning``
   (own transaction, guarded by the primary key)
2. create_schema: ``CREATE SCHEMA IF NOT EXISTS``
3. create_tables: apply the tenant revisions
4. create_indexes: secondary indexes, part of the revisions
5. seed_roles: default ADMIN, TEACHER and STUDENT roles

Steps 2-5 share one PostgreSQL transaction, so a failure leaves no
partial schema behind. The registry row is then marked ``failed`` and
can be brought back with repair_tenant().

Example:
    >>> provisioner = TenantProvisioner()
    >>> tenant = await provisioner.provision_tenant("acme", "Acme University")
    >>> tenant.schema_name
    'acme_schema'
"""

import logging
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Callable

from sqlalchemy import func, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from campus.core.tenancy import (
    DuplicateTenantError,
    MigrationError,
    ProvisioningError,
    UnknownTenantError,
    normalize_tenant_id,
    quote_schema,
    schema_name_for,
)
from campus.infrastructure.database.connection import (
    DatabaseError,
    get_registry_engine,
    get_registry_session,
)
from campus.infrastructure.database.migrations.runner import run_tenant_migrations
from campus.infrastructure.database.models.registry import TenantRecord, TenantStatus
from campus.infrastructure.database.seeds.tenant import seed_default_roles

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


@dataclass(frozen=True)
class ProvisionedTenant:
    """Result of a successful provisioning.

    Attributes:
        tenant_id: Normalized tenant id.
        schema_name: Schema created for the tenant.
        institution_name: Display name stored in the registry.
        applied_revisions: Tenant revisions applied to the new schema.
    """

    tenant_id: str
    schema_name: str
    institution_name: str
    applied_revisions: tuple[str, ...] = ()


class TenantProvisioner:
    """Creates tenant schemas and their registry records.

    Attributes:
        _engine: Engine used for schema DDL. Defaults to the registry engine.
        _session_factory: Registry session factory.
    """

    def __init__(
        self,
        engine: AsyncEngine | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        """Initialize the provisioner.

        Args:
            engine: Engine for schema DDL. Defaults to the registry engine,
                since tenant schemas live in the registry database.
            session_factory: Registry session factory. Defaults to
                get_registry_session.
        """
        self._engine = engine
        self._session_factory = session_factory or get_registry_session

    @property
    def engine(self) -> AsyncEngine:
        """Engine used for schema DDL."""
        if self._engine is None:
            self._engine = get_registry_engine()
        return self._engine

    async def provision_tenant(
        self,
        tenant_id: str,
        institution_name: str,
    ) -> ProvisionedTenant:
        """Provision a new tenant.

        Args:
            tenant_id: Requested tenant id. Normalized to lower case.
            institution_name: Display name of the institution.

        Returns:
            ProvisionedTenant describing the new schema.

        Raises:
            InvalidTenantIdFormatError: If the id is not a valid slug.
            DuplicateTenantError: If the tenant is already registered.
            ProvisioningError: If building the schema fails. The registry
                row is left in status ``failed``.
        """
        tenant_id = normalize_tenant_id(tenant_id)
        schema_name = schema_name_for(tenant_id)

        await self._register(tenant_id, schema_name, institution_name)
        logger.info("Registered tenant %s, building schema %s", tenant_id, schema_name)

        applied = await self._build_schema(tenant_id, schema_name)
        await self._set_status(tenant_id, TenantStatus.ACTIVE)

        logger.info(
            "Provisioned tenant %s (schema %s, %d revisions)",
            tenant_id,
            schema_name,
            len(applied),
        )
        return ProvisionedTenant(
            tenant_id=tenant_id,
            schema_name=schema_name,
            institution_name=institution_name,
            applied_revisions=tuple(applied),
        )

    async def repair_tenant(self, tenant_id: str) -> ProvisionedTenant:
        """Rebuild the schema of a tenant whose provisioning did not finish.

        Active tenants are returned unchanged.

        Args:
            tenant_id: Tenant to repair.

        Returns:
            ProvisionedTenant for the (now active) tenant.

        Raises:
            UnknownTenantError: If the tenant is not registered.
            ProvisioningError: If building the schema fails again.
        """
        tenant_id = normalize_tenant_id(tenant_id)

        async with self._session_factory() as session:
            record = await session.get(TenantRecord, tenant_id)
            if record is None:
                raise UnknownTenantError(tenant_id)
            schema_name = record.schema_name
            institution_name = record.institution_name
            status = record.status

        if status == TenantStatus.ACTIVE.value:
            return ProvisionedTenant(tenant_id, schema_name, institution_name)

        logger.info("Repairing tenant %s (status %s)", tenant_id, status)
        await self._set_status(tenant_id, TenantStatus.PROVISIONING)
        applied = await self._build_schema(tenant_id, schema_name)
        await self._set_status(tenant_id, TenantStatus.ACTIVE)

        return ProvisionedTenant(
            tenant_id=tenant_id,
            schema_name=schema_name,
            institution_name=institution_name,
            applied_revisions=tuple(applied),
        )

    # =========================================================================
    # Steps
    # =========================================================================

    async def _register(
        self,
        tenant_id: str,
        schema_name: str,
        institution_name: str,
    ) -> None:
        """Insert the registry row in its own committed transaction."""
        try:
            async with self._session_factory() as session:
                existing = await session.execute(
                    select(TenantRecord.tenant_id).where(TenantRecord.tenant_id == tenant_id)
                )
                if existing.scalar_one_or_none() is not None:
                    raise DuplicateTenantError(tenant_id)

                session.add(
                    TenantRecord(
                        tenant_id=tenant_id,
                        schema_name=schema_name,
                        institution_name=institution_name,
                        status=TenantStatus.PROVISIONING.value,
                    )
                )
        except IntegrityError as e:
            # Lost a race with a concurrent registration
            raise DuplicateTenantError(tenant_id) from e

    async def _build_schema(self, tenant_id: str, schema_name: str) -> list[str]:
        """Create the schema, its tables, indexes and seed roles atomically."""
        step = "create_schema"
        try:
            async with self.engine.begin() as conn:
                await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {quote_schema(schema_name)}"))

                step = "create_tables"
                applied = await run_tenant_migrations(conn, tenant_id, schema_name)

                step = "seed_roles"
                seeded = await seed_default_roles(conn)
                logger.debug("Seeded %d roles for tenant %s", seeded, tenant_id)
        except Exception as e:
            reason = str(e)
            if isinstance(e, MigrationError):
                reason = e.reason
                if e.step and e.step.startswith("create_index"):
                    step = "create_indexes"
            logger.exception("Provisioning failed for tenant %s at step %s", tenant_id, step)
            await self._mark_failed(tenant_id)
            raise ProvisioningError(tenant_id, step, reason) from e

        return applied

    async def _set_status(self, tenant_id: str, status: TenantStatus) -> None:
        values: dict = {"status": status.value}
        if status is TenantStatus.ACTIVE:
            values["provisioned_at"] = func.coalesce(TenantRecord.provisioned_at, func.now())

        async with self._session_factory() as session:
            await session.execute(
                update(TenantRecord).where(TenantRecord.tenant_id == tenant_id).values(**values)
            )

    async def _mark_failed(self, tenant_id: str) -> None:
        try:
            await self._set_status(tenant_id, TenantStatus.FAILED)
        except (DatabaseError, SQLAlchemyError):
            logger.exception("Could not mark tenant %s as failed", tenant_id)
