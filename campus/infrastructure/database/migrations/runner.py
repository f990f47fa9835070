# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant schema revision runner.

Applies the ordered tenant revisions to one tenant schema inside a
caller-owned transaction. The provisioner calls it right after creating
a schema; the migrator calls it for every existing tenant.

Each schema keeps its own ``schema_migrations`` table with one row per
applied revision. The whole run holds a transaction-scoped advisory
lock keyed on the schema name, so two processes never interleave
revisions on the same schema.

Example:
    from campus.infrastructure.database.migrations.runner import run_tenant_migrations

    async with engine.begin() as conn:
        applied = await run_tenant_migrations(conn, "acme", "acme_schema")
"""

import importlib
import logging
from typing import Callable, Iterable

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncConnection

from campus.core.tenancy import MigrationError, quote_schema
from campus.infrastructure.database.migrations.guards import MigrationStepError

logger = logging.getLogger(__name__)

# Migration files in order (must be maintained manually)
TENANT_MIGRATIONS = [
    "001_initial_schema",
    "002_add_course_branches",
]

VERSION_TABLE = "schema_migrations"


async def run_tenant_migrations(
    conn: AsyncConnection,
    tenant_id: str,
    schema_name: str,
    target_revision: str | None = None,
) -> list[str]:
    """Apply pending revisions to a tenant schema.

    Must be called inside a transaction (``engine.begin()``); the
    search_path change and the advisory lock both end with it.

    Args:
        conn: Connection with an open transaction.
        tenant_id: Tenant the schema belongs to, for error context.
        schema_name: Schema to migrate. It must already exist.
        target_revision: Optional revision to stop at (inclusive).
            If None, applies all pending revisions.

    Returns:
        List of applied revision IDs, empty when already up to date.

    Raises:
        MigrationError: If a revision fails. The caller's transaction
            should be rolled back.
    """
    await lock_schema(conn, schema_name)
    if not await schema_exists(conn, schema_name):
        # Unqualified DDL would otherwise land in public
        raise MigrationError(tenant_id, "pre-check", f"schema {schema_name} does not exist")
    await use_schema(conn, schema_name)
    await _ensure_version_table(conn)

    applied_revisions = await _get_applied_revisions(conn)
    pending = _get_pending_migrations(applied_revisions, target_revision)

    if not pending:
        logger.debug("Schema %s is up to date", schema_name)
        return []

    logger.info(
        "Applying %d migrations to %s: %s",
        len(pending),
        schema_name,
        ", ".join(pending),
    )

    applied = []
    for revision in pending:
        try:
            await _apply_migration(conn, revision)
        except MigrationStepError as e:
            raise MigrationError(
                tenant_id, revision, str(e.original_error), step=e.step
            ) from e
        except Exception as e:
            raise MigrationError(tenant_id, revision, str(e)) from e
        applied.append(revision)
        logger.info("Applied migration %s to %s", revision, schema_name)

    return applied


async def lock_schema(conn: AsyncConnection, schema_name: str) -> None:
    """Take the per-schema advisory lock for the current transaction."""
    await conn.execute(
        text("SELECT pg_advisory_xact_lock(hashtext(:schema))"),
        {"schema": schema_name},
    )


async def schema_exists(conn: AsyncConnection, schema_name: str) -> bool:
    """Check whether a schema exists in the database."""
    result = await conn.execute(
        text("SELECT 1 FROM pg_namespace WHERE nspname = :schema"),
        {"schema": schema_name},
    )
    return result.first() is not None


async def use_schema(conn: AsyncConnection, schema_name: str) -> None:
    """Point unqualified names at the tenant schema until the transaction ends."""
    await conn.execute(text(f"SET LOCAL search_path TO {quote_schema(schema_name)}, public"))


async def _ensure_version_table(conn: AsyncConnection) -> None:
    """Create the schema_migrations table if not exists."""
    await conn.execute(
        text(f"""
            CREATE TABLE IF NOT EXISTS {VERSION_TABLE} (
                revision VARCHAR(128) NOT NULL,
                applied_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                CONSTRAINT {VERSION_TABLE}_pkey PRIMARY KEY (revision)
            )
        """)
    )


async def _get_applied_revisions(conn: AsyncConnection) -> set[str]:
    """Get the revisions recorded in the current schema."""
    result = await conn.execute(text(f"SELECT revision FROM {VERSION_TABLE}"))
    return {row[0] for row in result}


def _get_pending_migrations(
    applied: Iterable[str],
    target_revision: str | None = None,
) -> list[str]:
    """Get list of migrations to apply.

    Args:
        applied: Revisions already recorded for the schema.
        target_revision: Target revision to migrate to.

    Returns:
        List of revision IDs to apply in order.

    Raises:
        ValueError: If the target revision is unknown.
    """
    if target_revision:
        try:
            end_idx = TENANT_MIGRATIONS.index(target_revision) + 1
        except ValueError:
            raise ValueError(f"Unknown target revision: {target_revision}") from None
    else:
        end_idx = len(TENANT_MIGRATIONS)

    applied = set(applied)
    unknown = applied.difference(TENANT_MIGRATIONS)
    if unknown:
        logger.warning("Schema has unknown revisions recorded: %s", ", ".join(sorted(unknown)))

    return [rev for rev in TENANT_MIGRATIONS[:end_idx] if rev not in applied]


async def _apply_migration(conn: AsyncConnection, revision: str) -> None:
    """Apply a single migration and record it.

    Args:
        conn: Connection inside the tenant transaction.
        revision: Migration revision ID.
    """
    module_name = f"campus.infrastructure.database.migrations.tenant.{revision}"
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ImportError(f"Cannot import migration {revision}: {e}") from e

    upgrade_fn: Callable | None = getattr(module, "upgrade", None)
    if upgrade_fn is None:
        raise ValueError(f"Migration {revision} has no upgrade() function")

    # Run upgrade in sync context (alembic style)
    await conn.run_sync(_run_upgrade_sync, upgrade_fn)

    await conn.execute(
        text(f"INSERT INTO {VERSION_TABLE} (revision) VALUES (:revision)"),
        {"revision": revision},
    )


def _run_upgrade_sync(connection: Connection, upgrade_fn: Callable) -> None:
    """Run upgrade function in sync context with alembic operations.

    Alembic operations are sync and read their connection from a
    context-local proxy, so they run inside ``run_sync``.
    """
    from alembic.operations import Operations
    from alembic.runtime.migration import MigrationContext

    context = MigrationContext.configure(connection)

    with context.begin_transaction():
        with Operations.context(context):
            upgrade_fn()


async def get_migration_status(conn: AsyncConnection, schema_name: str) -> dict:
    """Get detailed migration status for a tenant schema.

    Args:
        conn: Connection with an open transaction.
        schema_name: Schema to inspect.

    Returns:
        Dict with applied, pending and all revisions. A missing schema
        reports every revision as pending.
    """
    exists = await schema_exists(conn, schema_name)
    applied: set[str] = set()
    if exists:
        await use_schema(conn, schema_name)
        await _ensure_version_table(conn)
        applied = await _get_applied_revisions(conn)
    pending = _get_pending_migrations(applied)

    return {
        "schema_name": schema_name,
        "schema_exists": exists,
        "applied_migrations": [rev for rev in TENANT_MIGRATIONS if rev in applied],
        "latest_version": TENANT_MIGRATIONS[-1] if TENANT_MIGRATIONS else None,
        "pending_count": len(pending),
        "pending_migrations": pending,
        "is_up_to_date": len(pending) == 0,
    }
