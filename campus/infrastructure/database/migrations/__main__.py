# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Operator entry point for tenant schema migrations.

Usage:
    python -m campus.infrastructure.database.migrations
    python -m campus.infrastructure.database.migrations --tenant acme
    python -m campus.infrastructure.database.migrations --concurrency 8
    python -m campus.infrastructure.database.migrations --status --tenant acme
    python -m campus.infrastructure.database.migrations --repair acme

Exit status is 1 if any tenant failed, 0 otherwise. --repair rebuilds the
schema of a tenant left in the failed or provisioning state and marks it
active.
"""

import argparse
import asyncio
import sys

from campus.core.config import get_settings
from campus.core.tenancy import TenancyError
from campus.domains.tenancy.migrator import MigrationReport, TenantMigrator
from campus.domains.tenancy.provisioner import TenantProvisioner
from campus.infrastructure.database.connection import (
    DatabaseError,
    close_registry_database,
    init_registry_database,
)
from campus.infrastructure.database.migrations.runner import TENANT_MIGRATIONS
from campus.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m campus.infrastructure.database.migrations",
        description="Apply tenant schema revisions.",
    )
    parser.add_argument("--tenant", help="Migrate a single tenant")
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Tenants migrated in parallel (default: MIGRATION_CONCURRENCY)",
    )
    parser.add_argument(
        "--target",
        choices=TENANT_MIGRATIONS,
        default=None,
        help="Stop at this revision",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Show applied and pending revisions instead of migrating",
    )
    parser.add_argument(
        "--repair",
        metavar="TENANT",
        help="Rebuild the schema of a tenant whose provisioning failed",
    )
    return parser.parse_args(argv)


def _print_report(report: MigrationReport) -> None:
    for result in report.succeeded:
        applied = ", ".join(result.applied) if result.applied else "up to date"
        print(f"  ok      {result.tenant_id}: {applied}")
    for result in report.failed:
        where = result.failed_revision or "-"
        if result.failed_step:
            where = f"{where}:{result.failed_step}"
        print(f"  FAILED  {result.tenant_id} at {where}: {result.error}")
    for tenant_id in report.skipped:
        print(f"  skipped {tenant_id}")
    print(
        f"{len(report.succeeded)} succeeded, {len(report.failed)} failed, "
        f"{len(report.skipped)} skipped"
    )


async def _run(args: argparse.Namespace) -> int:
    settings = get_settings()
    setup_logging(settings)

    concurrency = args.concurrency or settings.migration.concurrency
    await init_registry_database(settings)
    try:
        if args.repair:
            repaired = await TenantProvisioner().repair_tenant(args.repair)
            logger.info(
                "tenant_repaired",
                tenant=repaired.tenant_id,
                applied=len(repaired.applied_revisions),
            )
            applied = ", ".join(repaired.applied_revisions) or "already active"
            print(f"  repaired {repaired.tenant_id} ({repaired.schema_name}): {applied}")
            return 0

        migrator = TenantMigrator(concurrency=concurrency)

        if args.status:
            if not args.tenant:
                print("--status requires --tenant", file=sys.stderr)
                return 2
            status = await migrator.status(args.tenant)
            print(f"{status['tenant_id']} ({status['tenant_status']})")
            if not status.get("schema_exists", True):
                print(f"  schema {status['schema_name']} is missing")
            print(f"  applied: {', '.join(status['applied_migrations']) or '-'}")
            print(f"  pending: {', '.join(status['pending_migrations']) or '-'}")
            return 0

        if args.tenant:
            report = MigrationReport()
            report.add(await migrator.migrate_tenant(args.tenant, args.target))
        else:
            report = await migrator.migrate_all_tenants(args.target)

        logger.info(
            "migration_finished",
            succeeded=len(report.succeeded),
            failed=len(report.failed),
            skipped=len(report.skipped),
        )
        _print_report(report)
        return 0 if report.ok else 1
    except (TenancyError, DatabaseError) as e:
        logger.error("migration_aborted", tenant=args.repair or args.tenant, error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        await close_registry_database()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    if args.concurrency is not None and args.concurrency < 1:
        print("--concurrency must be at least 1", file=sys.stderr)
        return 2
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
