# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenancy domain: schema provisioning, migration and administration."""

from campus.domains.tenancy.migrator import (
    MigrationReport,
    TenantMigrationResult,
    TenantMigrator,
)
from campus.domains.tenancy.provisioner import ProvisionedTenant, TenantProvisioner
from campus.domains.tenancy.service import TenantService, TenantStats, UserNotFoundError

__all__ = [
    "MigrationReport",
    "ProvisionedTenant",
    "TenantMigrationResult",
    "TenantMigrator",
    "TenantProvisioner",
    "TenantService",
    "TenantStats",
    "UserNotFoundError",
]
