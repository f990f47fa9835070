# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenancy primitives shared across layers.

Exports the tenancy exception hierarchy and the tenant id / schema name
helpers used by the provisioner, migrator, pool cache and resolver.
"""

from campus.core.tenancy.exceptions import (
    DuplicateEmailError,
    DuplicateTenantError,
    InvalidTenantIdFormatError,
    MigrationError,
    ProvisioningError,
    TenancyError,
    TenantPoolError,
    TenantUnavailableError,
    UnknownTenantError,
)
from campus.core.tenancy.identifiers import (
    normalize_tenant_id,
    quote_schema,
    schema_name_for,
)

__all__ = [
    # Exceptions
    "TenancyError",
    "InvalidTenantIdFormatError",
    "DuplicateTenantError",
    "DuplicateEmailError",
    "UnknownTenantError",
    "TenantUnavailableError",
    "ProvisioningError",
    "TenantPoolError",
    "MigrationError",
    # Identifiers
    "normalize_tenant_id",
    "schema_name_for",
    "quote_schema",
]
