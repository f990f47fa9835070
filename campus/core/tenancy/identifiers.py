# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant id validation and schema name derivation.

Schema names are embedded in DDL, so they are only ever built from a
validated tenant id and always quoted through the dialect's identifier
preparer before use.

Example:
    >>> normalize_tenant_id("  Acme ")
    'acme'
    >>> schema_name_for("acme")
    'acme_schema'
"""

import re

from sqlalchemy.dialects import postgresql

from campus.core.tenancy.exceptions import InvalidTenantIdFormatError

TENANT_ID_MIN_LENGTH = 3
TENANT_ID_MAX_LENGTH = 50
SCHEMA_SUFFIX = "_schema"

TENANT_ID_PATTERN = re.compile(
    rf"^[a-z][a-z0-9_]{{{TENANT_ID_MIN_LENGTH - 1},{TENANT_ID_MAX_LENGTH - 1}}}$"
)

_preparer = postgresql.dialect().identifier_preparer


def normalize_tenant_id(raw: str) -> str:
    """Normalize and validate a tenant id.

    Tenant ids are lower-cased so the derived schema name matches what
    PostgreSQL stores for it.

    Args:
        raw: Tenant id as supplied by the caller.

    Returns:
        Normalized tenant id.

    Raises:
        InvalidTenantIdFormatError: If the id is not a valid slug.
    """
    if not isinstance(raw, str):
        raise InvalidTenantIdFormatError(repr(raw), "must be a string")

    tenant_id = raw.strip().lower()
    if not TENANT_ID_MIN_LENGTH <= len(tenant_id) <= TENANT_ID_MAX_LENGTH:
        raise InvalidTenantIdFormatError(
            raw,
            f"must be {TENANT_ID_MIN_LENGTH}-{TENANT_ID_MAX_LENGTH} characters",
        )
    if not TENANT_ID_PATTERN.match(tenant_id):
        raise InvalidTenantIdFormatError(
            raw,
            "must start with a letter and contain only letters, digits and underscores",
        )
    return tenant_id


def schema_name_for(tenant_id: str) -> str:
    """Derive the schema name for a tenant.

    The ``<tenant_id>_schema`` convention is durable: existing tenants'
    data lives under it.

    Args:
        tenant_id: Tenant id, validated or not.

    Returns:
        Schema name.

    Raises:
        InvalidTenantIdFormatError: If the id is not a valid slug.
    """
    return f"{normalize_tenant_id(tenant_id)}{SCHEMA_SUFFIX}"


def quote_schema(schema_name: str) -> str:
    """Quote a schema name for inclusion in DDL.

    Args:
        schema_name: Schema name derived by schema_name_for().

    Returns:
        The quoted identifier.

    Raises:
        InvalidTenantIdFormatError: If the name was not derived from a
            valid tenant id.
    """
    if not schema_name.endswith(SCHEMA_SUFFIX):
        raise InvalidTenantIdFormatError(schema_name, "not a tenant schema name")
    normalize_tenant_id(schema_name[: -len(SCHEMA_SUFFIX)])
    return _preparer.quote_identifier(schema_name)
