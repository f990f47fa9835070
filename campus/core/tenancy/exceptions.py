# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Exceptions raised by the multi-tenant core.

This module defines the exception hierarchy shared by the provisioner,
the migrator, the pool cache and the request resolver:

- TenancyError: Base exception carrying the tenant id.
- Client errors (the caller must correct its input):
  InvalidTenantIdFormatError, DuplicateTenantError, DuplicateEmailError,
  UnknownTenantError.
- Backend errors (retry or alert): TenantUnavailableError,
  ProvisioningError, TenantPoolError, MigrationError.

The ``is_client_error`` flag lets the API layer choose between 4xx and
5xx responses without a type switch.
"""


class TenancyError(Exception):
    """Base exception for all tenancy errors.

    Attributes:
        message: Human-readable error description.
        tenant_id: Tenant the error relates to, when known.
        code: Stable machine-readable error code.
        is_client_error: True if the caller can fix the request.
    """

    code = "tenancy_error"
    is_client_error = False

    def __init__(self, message: str, tenant_id: str | None = None) -> None:
        """Initialize the tenancy error.

        Args:
            message: Human-readable error description.
            tenant_id: Tenant the error relates to.
        """
        super().__init__(message)
        self.message = message
        self.tenant_id = tenant_id


class InvalidTenantIdFormatError(TenancyError):
    """Raised when a tenant id is not a valid slug."""

    code = "invalid_tenant_id"
    is_client_error = True

    def __init__(self, tenant_id: str, reason: str) -> None:
        super().__init__(f"Invalid tenant id {tenant_id!r}: {reason}", tenant_id)
        self.reason = reason


class DuplicateTenantError(TenancyError):
    """Raised when a tenant id is already registered."""

    code = "duplicate_tenant"
    is_client_error = True

    def __init__(self, tenant_id: str) -> None:
        super().__init__(f"Tenant already exists: {tenant_id}", tenant_id)


class DuplicateEmailError(TenancyError):
    """Raised when an email already belongs to some identity.

    Attributes:
        email: The colliding email address.
    """

    code = "duplicate_email"
    is_client_error = True

    def __init__(self, email: str, tenant_id: str | None = None) -> None:
        super().__init__("Email already registered", tenant_id)
        self.email = email


class UnknownTenantError(TenancyError):
    """Raised when a tenant id does not resolve to a registry record."""

    code = "unknown_tenant"
    is_client_error = True

    def __init__(self, tenant_id: str) -> None:
        super().__init__(f"Tenant not found: {tenant_id}", tenant_id)


class TenantUnavailableError(TenancyError):
    """Raised when a tenant exists but its schema is not ready.

    Attributes:
        status: Registry status of the tenant.
    """

    code = "tenant_unavailable"

    def __init__(self, tenant_id: str, status: str) -> None:
        super().__init__(f"Tenant {tenant_id} is not available (status: {status})", tenant_id)
        self.status = status


class ProvisioningError(TenancyError):
    """Raised when provisioning fails after the registry row was written.

    Attributes:
        step: Provisioning step that failed.
        reason: Underlying failure description.
    """

    code = "provisioning_failed"

    def __init__(self, tenant_id: str, step: str, reason: str) -> None:
        super().__init__(
            f"Failed to provision tenant {tenant_id} at step {step}: {reason}",
            tenant_id,
        )
        self.step = step
        self.reason = reason


class TenantPoolError(TenancyError):
    """Raised when a tenant pool cannot be built or the registry is unreachable.

    Attributes:
        reason: Underlying failure description.
    """

    code = "tenant_pool_error"

    def __init__(self, tenant_id: str, reason: str) -> None:
        super().__init__(f"Cannot open pool for tenant {tenant_id}: {reason}", tenant_id)
        self.reason = reason


class MigrationError(TenancyError):
    """Raised when a revision fails for one tenant schema.

    Attributes:
        revision: Revision being applied.
        step: Step inside the revision, when known.
        reason: Underlying failure description.
    """

    code = "migration_failed"

    def __init__(
        self,
        tenant_id: str,
        revision: str,
        reason: str,
        step: str | None = None,
    ) -> None:
        where = f"{revision}:{step}" if step else revision
        super().__init__(f"Migration {where} failed for tenant {tenant_id}: {reason}", tenant_id)
        self.revision = revision
        self.step = step
        self.reason = reason
