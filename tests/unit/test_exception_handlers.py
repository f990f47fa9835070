# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for the API exception handlers."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError, OperationalError

from campus.api.app import register_exception_handlers
from campus.core.tenancy import (
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
from campus.infrastructure.database.connection import DatabaseError


class PgError(Exception):
    """Stand-in for a driver error carrying a SQLSTATE."""

    def __init__(self, sqlstate: str) -> None:
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


def _client(exc: Exception) -> TestClient:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/boom")
    async def boom() -> None:
        raise exc

    return TestClient(app, raise_server_exceptions=False)


class TestTenancyErrorHandler:
    """Tests for tenancy error mapping."""

    @pytest.mark.parametrize(
        "exc, status_code, code",
        [
            (DuplicateTenantError("acme"), 409, "duplicate_tenant"),
            (DuplicateEmailError("a@acme.edu"), 409, "duplicate_email"),
            (InvalidTenantIdFormatError("a-b", "bad"), 400, "invalid_tenant_id"),
            (UnknownTenantError("acme"), 404, "unknown_tenant"),
            (TenantUnavailableError("acme", "failed"), 503, "tenant_unavailable"),
            (TenantPoolError("acme", "refused"), 503, "tenant_pool_error"),
            (MigrationError("acme", "001_initial_schema", "boom"), 500, "migration_failed"),
            (TenancyError("generic"), 500, "tenancy_error"),
        ],
    )
    def test_status_and_code(self, exc: TenancyError, status_code: int, code: str) -> None:
        response = _client(exc).get("/boom")

        assert response.status_code == status_code
        assert response.json()["code"] == code

    def test_client_error_detail_is_exposed(self) -> None:
        response = _client(DuplicateTenantError("acme")).get("/boom")

        assert response.json()["detail"] == "Tenant already exists: acme"

    def test_provisioning_detail_is_generic(self) -> None:
        """Test that internal failure reasons are not sent to the client."""
        exc = ProvisioningError("acme", "create_tables", "permission denied for database")

        response = _client(exc).get("/boom")

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to provision institution"
        assert "permission denied" not in response.text


class TestDatabaseErrorHandlers:
    """Tests for database error mapping."""

    @pytest.mark.parametrize(
        "sqlstate, status_code",
        [("23505", 409), ("23503", 400), ("23502", 400), ("23514", 500)],
    )
    def test_integrity_error_by_sqlstate(self, sqlstate: str, status_code: int) -> None:
        exc = IntegrityError("INSERT", {}, PgError(sqlstate))

        response = _client(exc).get("/boom")

        assert response.status_code == status_code
        assert response.json()["code"] == "integrity_error"

    def test_database_error_is_unavailable(self) -> None:
        response = _client(DatabaseError("registry not initialized")).get("/boom")

        assert response.status_code == 503
        assert response.json()["code"] == "database_error"

    def test_invalidated_connection_is_unavailable(self) -> None:
        exc = OperationalError("SELECT 1", {}, Exception("server closed"), connection_invalidated=True)

        response = _client(exc).get("/boom")

        assert response.status_code == 503

    def test_other_sqlalchemy_error_is_internal(self) -> None:
        exc = OperationalError("SELECT 1", {}, Exception("syntax"))

        response = _client(exc).get("/boom")

        assert response.status_code == 500
        assert response.json()["detail"] == "Internal database error"
