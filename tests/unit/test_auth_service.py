# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for AuthService.

The registry session, pool cache and provisioner are mocks; tenant-side
writes are covered by the integration tests.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from campus.core.tenancy import DuplicateEmailError, DuplicateTenantError, InvalidTenantIdFormatError
from campus.domains.auth.jwt import JWTManager
from campus.domains.auth.password import PasswordHasher
from campus.domains.auth.service import (
    AccountInactiveError,
    AuthService,
    InvalidCredentialsError,
    RegistrationError,
    TokenRefreshError,
)
from campus.infrastructure.database.models.registry import TenantRecord, User


def _result(value) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def jwt_manager(jwt_settings: MagicMock) -> JWTManager:
    return JWTManager(jwt_settings)


@pytest.fixture
def db() -> AsyncMock:
    session = AsyncMock()
    session.add = MagicMock()
    session.get = AsyncMock(return_value=None)
    session.execute = AsyncMock(return_value=_result(None))
    return session


@pytest.fixture
def provisioner() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def service(
    db: AsyncMock,
    jwt_manager: JWTManager,
    hasher: PasswordHasher,
    provisioner: AsyncMock,
) -> AuthService:
    return AuthService(db, jwt_manager, hasher, pool_cache=MagicMock(), provisioner=provisioner)


def _user(hasher: PasswordHasher, **overrides) -> SimpleNamespace:
    values = {
        "id": uuid4(),
        "email": "teacher@acme.edu",
        "password_hash": hasher.hash("secret123"),
        "name": "Ada Lovelace",
        "role": "teacher",
        "tenant_id": "acme",
        "is_active": True,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class TestRegisterTenant:
    """Tests for AuthService.register_tenant."""

    @pytest.mark.asyncio
    async def test_existing_tenant_is_rejected_before_provisioning(
        self,
        service: AuthService,
        db: AsyncMock,
        provisioner: AsyncMock,
    ) -> None:
        db.get.return_value = SimpleNamespace(tenant_id="acme")

        with pytest.raises(DuplicateTenantError):
            await service.register_tenant("acme", "Acme", "a@acme.edu", "secret123", "Admin")

        provisioner.provision_tenant.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_taken_email_is_rejected_before_provisioning(
        self,
        service: AuthService,
        db: AsyncMock,
        provisioner: AsyncMock,
    ) -> None:
        db.execute.return_value = _result(uuid4())

        with pytest.raises(DuplicateEmailError):
            await service.register_tenant("acme", "Acme", "A@Acme.edu", "secret123", "Admin")

        provisioner.provision_tenant.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_tenant_id(self, service: AuthService, db: AsyncMock) -> None:
        with pytest.raises(InvalidTenantIdFormatError):
            await service.register_tenant("a-b", "Acme", "a@acme.edu", "secret123", "Admin")

        db.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_creates_admin_and_issues_tokens(
        self,
        service: AuthService,
        db: AsyncMock,
        provisioner: AsyncMock,
        jwt_manager: JWTManager,
    ) -> None:
        """Test that provisioning is followed by the admin identity and tokens."""
        with patch.object(service, "_grant_tenant_role", AsyncMock(return_value=["system:admin"])):
            result = await service.register_tenant(
                "Acme", "Acme University", " Admin@Acme.edu ", "secret123", "Grace Hopper"
            )

        provisioner.provision_tenant.assert_awaited_once_with("acme", "Acme University")
        user = db.add.call_args_list[0].args[0]
        assert isinstance(user, User)
        assert user.email == "admin@acme.edu"
        assert user.role == "admin"
        assert user.tenant_id == "acme"

        claims = jwt_manager.decode_token(result.tokens.access_token)
        assert claims.tenant_id == "acme"
        assert claims.role == "admin"
        assert claims.permissions == ["system:admin"]


class TestRegisterUser:
    """Tests for AuthService.register_user."""

    @pytest.mark.asyncio
    async def test_admin_cannot_self_register(self, service: AuthService) -> None:
        with pytest.raises(RegistrationError, match="cannot self-register"):
            await service.register_user("x@acme.edu", "secret123", "X", "admin", "acme")

    @pytest.mark.asyncio
    async def test_unknown_institution(self, service: AuthService) -> None:
        with pytest.raises(RegistrationError, match="Invalid institution code"):
            await service.register_user("x@acme.edu", "secret123", "X", "student", "nowhere")

    @pytest.mark.asyncio
    async def test_malformed_institution_code(self, service: AuthService) -> None:
        with pytest.raises(RegistrationError, match="Invalid institution code"):
            await service.register_user("x@acme.edu", "secret123", "X", "student", "no way")

    @pytest.mark.asyncio
    async def test_inactive_institution(self, service: AuthService, db: AsyncMock) -> None:
        db.get.return_value = TenantRecord(
            tenant_id="acme",
            schema_name="acme_schema",
            institution_name="Acme",
            status="failed",
        )

        with pytest.raises(RegistrationError):
            await service.register_user("x@acme.edu", "secret123", "X", "student", "acme")


class TestInviteUser:
    """Tests for AuthService.invite_user."""

    @pytest.mark.asyncio
    async def test_creates_user_in_inviter_tenant(self, service: AuthService, db: AsyncMock) -> None:
        admin_id = uuid4()

        with patch.object(service, "_grant_tenant_role", AsyncMock(return_value=["courses:read"])) as grant:
            user = await service.invite_user(
                " Ada@Acme.edu ", "secret123", "Ada Lovelace", "teacher", "acme", str(admin_id)
            )

        assert isinstance(user, User)
        assert user.email == "ada@acme.edu"
        assert user.tenant_id == "acme"
        assert user.role == "teacher"
        grant.assert_awaited_once_with(user, assigned_by=admin_id)
        db.add.assert_called_once_with(user)

    @pytest.mark.asyncio
    async def test_does_not_issue_tokens(self, service: AuthService, db: AsyncMock) -> None:
        with patch.object(service, "_grant_tenant_role", AsyncMock(return_value=[])), \
                patch.object(service, "_issue_tokens", AsyncMock()) as issue:
            await service.invite_user("s@acme.edu", "secret123", "Sam", "student", "acme", str(uuid4()))

        issue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_admin_cannot_be_invited(self, service: AuthService, db: AsyncMock) -> None:
        with pytest.raises(RegistrationError, match="cannot be invited"):
            await service.invite_user("x@acme.edu", "secret123", "X", "admin", "acme", str(uuid4()))

        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_taken_email(self, service: AuthService, db: AsyncMock) -> None:
        db.execute.return_value = _result(uuid4())

        with pytest.raises(DuplicateEmailError):
            await service.invite_user("taken@acme.edu", "secret123", "X", "student", "acme", str(uuid4()))

        db.add.assert_not_called()


class TestLogin:
    """Tests for AuthService.login."""

    @pytest.mark.asyncio
    async def test_valid_credentials(
        self,
        service: AuthService,
        db: AsyncMock,
        hasher: PasswordHasher,
        jwt_manager: JWTManager,
    ) -> None:
        user = _user(hasher)
        db.execute.return_value = _result(user)

        with patch.object(service, "_get_permissions", AsyncMock(return_value=["courses:read"])):
            result = await service.login("Teacher@Acme.edu", "secret123")

        assert result.user is user
        assert result.permissions == ["courses:read"]
        claims = jwt_manager.decode_token(result.tokens.access_token)
        assert claims.sub == str(user.id)
        assert claims.tenant_id == "acme"

        stored = db.add.call_args.args[0]
        assert stored.token_hash == jwt_manager.hash_token(result.tokens.refresh_token)

    @pytest.mark.asyncio
    async def test_wrong_password(
        self,
        service: AuthService,
        db: AsyncMock,
        hasher: PasswordHasher,
    ) -> None:
        db.execute.return_value = _result(_user(hasher))

        with pytest.raises(InvalidCredentialsError):
            await service.login("teacher@acme.edu", "wrong")

    @pytest.mark.asyncio
    async def test_unknown_email(self, service: AuthService) -> None:
        with pytest.raises(InvalidCredentialsError):
            await service.login("nobody@acme.edu", "secret123")

    @pytest.mark.asyncio
    async def test_inactive_account(
        self,
        service: AuthService,
        db: AsyncMock,
        hasher: PasswordHasher,
    ) -> None:
        db.execute.return_value = _result(_user(hasher, is_active=False))

        with pytest.raises(AccountInactiveError):
            await service.login("teacher@acme.edu", "secret123")


class TestRefreshTokens:
    """Tests for AuthService.refresh_tokens."""

    @pytest.mark.asyncio
    async def test_rotates_refresh_token(
        self,
        service: AuthService,
        db: AsyncMock,
        hasher: PasswordHasher,
        jwt_manager: JWTManager,
    ) -> None:
        user = _user(hasher)
        tokens = jwt_manager.create_token_pair(user_id=user.id, tenant_id="acme")
        stored = SimpleNamespace(
            user_id=user.id,
            expires_at=datetime.now(timezone.utc) + timedelta(days=1),
        )
        db.execute.return_value = _result(stored)
        db.get.return_value = user

        with patch.object(service, "_get_permissions", AsyncMock(return_value=[])):
            result = await service.refresh_tokens(tokens.refresh_token)

        db.delete.assert_awaited_once_with(stored)
        assert result.tokens.refresh_token != tokens.refresh_token

    @pytest.mark.asyncio
    async def test_access_token_is_rejected(
        self,
        service: AuthService,
        jwt_manager: JWTManager,
    ) -> None:
        tokens = jwt_manager.create_token_pair(user_id=uuid4(), tenant_id="acme")

        with pytest.raises(TokenRefreshError):
            await service.refresh_tokens(tokens.access_token)

    @pytest.mark.asyncio
    async def test_revoked_token_is_rejected(
        self,
        service: AuthService,
        jwt_manager: JWTManager,
    ) -> None:
        tokens = jwt_manager.create_token_pair(user_id=uuid4(), tenant_id="acme")

        with pytest.raises(TokenRefreshError, match="not found"):
            await service.refresh_tokens(tokens.refresh_token)

    @pytest.mark.asyncio
    async def test_expired_stored_token_is_kept_and_rejected(
        self,
        service: AuthService,
        db: AsyncMock,
        jwt_manager: JWTManager,
    ) -> None:
        user_id = uuid4()
        tokens = jwt_manager.create_token_pair(user_id=user_id, tenant_id="acme")
        db.execute.return_value = _result(
            SimpleNamespace(user_id=user_id, expires_at=datetime.now(timezone.utc) - timedelta(seconds=1))
        )

        with pytest.raises(TokenRefreshError, match="expired"):
            await service.refresh_tokens(tokens.refresh_token)

        db.delete.assert_not_awaited()


class TestLogout:
    """Tests for AuthService.logout."""

    @pytest.mark.asyncio
    async def test_without_token_revokes_nothing(self, service: AuthService, db: AsyncMock) -> None:
        assert await service.logout(uuid4()) == 0

        db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_revoke_all(self, service: AuthService, db: AsyncMock) -> None:
        db.execute.return_value = MagicMock(rowcount=3)

        assert await service.logout(uuid4(), revoke_all=True) == 3
