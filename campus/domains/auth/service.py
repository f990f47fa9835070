# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Authentication service for global identities.

This module provides the main AuthService that orchestrates:
- Institution registration (provisioning plus the first admin)
- User registration into an existing institution
- Admin-invited accounts
- Password login
- Token refresh with rotation
- Logout

Identities live in the registry; their tenant-local role grants and
profiles live in the tenant schema and are written through the tenant
pool cache.

Example:
    >>> auth_service = AuthService(db, jwt_manager, hasher, pool_cache)
    >>> result = await auth_service.login("admin@acme.edu", "secret")
    >>> result.tokens.access_token
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campus.core.tenancy import (
    DuplicateEmailError,
    DuplicateTenantError,
    InvalidTenantIdFormatError,
    normalize_tenant_id,
)
from campus.domains.auth.jwt import InvalidTokenError, JWTManager, TokenExpiredError, TokenPair
from campus.domains.auth.password import PasswordHasher
from campus.domains.tenancy.provisioner import TenantProvisioner
from campus.infrastructure.database.models.registry import (
    RefreshToken,
    TenantRecord,
    TenantStatus,
    User,
    UserRole,
)
from campus.infrastructure.database.models.tenant import Role, RoleGrant, Student, Teacher
from campus.infrastructure.database.pool_cache import TenantPoolCache
from campus.infrastructure.database.seeds.tenant import ROLE_FOR_IDENTITY

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Base exception for authentication errors."""

    pass


class InvalidCredentialsError(AuthenticationError):
    """Raised when email or password is wrong."""

    pass


class AccountInactiveError(AuthenticationError):
    """Raised when account is not active."""

    pass


class TokenRefreshError(AuthenticationError):
    """Raised when token refresh fails."""

    pass


class RegistrationError(Exception):
    """Raised when a user cannot join the requested institution."""

    pass


@dataclass(frozen=True)
class AuthResult:
    """Authenticated identity and its freshly issued tokens."""

    user: User
    tokens: TokenPair
    permissions: list[str]


class AuthService:
    """Authentication and registration service.

    Attributes:
        _db: Registry database session.
        _jwt_manager: JWT token manager.
        _hasher: Password hasher.
        _pool_cache: Tenant pool cache used for tenant-local writes.
        _provisioner: Tenant schema provisioner.
    """

    def __init__(
        self,
        db: AsyncSession,
        jwt_manager: JWTManager,
        password_hasher: PasswordHasher,
        pool_cache: TenantPoolCache,
        provisioner: TenantProvisioner | None = None,
    ) -> None:
        """Initialize the authentication service.

        Args:
            db: Registry database session.
            jwt_manager: JWT token manager.
            password_hasher: Password hasher.
            pool_cache: Tenant pool cache.
            provisioner: Tenant provisioner. Defaults to one bound to the
                registry engine.
        """
        self._db = db
        self._jwt_manager = jwt_manager
        self._hasher = password_hasher
        self._pool_cache = pool_cache
        self._provisioner = provisioner or TenantProvisioner()

    # =========================================================================
    # Registration
    # =========================================================================

    async def register_tenant(
        self,
        tenant_id: str,
        institution_name: str,
        admin_email: str,
        admin_password: str,
        admin_name: str,
    ) -> AuthResult:
        """Register an institution and its first administrator.

        Args:
            tenant_id: Requested tenant id.
            institution_name: Institution display name.
            admin_email: Administrator email.
            admin_password: Administrator password.
            admin_name: Administrator display name.

        Returns:
            AuthResult for the new administrator.

        Raises:
            InvalidTenantIdFormatError: If the tenant id is malformed.
            DuplicateTenantError: If the tenant id is taken.
            DuplicateEmailError: If the email is taken.
            ProvisioningError: If the schema could not be built.
        """
        tenant_id = normalize_tenant_id(tenant_id)
        admin_email = admin_email.strip().lower()

        if await self._db.get(TenantRecord, tenant_id) is not None:
            raise DuplicateTenantError(tenant_id)
        await self._ensure_email_available(admin_email, tenant_id)

        password_hash = self._hasher.hash(admin_password)

        await self._provisioner.provision_tenant(tenant_id, institution_name)

        user = User(
            email=admin_email,
            password_hash=password_hash,
            name=admin_name,
            role=UserRole.ADMIN.value,
            tenant_id=tenant_id,
        )
        await self._add_identity(user)

        permissions = await self._grant_tenant_role(user)
        tokens = await self._issue_tokens(user, permissions)

        logger.info("Registered tenant %s with admin %s", tenant_id, user.id)
        return AuthResult(user=user, tokens=tokens, permissions=permissions)

    async def register_user(
        self,
        email: str,
        password: str,
        name: str,
        role: str,
        tenant_id: str,
    ) -> AuthResult:
        """Register a teacher or student into an existing institution.

        Args:
            email: User email.
            password: User password.
            name: Display name.
            role: ``teacher`` or ``student``.
            tenant_id: Institution code the user joins.

        Returns:
            AuthResult for the new user.

        Raises:
            RegistrationError: If the institution does not exist or is not
                active, or the role cannot self-register.
            DuplicateEmailError: If the email is taken.
        """
        if role not in (UserRole.TEACHER.value, UserRole.STUDENT.value):
            raise RegistrationError(f"Role cannot self-register: {role}")

        try:
            tenant_id = normalize_tenant_id(tenant_id)
        except InvalidTenantIdFormatError as e:
            raise RegistrationError("Invalid institution code") from e

        record = await self._db.get(TenantRecord, tenant_id)
        if record is None or record.status != TenantStatus.ACTIVE.value:
            raise RegistrationError("Invalid institution code")

        email = email.strip().lower()
        await self._ensure_email_available(email, tenant_id)

        user = User(
            email=email,
            password_hash=self._hasher.hash(password),
            name=name,
            role=role,
            tenant_id=tenant_id,
        )
        await self._add_identity(user)

        permissions = await self._grant_tenant_role(user)
        tokens = await self._issue_tokens(user, permissions)

        logger.info("Registered %s %s in tenant %s", role, user.id, tenant_id)
        return AuthResult(user=user, tokens=tokens, permissions=permissions)

    async def invite_user(
        self,
        email: str,
        password: str,
        name: str,
        role: str,
        tenant_id: str,
        invited_by: str | UUID,
    ) -> User:
        """Create a teacher or student account on behalf of an administrator.

        The account joins the administrator's own institution. No tokens
        are issued; the invited user logs in with the given password.

        Args:
            email: User email.
            password: Initial password.
            name: Display name.
            role: ``teacher`` or ``student``.
            tenant_id: Tenant of the inviting administrator.
            invited_by: Id of the inviting administrator, recorded on the
                role grant.

        Returns:
            The created user.

        Raises:
            RegistrationError: If the role cannot be invited.
            DuplicateEmailError: If the email is taken.
        """
        if role not in (UserRole.TEACHER.value, UserRole.STUDENT.value):
            raise RegistrationError(f"Role cannot be invited: {role}")

        email = email.strip().lower()
        await self._ensure_email_available(email, tenant_id)

        user = User(
            email=email,
            password_hash=self._hasher.hash(password),
            name=name,
            role=role,
            tenant_id=tenant_id,
        )
        await self._add_identity(user)
        await self._grant_tenant_role(user, assigned_by=UUID(str(invited_by)))

        logger.info("User %s invited %s %s into tenant %s", invited_by, role, user.id, tenant_id)
        return user

    # =========================================================================
    # Sessions
    # =========================================================================

    async def login(self, email: str, password: str) -> AuthResult:
        """Authenticate with email and password.

        Raises:
            InvalidCredentialsError: If the email or password is wrong.
            AccountInactiveError: If the account was deactivated.
        """
        result = await self._db.execute(select(User).where(User.email == email.strip().lower()))
        user = result.scalar_one_or_none()

        if user is None or not self._hasher.verify(password, user.password_hash):
            raise InvalidCredentialsError("Invalid email or password")
        if not user.is_active:
            raise AccountInactiveError("Account is deactivated")

        permissions = await self._get_permissions(user)
        tokens = await self._issue_tokens(user, permissions)

        logger.info("User logged in: %s (tenant %s)", user.id, user.tenant_id)
        return AuthResult(user=user, tokens=tokens, permissions=permissions)

    async def refresh_tokens(self, refresh_token: str) -> AuthResult:
        """Exchange a refresh token for a new token pair.

        The presented refresh token is consumed (rotation).

        Raises:
            TokenRefreshError: If the token is invalid, expired, unknown or
                its user is inactive.
        """
        try:
            payload = self._jwt_manager.decode_token(refresh_token, expected_type="refresh")
        except (TokenExpiredError, InvalidTokenError) as e:
            raise TokenRefreshError(f"Invalid refresh token: {str(e)}") from e

        token_hash = self._jwt_manager.hash_token(refresh_token)
        result = await self._db.execute(
            select(RefreshToken).where(RefreshToken.token_hash == token_hash)
        )
        stored = result.scalar_one_or_none()

        if stored is None or str(stored.user_id) != payload.sub:
            raise TokenRefreshError("Refresh token not found")

        if stored.expires_at <= datetime.now(timezone.utc):
            raise TokenRefreshError("Refresh token has expired")

        await self._db.delete(stored)

        user = await self._db.get(User, stored.user_id)
        if user is None or not user.is_active:
            raise TokenRefreshError("User not found or inactive")

        permissions = await self._get_permissions(user)
        tokens = await self._issue_tokens(user, permissions)

        logger.info("Tokens refreshed for user: %s", user.id)
        return AuthResult(user=user, tokens=tokens, permissions=permissions)

    async def logout(
        self,
        user_id: str | UUID,
        refresh_token: str | None = None,
        revoke_all: bool = False,
    ) -> int:
        """Revoke refresh tokens of a user.

        Args:
            user_id: Authenticated user.
            refresh_token: Token to revoke.
            revoke_all: Revoke every refresh token of the user.

        Returns:
            Number of revoked tokens.
        """
        stmt = delete(RefreshToken).where(RefreshToken.user_id == UUID(str(user_id)))
        if not revoke_all:
            if not refresh_token:
                return 0
            stmt = stmt.where(
                RefreshToken.token_hash == self._jwt_manager.hash_token(refresh_token)
            )

        result = await self._db.execute(stmt)
        logger.info("Revoked %d refresh tokens for user: %s", result.rowcount, user_id)
        return result.rowcount

    # =========================================================================
    # Private Helper Methods
    # =========================================================================

    async def _ensure_email_available(self, email: str, tenant_id: str | None = None) -> None:
        result = await self._db.execute(select(User.id).where(User.email == email))
        if result.scalar_one_or_none() is not None:
            raise DuplicateEmailError(email, tenant_id)

    async def _add_identity(self, user: User) -> None:
        """Insert a user, mapping a concurrent email claim to DuplicateEmailError."""
        self._db.add(user)
        try:
            await self._db.flush()
        except IntegrityError as e:
            await self._db.rollback()
            raise DuplicateEmailError(user.email, user.tenant_id) from e

    async def _grant_tenant_role(self, user: User, assigned_by: UUID | None = None) -> list[str]:
        """Create the tenant-local role grant and profile of a new identity.

        Returns:
            Permission codes of the granted role.
        """
        pool = await self._pool_cache.get_pool_for(user.tenant_id)
        role_name = ROLE_FOR_IDENTITY[user.role]
        first_name, _, last_name = user.name.partition(" ")

        async with pool.session() as session:
            result = await session.execute(select(Role).where(Role.name == role_name))
            role = result.scalar_one()

            session.add(RoleGrant(user_id=user.id, role_id=role.id, assigned_by=assigned_by))

            if user.role == UserRole.TEACHER.value:
                session.add(
                    Teacher(
                        user_id=user.id,
                        first_name=first_name,
                        last_name=last_name,
                        email=user.email,
                    )
                )
            elif user.role == UserRole.STUDENT.value:
                session.add(
                    Student(
                        user_id=user.id,
                        first_name=first_name,
                        last_name=last_name,
                        email=user.email,
                    )
                )

            return list(role.permissions or [])

    async def _get_permissions(self, user: User) -> list[str]:
        """Collect permission codes from the user's active role grants."""
        pool = await self._pool_cache.get_pool_for(user.tenant_id)
        now = datetime.now(timezone.utc)

        async with pool.session() as session:
            result = await session.execute(
                select(Role.permissions)
                .join(RoleGrant, RoleGrant.role_id == Role.id)
                .where(
                    RoleGrant.user_id == user.id,
                    RoleGrant.is_active.is_(True),
                    Role.is_active.is_(True),
                    or_(RoleGrant.expires_at.is_(None), RoleGrant.expires_at > now),
                )
            )
            rows = result.scalars().all()

        permissions: list[str] = []
        for role_permissions in rows:
            for code in role_permissions or []:
                if code not in permissions:
                    permissions.append(code)
        return permissions

    async def _issue_tokens(self, user: User, permissions: list[str]) -> TokenPair:
        tokens = self._jwt_manager.create_token_pair(
            user_id=user.id,
            tenant_id=user.tenant_id,
            email=user.email,
            role=user.role,
            permissions=permissions,
        )
        self._db.add(
            RefreshToken(
                user_id=user.id,
                token_hash=self._jwt_manager.hash_token(tokens.refresh_token),
                expires_at=datetime.now(timezone.utc) + self._jwt_manager.refresh_token_lifetime,
            )
        )
        await self._db.flush()
        return tokens
