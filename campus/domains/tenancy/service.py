# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant administration service.

Reads and updates the registry record of the caller's tenant, lists its
identities, collects usage counts from the tenant schema and manages the
tenant-local role grants of its users.

Example:
    >>> service = TenantService(registry_db)
    >>> record = await service.get_info("acme")
    >>> stats = await service.get_stats(tenant_db)
"""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from campus.core.tenancy import UnknownTenantError
from campus.infrastructure.database.models.registry import RefreshToken, TenantRecord, User
from campus.infrastructure.database.models.tenant import (
    Course,
    Enrollment,
    Role,
    RoleGrant,
    Student,
    Teacher,
)

logger = logging.getLogger(__name__)


class UserNotFoundError(Exception):
    """Raised when a user does not exist within the caller's tenant."""

    def __init__(self, user_id: uuid.UUID | str) -> None:
        super().__init__(f"User not found: {user_id}")
        self.user_id = str(user_id)


class RoleNotFoundError(Exception):
    """Raised when a role does not exist or is inactive in the tenant schema."""

    def __init__(self, role_id: uuid.UUID | str) -> None:
        super().__init__(f"Role not found: {role_id}")
        self.role_id = str(role_id)


@dataclass(frozen=True)
class TenantStats:
    """Usage counts of one tenant schema."""

    students: int
    teachers: int
    courses: int
    active_enrollments: int


@dataclass(frozen=True)
class RoleSummary:
    """A tenant-local role with the number of users holding it."""

    id: uuid.UUID
    name: str
    description: str | None
    permissions: list[str]
    user_count: int


class TenantService:
    """Service for tenant administration.

    Attributes:
        _db: Registry database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        """Initialize the tenant service.

        Args:
            db: Registry database session.
        """
        self._db = db

    async def get_info(self, tenant_id: str) -> TenantRecord:
        """Get the registry record of a tenant.

        Raises:
            UnknownTenantError: If the tenant is not registered.
        """
        record = await self._db.get(TenantRecord, tenant_id)
        if record is None:
            raise UnknownTenantError(tenant_id)
        return record

    async def update_institution_name(self, tenant_id: str, institution_name: str) -> TenantRecord:
        """Change the display name of a tenant.

        The display name is the only mutable field of a registry record.

        Args:
            tenant_id: Tenant to update.
            institution_name: New display name.

        Returns:
            The updated record.

        Raises:
            UnknownTenantError: If the tenant is not registered.
        """
        record = await self.get_info(tenant_id)
        record.institution_name = institution_name
        await self._db.flush()
        await self._db.refresh(record)

        logger.info("Updated institution name for tenant %s", tenant_id)
        return record

    async def get_stats(self, tenant_db: AsyncSession) -> TenantStats:
        """Count active students, teachers, courses and enrollments.

        Args:
            tenant_db: Session scoped to the tenant schema.

        Returns:
            TenantStats for the schema the session is bound to.
        """
        students = await tenant_db.scalar(
            select(func.count(Student.id)).where(Student.is_active.is_(True))
        )
        teachers = await tenant_db.scalar(
            select(func.count(Teacher.id)).where(Teacher.is_active.is_(True))
        )
        courses = await tenant_db.scalar(
            select(func.count(Course.id)).where(Course.is_active.is_(True))
        )
        enrollments = await tenant_db.scalar(
            select(func.count(Enrollment.id)).where(Enrollment.status == "active")
        )

        return TenantStats(
            students=students or 0,
            teachers=teachers or 0,
            courses=courses or 0,
            active_enrollments=enrollments or 0,
        )

    async def list_users(
        self,
        tenant_id: str,
        role: str | None = None,
        include_inactive: bool = True,
    ) -> list[User]:
        """List the identities belonging to a tenant.

        Args:
            tenant_id: Tenant whose users are listed.
            role: Optional identity role filter.
            include_inactive: Whether deactivated users are included.

        Returns:
            Users ordered by creation time.
        """
        stmt = select(User).where(User.tenant_id == tenant_id)
        if role:
            stmt = stmt.where(User.role == role)
        if not include_inactive:
            stmt = stmt.where(User.is_active.is_(True))

        result = await self._db.execute(stmt.order_by(User.created_at))
        return list(result.scalars().all())

    async def set_user_active(
        self,
        tenant_id: str,
        user_id: uuid.UUID,
        active: bool,
    ) -> User:
        """Activate or deactivate a user of the tenant.

        Deactivation also revokes the user's refresh tokens.

        Args:
            tenant_id: Tenant of the acting administrator.
            user_id: User to update.
            active: New activation state.

        Returns:
            The updated user.

        Raises:
            UserNotFoundError: If the user does not exist in this tenant.
        """
        user = await self.get_user(tenant_id, user_id)

        user.is_active = active
        if not active:
            await self._db.execute(delete(RefreshToken).where(RefreshToken.user_id == user.id))
        await self._db.flush()
        await self._db.refresh(user)

        logger.info(
            "User %s %s in tenant %s",
            user_id,
            "activated" if active else "deactivated",
            tenant_id,
        )
        return user

    async def get_user(self, tenant_id: str, user_id: uuid.UUID) -> User:
        """Get a user of the tenant.

        Raises:
            UserNotFoundError: If the user does not exist in this tenant.
        """
        result = await self._db.execute(
            select(User).where(User.id == user_id, User.tenant_id == tenant_id)
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    # =========================================================================
    # Role grants
    # =========================================================================

    async def list_roles(self, tenant_db: AsyncSession) -> list[RoleSummary]:
        """List active roles of the tenant schema with their holder counts."""
        holders = func.count(RoleGrant.id)
        result = await tenant_db.execute(
            select(Role, holders)
            .outerjoin(
                RoleGrant,
                and_(RoleGrant.role_id == Role.id, RoleGrant.is_active.is_(True)),
            )
            .where(Role.is_active.is_(True))
            .group_by(Role.id)
            .order_by(Role.name)
        )
        return [
            RoleSummary(
                id=role.id,
                name=role.name,
                description=role.description,
                permissions=list(role.permissions or []),
                user_count=count,
            )
            for role, count in result.all()
        ]

    async def grant_role(
        self,
        tenant_db: AsyncSession,
        tenant_id: str,
        user_id: uuid.UUID,
        role_id: uuid.UUID,
        assigned_by: uuid.UUID | str,
    ) -> Role:
        """Grant a tenant-local role to a user of the tenant.

        Granting a role the user already holds, or held before, leaves a
        single active grant.

        Args:
            tenant_db: Session scoped to the tenant schema.
            tenant_id: Tenant of the acting administrator.
            user_id: User receiving the role.
            role_id: Role to grant.
            assigned_by: Acting administrator.

        Returns:
            The granted role.

        Raises:
            UserNotFoundError: If the user does not exist in this tenant.
            RoleNotFoundError: If the role does not exist or is inactive.
        """
        await self.get_user(tenant_id, user_id)

        role = await tenant_db.scalar(
            select(Role).where(Role.id == role_id, Role.is_active.is_(True))
        )
        if role is None:
            raise RoleNotFoundError(role_id)

        assigned_by = uuid.UUID(str(assigned_by))
        stmt = insert(RoleGrant).values(
            user_id=user_id,
            role_id=role_id,
            assigned_by=assigned_by,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[RoleGrant.user_id, RoleGrant.role_id],
            set_={
                "is_active": True,
                "assigned_by": assigned_by,
                "assigned_at": func.now(),
                "expires_at": None,
            },
        )
        await tenant_db.execute(stmt)

        logger.info("Granted role %s to user %s in tenant %s", role.name, user_id, tenant_id)
        return role

    async def revoke_role(
        self,
        tenant_db: AsyncSession,
        tenant_id: str,
        user_id: uuid.UUID,
        role_id: uuid.UUID,
    ) -> bool:
        """Deactivate a user's grant of a tenant-local role.

        Returns:
            True if an active grant was revoked.

        Raises:
            UserNotFoundError: If the user does not exist in this tenant.
        """
        await self.get_user(tenant_id, user_id)

        result = await tenant_db.execute(
            update(RoleGrant)
            .where(
                RoleGrant.user_id == user_id,
                RoleGrant.role_id == role_id,
                RoleGrant.is_active.is_(True),
            )
            .values(is_active=False)
        )
        revoked = result.rowcount > 0
        if revoked:
            logger.info("Revoked role %s from user %s in tenant %s", role_id, user_id, tenant_id)
        return revoked
