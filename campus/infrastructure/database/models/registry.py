# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Registry database models.

The registry is the single shared store outside any tenant schema. It
holds the tenant directory and the global user identities.
"""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from campus.infrastructure.database.models.base import RegistryBase, TimestampMixin


class TenantStatus(StrEnum):
    """Lifecycle states of a tenant record."""

    PROVISIONING = "provisioning"
    ACTIVE = "active"
    FAILED = "failed"


class UserRole(StrEnum):
    """Global identity roles."""

    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


class TenantRecord(TimestampMixin, RegistryBase):
    """One row per institution in the tenant directory.

    Attributes:
        tenant_id: Stable slug chosen at registration.
        schema_name: Schema holding the tenant tables, ``<tenant_id>_schema``.
        institution_name: Display name, the only mutable attribute.
        status: provisioning, active or failed.
        provisioned_at: When the schema became usable.
    """

    __tablename__ = "tenant_mapping"
    __table_args__ = (
        CheckConstraint(
            "status IN ('provisioning', 'active', 'failed')",
            name="ck_tenant_mapping_status",
        ),
    )

    tenant_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    schema_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    institution_name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TenantStatus.PROVISIONING.value,
        server_default=TenantStatus.PROVISIONING.value,
    )
    provisioned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    users: Mapped[list["User"]] = relationship(back_populates="tenant")

    @property
    def is_active(self) -> bool:
        """Check if the tenant schema is ready for traffic."""
        return self.status == TenantStatus.ACTIVE.value


class User(TimestampMixin, RegistryBase):
    """Global user identity.

    Email is unique across all tenants; a user belongs to exactly one.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "role IN ('admin', 'teacher', 'student')",
            name="ck_users_role",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    tenant_id: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("tenant_mapping.tenant_id"),
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )

    tenant: Mapped[TenantRecord] = relationship(back_populates="users")


class RefreshToken(RegistryBase):
    """Issued refresh token, stored as a SHA-256 hash."""

    __tablename__ = "refresh_tokens"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
