# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Declarative bases and shared mixins for ORM models.

Two metadata collections are kept apart:
- RegistryBase: tables of the shared registry (public schema).
- TenantBase: tenant-local tables. They carry no schema name; every
  tenant engine resolves them through its connection ``search_path``.
"""

from datetime import datetime

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class RegistryBase(DeclarativeBase):
    """Base class for registry database models."""


class TenantBase(DeclarativeBase):
    """Base class for tenant schema models."""


class TimestampMixin:
    """Adds created_at and updated_at columns maintained by the database."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
