# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Authentication request and response models.

Request bodies use camelCase field names on the wire.
"""

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model accepting camelCase keys and emitting them."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterTenantRequest(CamelModel):
    """Institution registration with its first administrator."""

    tenant_id: str = Field(min_length=3, max_length=50)
    institution_name: str = Field(min_length=3, max_length=200)
    admin_email: EmailStr
    admin_password: str = Field(min_length=6)
    admin_name: str = Field(min_length=2, max_length=100)


class RegisterUserRequest(CamelModel):
    """Teacher or student joining an existing institution."""

    email: EmailStr
    password: str = Field(min_length=6)
    name: str = Field(min_length=2, max_length=100)
    role: Literal["teacher", "student"]
    tenant_id: str = Field(min_length=3, max_length=50)


class InviteUserRequest(CamelModel):
    """Teacher or student account created by an institution admin."""

    email: EmailStr
    password: str = Field(min_length=6)
    name: str = Field(min_length=2, max_length=100)
    role: Literal["teacher", "student"]


class LoginRequest(CamelModel):
    """Email and password login."""

    email: EmailStr
    password: str = Field(min_length=1)


class RefreshTokenRequest(CamelModel):
    """Refresh token exchange."""

    refresh_token: str


class LogoutRequest(CamelModel):
    """Logout, revoking one refresh token or all of them."""

    refresh_token: str | None = None
    revoke_all: bool = False


class UserResponse(CamelModel):
    """Public view of a global identity."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id: UUID
    email: str
    name: str
    role: str
    tenant_id: str
    is_active: bool


class TokenResponse(CamelModel):
    """Issued token pair."""

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int


class AuthResponse(CamelModel):
    """Authenticated user with its tokens."""

    user: UserResponse
    tokens: TokenResponse
    permissions: list[str] = []


class CurrentUserResponse(CamelModel):
    """Identity claims of the caller's access token."""

    id: UUID
    email: str
    role: str
    tenant_id: str
    permissions: list[str] = []
