# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""JWT token management utilities.

This module provides JWT token creation and validation using python-jose.
Supports access tokens and refresh tokens with configurable expiration.
The ``tenant_id`` claim is what the tenant resolver uses to pick the
caller's schema.

Example:
    >>> from campus.core.config import get_settings
    >>> jwt_manager = JWTManager(get_settings().jwt)
    >>> tokens = jwt_manager.create_token_pair(user_id="...", tenant_id="acme", ...)
    >>> claims = jwt_manager.decode_token(tokens.access_token)
"""

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Literal
from uuid import UUID

from jose import ExpiredSignatureError, JWTError as JoseJWTError, jwt
from pydantic import BaseModel, ValidationError

from campus.core.config.settings import JWTSettings

logger = logging.getLogger(__name__)


class TokenPayload(BaseModel):
    """JWT token payload structure.

    Attributes:
        sub: Subject (global user ID).
        type: Token type (access or refresh).
        email: User email.
        role: Identity role (admin, teacher, student).
        tenant_id: Tenant the identity belongs to.
        permissions: Permission codes of the tenant-local role.
        exp: Expiration timestamp.
        iat: Issued at timestamp.
        jti: JWT ID for token tracking.
    """

    sub: str
    type: Literal["access", "refresh"]
    email: str | None = None
    role: str | None = None
    tenant_id: str
    permissions: list[str] = []
    exp: int
    iat: int
    jti: str


class TokenPair(BaseModel):
    """Access and refresh token pair.

    Attributes:
        access_token: JWT access token string.
        refresh_token: JWT refresh token string.
        token_type: Token type (always "Bearer").
        expires_in: Access token expiration in seconds.
        refresh_expires_in: Refresh token expiration in seconds.
    """

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    refresh_expires_in: int


class JWTError(Exception):
    """Base exception for JWT operations."""

    pass


class TokenExpiredError(JWTError):
    """Raised when a token has expired."""

    pass


class InvalidTokenError(JWTError):
    """Raised when a token is invalid."""

    pass


class JWTManager:
    """JWT token creation and validation manager.

    Attributes:
        _settings: JWT configuration settings.

    Example:
        >>> jwt_manager = JWTManager(settings)
        >>> tokens = jwt_manager.create_token_pair(
        ...     user_id="5b0e...",
        ...     tenant_id="acme",
        ...     email="admin@acme.edu",
        ...     role="admin",
        ...     permissions=["users:read"],
        ... )
        >>> claims = jwt_manager.decode_token(tokens.access_token)
    """

    def __init__(self, settings: JWTSettings) -> None:
        """Initialize the JWT manager.

        Args:
            settings: JWT configuration settings.
        """
        self._settings = settings

    @property
    def refresh_token_lifetime(self) -> timedelta:
        return timedelta(days=self._settings.refresh_token_expire_days)

    def create_token_pair(
        self,
        user_id: str | UUID,
        tenant_id: str,
        email: str | None = None,
        role: str | None = None,
        permissions: list[str] | None = None,
    ) -> TokenPair:
        """Create an access and refresh token pair.

        Args:
            user_id: Global user identifier.
            tenant_id: Tenant identifier.
            email: User email.
            role: Identity role.
            permissions: Permission codes of the tenant-local role.

        Returns:
            TokenPair with access and refresh tokens.
        """
        now = datetime.now(timezone.utc)
        access_exp = now + timedelta(minutes=self._settings.access_token_expire_minutes)
        refresh_exp = now + self.refresh_token_lifetime

        access_payload = {
            "sub": str(user_id),
            "type": "access",
            "email": email,
            "role": role,
            "tenant_id": tenant_id,
            "permissions": permissions or [],
            "exp": int(access_exp.timestamp()),
            "iat": int(now.timestamp()),
            "jti": secrets.token_urlsafe(16),
        }

        # Refresh tokens carry identity only; permissions are re-read on refresh
        refresh_payload = {
            "sub": str(user_id),
            "type": "refresh",
            "tenant_id": tenant_id,
            "exp": int(refresh_exp.timestamp()),
            "iat": int(now.timestamp()),
            "jti": secrets.token_urlsafe(16),
        }

        return TokenPair(
            access_token=self._encode(access_payload),
            refresh_token=self._encode(refresh_payload),
            token_type="Bearer",
            expires_in=self._settings.access_token_expire_minutes * 60,
            refresh_expires_in=self._settings.refresh_token_expire_days * 24 * 60 * 60,
        )

    def _encode(self, payload: dict) -> str:
        return jwt.encode(
            payload,
            self._settings.secret_key.get_secret_value(),
            algorithm=self._settings.algorithm,
        )

    def decode_token(
        self,
        token: str,
        expected_type: Literal["access", "refresh"] | None = None,
    ) -> TokenPayload:
        """Decode and validate a JWT token.

        Args:
            token: JWT token string.
            expected_type: Expected token type (access or refresh).

        Returns:
            TokenPayload with decoded claims.

        Raises:
            TokenExpiredError: If the token has expired.
            InvalidTokenError: If the token is invalid or wrong type.
        """
        try:
            payload = jwt.decode(
                token,
                self._settings.secret_key.get_secret_value(),
                algorithms=[self._settings.algorithm],
            )
        except ExpiredSignatureError:
            raise TokenExpiredError("Token has expired") from None
        except JoseJWTError as e:
            logger.warning("Token decode failed: %s", str(e))
            raise InvalidTokenError(f"Invalid token: {str(e)}") from e

        if expected_type and payload.get("type") != expected_type:
            raise InvalidTokenError(f"Expected {expected_type} token, got {payload.get('type')}")

        try:
            return TokenPayload.model_validate(payload)
        except ValidationError as e:
            logger.warning("Token claims rejected: %s", str(e))
            raise InvalidTokenError("Invalid token: malformed claims") from e

    def verify_token(
        self,
        token: str,
        expected_type: Literal["access", "refresh"] | None = None,
    ) -> bool:
        """Verify if a token is valid.

        Returns:
            True if token is valid, False otherwise.
        """
        try:
            self.decode_token(token, expected_type)
            return True
        except (TokenExpiredError, InvalidTokenError):
            return False

    @staticmethod
    def hash_token(token: str) -> str:
        """Create a SHA-256 hash of a token.

        Used for storing refresh token hashes in the registry instead of
        the actual token.

        Args:
            token: Token string to hash.

        Returns:
            SHA-256 hash of the token as hex string.
        """
        return hashlib.sha256(token.encode()).hexdigest()
