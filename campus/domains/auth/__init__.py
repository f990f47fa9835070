# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Authentication domain services.

This module provides authentication services for global identities:
- JWT token creation and validation
- Password hashing
- Registration, login, refresh and logout

Exports:
    PasswordHasher: Secure password hashing using bcrypt.
    JWTManager: JWT token creation and validation.
    AuthService: Registration and session service.
"""

from campus.domains.auth.jwt import JWTManager
from campus.domains.auth.password import PasswordHasher
from campus.domains.auth.service import AuthService

__all__ = [
    "PasswordHasher",
    "JWTManager",
    "AuthService",
]
