# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for Campus LMS.

Example:
    >>> from campus.core.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from campus.core.config.settings import (
    CORSSettings,
    JWTSettings,
    MigrationSettings,
    RateLimitSettings,
    RegistryDatabaseSettings,
    Settings,
    TenantPoolSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Subsettings
    "RegistryDatabaseSettings",
    "TenantPoolSettings",
    "MigrationSettings",
    "JWTSettings",
    "RateLimitSettings",
    "CORSSettings",
]
