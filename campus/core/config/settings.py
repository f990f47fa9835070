# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for Campus LMS.
Settings are loaded from environment variables with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from campus.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.registry_db.database)
    'lms_main'
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RegistryDatabaseSettings(BaseSettings):
    """Main registry database configuration.

    The registry database stores the tenant directory and the global
    user identity table. Tenant schemas live in the same database,
    so tenant pools reuse these connection parameters.

    Attributes:
        host: Database host address.
        port: Database port number.
        database: Database name.
        user: PostgreSQL username.
        password: PostgreSQL password.
        pool_size: Connection pool size for the registry engine.
        max_overflow: Maximum overflow connections.
        pool_timeout: Seconds to wait for a pooled connection.
        connect_timeout: Seconds to wait when opening a new connection.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    host: str = "localhost"
    port: int = 5432
    database: str = Field(default="lms_main", validation_alias="DB_NAME")
    user: str = "postgres"
    password: SecretStr = SecretStr("password")
    pool_size: int = 20
    max_overflow: int = 0
    pool_timeout: float = 30.0
    connect_timeout: float = 2.0

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"


class TenantPoolSettings(BaseSettings):
    """Per-tenant connection pool configuration.

    Attributes:
        pool_size: Connections kept open per tenant pool.
        max_overflow: Extra connections allowed above pool_size.
        pool_recycle: Seconds after which a connection is recycled.
        command_timeout: Statement timeout in seconds applied by the driver.
    """

    model_config = SettingsConfigDict(
        env_prefix="TENANT_POOL_",
        extra="ignore",
    )

    pool_size: int = 10
    max_overflow: int = 0
    pool_recycle: int = 1800
    command_timeout: float = 30.0


class MigrationSettings(BaseSettings):
    """Tenant schema migration configuration.

    Attributes:
        concurrency: Number of tenant schemas migrated in parallel.
    """

    model_config = SettingsConfigDict(
        env_prefix="MIGRATION_",
        extra="ignore",
    )

    concurrency: int = Field(default=4, ge=1)


class JWTSettings(BaseSettings):
    """JWT authentication configuration.

    Attributes:
        secret_key: Secret key for signing tokens.
        algorithm: JWT signing algorithm.
        access_token_expire_minutes: Access token expiration time.
        refresh_token_expire_days: Refresh token expiration time.
    """

    model_config = SettingsConfigDict(
        env_prefix="JWT_",
        extra="ignore",
    )

    secret_key: SecretStr = SecretStr("change-this-in-production")
    algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(
        default=24 * 60,
        validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )
    refresh_token_expire_days: int = Field(
        default=7,
        validation_alias="REFRESH_TOKEN_EXPIRE_DAYS",
    )


class RateLimitSettings(BaseSettings):
    """Rate limiting configuration.

    Attributes:
        enabled: Whether rate limits are enforced.
        requests_per_minute: Maximum requests per minute per client.
        auth_requests_per_minute: Limit for login and registration endpoints.
    """

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        extra="ignore",
    )

    enabled: bool = True
    requests_per_minute: int = 100
    auth_requests_per_minute: int = 10


class CORSSettings(BaseSettings):
    """CORS configuration for API.

    Attributes:
        origins: Comma-separated list of allowed origins.
        allow_credentials: Whether to allow credentials.
        allow_methods: Allowed HTTP methods.
        allow_headers: Allowed HTTP headers.
    """

    model_config = SettingsConfigDict(
        env_prefix="CORS_",
        extra="ignore",
    )

    origins: str = "http://localhost:3000,http://localhost:5173"
    allow_credentials: bool = True
    allow_methods: list[str] = ["*"]
    allow_headers: list[str] = ["*"]

    @property
    def origins_list(self) -> list[str]:
        """Parse origins string into a list."""
        return [origin.strip() for origin in self.origins.split(",") if origin.strip()]


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        registry_db: Registry database settings.
        tenant_pool: Per-tenant pool settings.
        migration: Tenant migration settings.
        jwt: JWT authentication settings.
        rate_limit: Rate limiting settings.
        cors: CORS settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "test", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Subsettings - loaded with their own env prefixes
    registry_db: RegistryDatabaseSettings = Field(default_factory=RegistryDatabaseSettings)
    tenant_pool: TenantPoolSettings = Field(default_factory=TenantPoolSettings)
    migration: MigrationSettings = Field(default_factory=MigrationSettings)
    jwt: JWTSettings = Field(default_factory=JWTSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with insecure defaults.
        """
        if self.environment == "production":
            default_jwt_secret = "change-this-in-production"
            if self.jwt.secret_key.get_secret_value() == default_jwt_secret:
                raise ValueError(
                    "JWT secret key must be changed from default in production. "
                    "Set JWT_SECRET_KEY environment variable."
                )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
