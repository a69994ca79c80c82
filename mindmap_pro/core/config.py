"""Application configuration with validation.

Only infrastructure values live here (connections, secrets, defaults).
Feature flags an admin can change at runtime are stored in the ``settings``
table and read per call through ``services.settings_service.SettingsProvider``.
"""

from enum import Enum
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_JWT_SECRET = "dev-insecure-key-change-me"
_INSECURE_JWT_REFRESH_SECRET = "dev-insecure-refresh-key-change-me"
_INSECURE_ADMIN_PASSWORD = "Admin@123!"


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class ConfigurationError(Exception):
    """Raised when application configuration is invalid for the environment."""
    pass


class Settings(BaseSettings):
    """Process-level settings read from the environment and ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment (development/production)"
    )

    cors_allowed_origins: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # Store
    database_url: str = Field(
        default="sqlite:///./mindmap.db",
        description="Database connection URL"
    )
    # Pool tuning applies to PostgreSQL only.
    db_pool_size: int = Field(default=5)
    db_max_overflow: int = Field(default=10)
    db_pool_timeout: int = Field(default=30)
    db_pool_recycle: int = Field(default=1800)

    # Cache
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for the mindmap cache"
    )
    redis_socket_timeout: float = Field(
        default=2.0,
        description="Seconds before a Redis call is abandoned and treated as a miss"
    )
    mindmap_cache_ttl: int = Field(
        default=300,
        ge=1,
        description="Fallback TTL (seconds) for cached mindmap snapshots"
    )
    settings_cache_ttl: int = Field(
        default=60,
        ge=1,
        description="TTL (seconds) for cached runtime settings"
    )

    # Authentication
    jwt_secret_key: str = Field(
        default=_INSECURE_JWT_SECRET,
        description="JWT signing secret (override in production)"
    )
    jwt_algorithm: str = Field(default="HS256")
    jwt_expires_minutes: int = Field(default=60 * 24, ge=1)
    # Refresh tokens are signed with their own key so an access token can never
    # be replayed at the refresh endpoint.
    jwt_refresh_secret_key: str = Field(
        default=_INSECURE_JWT_REFRESH_SECRET,
        description="Refresh token signing secret (override in production)"
    )
    jwt_refresh_expires_minutes: int = Field(default=60 * 24 * 7, ge=1)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # Seeded administrator, created on first startup when no admin exists.
    admin_email: str = Field(default="admin@mindmap.app")
    admin_password: str = Field(default=_INSECURE_ADMIN_PASSWORD)

    # Reply 404 instead of 403 for mindmaps the caller cannot read.
    hide_forbidden_as_not_found: bool = Field(default=False)

    activity_retention_days: int = Field(
        default=365,
        description="Days to keep activity log entries (0 = keep forever)"
    )

    rate_limit_per_minute: int = Field(
        default=100,
        description="Maximum requests per client per minute (0 = unlimited)"
    )

    log_level: str = Field(default="INFO")
    log_format: str = Field(
        default="json",
        description="Log output format: 'json' for structured, 'text' for human-readable"
    )

    def get_cors_origins(self) -> List[str]:
        """Parse the comma-separated CORS origins, rejecting wildcards."""
        origins = [o.strip() for o in self.cors_allowed_origins.split(",") if o.strip()]
        if "*" in origins:
            raise ValueError(
                "Wildcard CORS (*) not allowed. "
                "Specify explicit origins in CORS_ALLOWED_ORIGINS"
            )
        return origins

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    def insecure_defaults(self) -> list[str]:
        """List the security-relevant settings still at their shipped defaults."""
        problems: list[str] = []
        if self.jwt_secret_key == _INSECURE_JWT_SECRET:
            problems.append(
                "JWT_SECRET_KEY is using the default insecure value. "
                "Generate a secure key: openssl rand -hex 32"
            )
        if self.jwt_refresh_secret_key == _INSECURE_JWT_REFRESH_SECRET:
            problems.append("JWT_REFRESH_SECRET_KEY is using the default insecure value.")
        if self.admin_password == _INSECURE_ADMIN_PASSWORD:
            problems.append("ADMIN_PASSWORD is using the default seed password.")
        localhost = [o for o in self.get_cors_origins() if "localhost" in o or "127.0.0.1" in o]
        if localhost:
            problems.append(f"CORS allows localhost origins: {localhost}.")
        return problems

    def validate_production_config(self) -> None:
        """Fail startup in production when insecure defaults remain.

        Raises:
            ConfigurationError: If production config is insecure.
        """
        problems = self.insecure_defaults()
        if problems and self.environment == Environment.PRODUCTION:
            raise ConfigurationError(
                "Production configuration is insecure:\n  - " + "\n  - ".join(problems)
            )


settings = Settings()
