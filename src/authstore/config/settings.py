"""
authstore Settings

Configuration management using Pydantic Settings.
All sensitive values are loaded from environment variables.

SECURITY: Never log or expose settings containing secrets.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL database configuration."""

    model_config = SettingsConfigDict(env_prefix="AUTHSTORE_DB_")

    url: Optional[SecretStr] = Field(default=None, description="Full connection URL (overrides parts)")
    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    name: str = Field(default="authstore", description="Database name")
    user: str = Field(default="authstore", description="Database user")
    password: SecretStr = Field(default=SecretStr("dev_password"), description="Database password")
    pool_size: int = Field(default=10, ge=1, le=100, description="Connection pool size")
    max_overflow: int = Field(default=20, ge=0, le=100, description="Max overflow connections")

    @property
    def async_url(self) -> str:
        """Generate async database URL for SQLAlchemy."""
        if self.url is not None:
            return normalize_async_url(self.url.get_secret_value())
        password = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{password}@{self.host}:{self.port}/{self.name}"


class TokenSettings(BaseSettings):
    """One-time token lifetimes, in seconds."""

    model_config = SettingsConfigDict(env_prefix="AUTHSTORE_TOKEN_")

    password_reset_ttl: int = Field(default=3600, ge=60)
    email_confirmation_ttl: int = Field(default=86400, ge=60)
    phone_confirmation_ttl: int = Field(default=600, ge=60)
    magic_link_ttl: int = Field(default=900, ge=60)
    token_bytes: int = Field(default=32, ge=16, le=128, description="Random bytes per issued token")


class MigrationSettings(BaseSettings):
    """Schema migration configuration."""

    model_config = SettingsConfigDict(env_prefix="AUTHSTORE_MIGRATIONS_")

    directory: Optional[Path] = Field(
        default=None,
        description="Root of per-module migration directories (defaults to the bundled SQL)",
    )


class Settings(BaseSettings):
    """
    Main settings.

    All configuration is loaded from environment variables with AUTHSTORE_ prefix.
    Sensitive values use SecretStr to prevent accidental logging.

    Usage:
        settings = get_settings()
        db_url = settings.database.async_url
    """

    model_config = SettingsConfigDict(
        env_prefix="AUTHSTORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Echo SQL - NEVER enable in production")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level"
    )

    # Nested settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    tokens: TokenSettings = Field(default_factory=TokenSettings)
    migrations: MigrationSettings = Field(default_factory=MigrationSettings)


def normalize_async_url(url: str) -> str:
    """
    Force the asyncpg driver onto a PostgreSQL URL.

    Accepts plain ``postgres://`` and ``postgresql://`` connection
    strings as handed out by most hosting providers.
    """
    for prefix in ("postgresql+asyncpg://", "postgresql://", "postgres://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings.

    Uses LRU cache to ensure settings are only loaded once.
    For testing, construct Settings directly and pass it in.

    Returns:
        Settings: Settings instance
    """
    return Settings()
