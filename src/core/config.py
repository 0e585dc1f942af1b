"""
Core Configuration Module
Uses pydantic-settings for environment variable management.
All secrets loaded from .env file - NEVER hardcode secrets.
"""
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    project_name: str = "Luna"
    environment: str = Field(default="development", description="development | staging | production")
    debug: bool = Field(default=True, alias="APP_DEBUG")
    api_v1_str: str = "/api/v1"
    app_base_url: str = Field(default="http://localhost:3000", description="Public frontend URL")

    # Database - PostgreSQL
    database_url: str = Field(
        default="postgresql+asyncpg://luna_user:luna_secret_password@db:5432/luna_core",
        description="Full database URL",
    )
    db_pool_size: int = Field(default=20, description="SQLAlchemy connection pool size")
    db_max_overflow: int = Field(default=10, description="Max overflow connections")
    db_echo: bool = Field(default=False, description="Echo SQL queries")
    run_db_init: bool = False

    # Security
    secret_key: str = Field(default="CHANGE_ME_IN_PRODUCTION", description="JWT secret key")
    algorithm: str = Field(default="HS256", description="JWT Algorithm")
    access_token_expire_minutes: int = Field(default=60 * 24, description="Token expiry in minutes")

    # CORS
    cors_origins: str = Field(default="http://localhost:3000", description="Allowed CORS origins")

    # Prometheus
    prometheus_enabled: bool = Field(default=True, description="Enable Prometheus metrics")

    # Application Version
    app_version: str = Field(default="1.0.0", description="Application version")

    # Energy economy
    streak_length_for_bonus: int = Field(default=3, ge=1, description="Streak days per bonus milestone")
    streak_bonus_amount: int = Field(default=5, ge=1, description="Energy credited per streak milestone")
    referral_bonus_energy: int = Field(default=10, ge=1, description="Energy credited to the referrer")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins."""
        if self.cors_origins:
            return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        return []

    @property
    def async_database_url(self) -> str:
        """Normalize the database URL to an async driver."""
        url = self.database_url
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif url.startswith("sqlite://"):
            url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
