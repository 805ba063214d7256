"""
Launchpad - Configuration
=========================

All application settings loaded from environment variables.
Uses pydantic-settings for validation and type conversion.
"""

from functools import lru_cache
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    APP_NAME: str = "Launchpad"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = "development"
    DEBUG: bool = False

    # ==========================================================================
    # API
    # ==========================================================================
    API_V1_PREFIX: str = "/api/v1"
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # ==========================================================================
    # Database (supports SQLite and PostgreSQL)
    # ==========================================================================
    DATABASE_URL: str = "sqlite+aiosqlite:///./launchpad.db"
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_ECHO: bool = False

    @computed_field  # type: ignore[misc]
    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.DATABASE_URL

    # ==========================================================================
    # Monitoring
    # ==========================================================================
    MONITORING_ENABLED: bool = True
    HEALTH_CHECK_INTERVAL_SECONDS: float = 300.0  # 5 minutes
    HEALTH_CHECK_TIMEOUT_SECONDS: float = 10.0
    HEALTH_MAX_LATENCY_MS: float = 5000.0
    HEALTH_MAX_ERROR_RATE: float = 0.5

    # ==========================================================================
    # Self-Healing
    # ==========================================================================
    SELF_HEALING_MAX_RETRIES: int = 3
    SELF_HEALING_FAILURE_THRESHOLD: int = 1  # Failed checks before recovery starts
    REDEPLOY_TIMEOUT_SECONDS: float = 120.0

    # ==========================================================================
    # Deployment
    # ==========================================================================
    DEPLOY_DOMAIN: str = "vercel.app"

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @computed_field  # type: ignore[misc]
    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @computed_field  # type: ignore[misc]
    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export
settings = get_settings()
