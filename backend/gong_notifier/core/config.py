"""
Gong Notifier - Configuration
=============================

Process-level settings loaded from environment variables.
Uses pydantic-settings for validation and type conversion.

Plugin settings (CI credentials, SMTP relay) are not configured here; they
come from the CI host at runtime, see ``core.schemas.PluginSettings``.
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
    APP_NAME: str = "Gong Notifier"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: Literal["development", "staging", "production", "test"] = "development"
    DEBUG: bool = False

    # ==========================================================================
    # API
    # ==========================================================================
    API_V1_PREFIX: str = "/api/v1"

    # ==========================================================================
    # Host integration
    # ==========================================================================
    PLUGIN_ID: str = "com.vary.gong"
    # Unset means "use the plugin defaults", no host round-trip
    HOST_SETTINGS_URL: str | None = None
    HOST_TIMEOUT_SECONDS: float = 5.0

    # ==========================================================================
    # CI server history
    # ==========================================================================
    DEFAULT_SERVER_URL: str = "http://localhost:8153/go"
    HISTORY_TIMEOUT_SECONDS: float = 10.0
    HISTORY_PAGE_SIZE: int = 10
    HISTORY_MAX_PAGES: int = 5

    # ==========================================================================
    # Listeners
    # ==========================================================================
    LISTENER_TIMEOUT_SECONDS: float = 30.0
    SMTP_TIMEOUT_SECONDS: float = 15.0

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
