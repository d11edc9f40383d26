"""Application configuration."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Allow extra env vars without error
    )

    # API
    api_host: str = Field(default="127.0.0.1", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_prefix: str = Field(default="/api/v1", description="API prefix")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./napcoach.db",
        description="SQLAlchemy async database URL",
    )

    # Calendar
    timezone: str | None = Field(
        default=None,
        description="IANA zone used for day boundaries (e.g. Europe/London). "
        "Falls back to the host's IANA zone when unset.",
    )

    # Reminders
    notifications_enabled: bool = Field(
        default=True,
        description="Whether reminder delivery is permitted",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )


# Global settings instance
settings = Settings()
