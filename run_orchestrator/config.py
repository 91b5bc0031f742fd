"""
Application configuration module using Pydantic Settings.

Centralizes the process-level settings of the run orchestrator: environment,
logging, the application data directory and notification switches.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with validation.

    Settings are loaded from environment variables with fallback to .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production", "test"] = Field(
        default="production",
        description="Application environment",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level",
    )
    log_json: bool = Field(
        default=False,
        description="Render logs as JSON lines instead of the console renderer",
    )

    # Application data
    app_directory: Path = Field(
        default=Path.home() / ".run-orchestrator",
        description="Default per-user directory for staged run files",
    )

    # Notifications
    notifications_enabled: bool = Field(
        default=True,
        description="Deliver desktop milestone notifications",
    )

    # API
    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="Origins allowed to call the local API",
    )
    api_port: int = Field(
        default=8000,
        ge=1024,
        le=65535,
        description="Local API server port",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept lower-case level names from the environment."""
        if isinstance(v, str):
            return v.upper()
        return v


# Global settings instance
settings = Settings()
