"""Engine settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables (prefix ``PROGRESS_``)."""

    # Application Configuration
    app_name: str = Field(default="sequence-progress", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./progress.db",
        description="Async SQLAlchemy connection URL",
    )
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")

    # Calendar
    default_time_zone: str = Field(
        default="UTC", description="IANA zone used when a request carries none"
    )

    # Progressive reveal pacing
    reveal_words_per_second: float = Field(
        default=2.5, gt=0, description="Reading speed used to estimate sub-unit duration"
    )
    reveal_fallback_interval_seconds: float = Field(
        default=12.0, gt=0, description="Per sub-unit duration when word counts are unknown"
    )
    reveal_tick_seconds: float = Field(
        default=0.25, gt=0, description="Pacing timer period (seconds)"
    )

    # Content
    content_path: Optional[Path] = Field(
        default=None,
        description="JSON file of sequence definitions loaded at startup",
    )

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    model_config = SettingsConfigDict(
        env_prefix="PROGRESS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("default_time_zone")
    @classmethod
    def validate_time_zone(cls, v: str) -> str:
        """Validate that the default zone is a known IANA zone."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown time zone: {v}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
