"""Configuration management using Pydantic Settings."""

import os

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        # Only load .env file in development (not Lambda/production)
        env_file=".env" if os.getenv("AWS_EXECUTION_ENV") is None else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Configuration
    log_level: str = "INFO"
    api_title: str = "Repeat Submit Guard"
    api_version: str = "1.0.0"

    # Guard defaults (used when a policy does not set its own)
    guard_default_window_seconds: float = 5.0
    guard_default_strategy: str = "param"

    # Cache tuning
    guard_retention_seconds: float = 0.0
    guard_shard_count: int = 64
    guard_purge_interval_seconds: float = 30.0
    guard_sweep_interval_seconds: float = 60.0

    # Header carrying the caller's session credential
    guard_token_header: str = "Authorization"

    @field_validator(
        "guard_default_window_seconds",
        "guard_purge_interval_seconds",
        "guard_sweep_interval_seconds",
    )
    @classmethod
    def require_positive_duration(cls, v: float) -> float:
        """Reject zero or negative durations at startup."""
        if v <= 0:
            raise ValueError("duration must be greater than zero")
        return v

    @field_validator("guard_retention_seconds")
    @classmethod
    def require_non_negative_retention(cls, v: float) -> float:
        """Retention of 0 means entries are kept exactly for their window."""
        if v < 0:
            raise ValueError("retention must not be negative")
        return v

    @field_validator("guard_shard_count")
    @classmethod
    def require_shards(cls, v: int) -> int:
        """At least one shard is needed to hold entries."""
        if v < 1:
            raise ValueError("shard count must be at least 1")
        return v


# Global settings instance
settings = Settings()
