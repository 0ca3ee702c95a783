"""
Configuration settings for the spaced-review engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = Path.home() / ".spaced_review"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    store_backend: Literal["memory", "json", "sql", "rest"] = Field(
        default="json",
        description="Which store implementation backs items, attempts and metrics",
    )
    data_dir: Path = Field(
        default=DEFAULT_DATA_DIR,
        description="Directory for device-local JSON stores",
    )
    database_url: str = Field(
        default=f"sqlite:///{DEFAULT_DATA_DIR / 'review.db'}",
        description="SQLAlchemy connection string (SQLite or PostgreSQL)",
    )

    # ─── Remote store ───────────────────────────────────────────────────────────
    rest_base_url: str = Field(
        default="http://127.0.0.1:8100",
        description="Base URL of the remote review API",
    )
    rest_api_key: str = Field(
        default="",
        description="Bearer token for the remote review API",
    )
    rest_timeout_seconds: float = Field(
        default=10.0,
        description="HTTP timeout for remote store calls",
    )

    # ========================================
    # Ease-factor scheduling (questions)
    # ========================================
    ease_initial: float = Field(default=2.5, description="Ease factor for new items")
    ease_minimum: float = Field(default=1.3, description="Ease factor floor")
    ease_first_interval: int = Field(default=1, description="Days after first success")
    ease_second_interval: int = Field(default=6, description="Days after second success")
    ease_max_interval: int = Field(default=365, description="Interval cap in days")
    ease_mastery_interval: int = Field(
        default=21,
        description="Interval (days) from which an ease-factor item counts as mastered",
    )

    # ========================================
    # Level-based scheduling (vocabulary flashcards)
    # ========================================
    level_max_interval: int = Field(default=90, description="Interval cap in days")
    level_mastery: int = Field(default=8, description="Level at which a card is mastered")

    # ========================================
    # Review sessions
    # ========================================
    session_limit: int = Field(default=20, description="Items fetched per session")
    persist_retries: int = Field(
        default=0,
        description="Extra write attempts after a failed item/attempt write",
    )
    expected_response_ms: int = Field(
        default=10000,
        description="Expected answer time used to grade boolean answers",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Minimum level written to stderr",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional log file path (rotated at 10 MB)",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
