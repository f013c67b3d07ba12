"""
Centralized configuration management for flashreview.
"""
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DEFAULT_MAX_INTERVAL_DAYS,
    DEFAULT_SESSION_LIMIT,
    DEFAULT_USER_ID,
)


class Settings(BaseSettings):
    """
    Application settings, loaded from FLASHREVIEW_* environment variables or
    a local .env file. CLI options take precedence over these values.
    """

    model_config = SettingsConfigDict(
        env_prefix="FLASHREVIEW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Core Paths ---
    # DuckDB file holding review state. FLASHREVIEW_DB.
    db: Optional[Path] = None

    # Corpus file or directory (flash-card-data.js, JSON or YAML).
    # FLASHREVIEW_CARDS.
    cards: Optional[Path] = None

    # --- User Configuration ---
    user: str = Field(default=DEFAULT_USER_ID, min_length=1)

    # --- Scheduling ---
    session_limit: int = Field(default=DEFAULT_SESSION_LIMIT, ge=0)
    max_interval_days: int = Field(default=DEFAULT_MAX_INTERVAL_DAYS, ge=1)

    # --- Testing Configuration ---
    # When True, disables the guard that refuses to drop tables holding data.
    # Should NEVER be enabled in production. FLASHREVIEW_TESTING_MODE.
    testing_mode: bool = False


# Create a singleton instance of the settings
settings = Settings()
