"""
Configuration settings for the masterly engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MASTERLY_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///masterly.db",
        description="SQLAlchemy connection string for the ledger and path stores",
    )
    ledger_max_retries: int = Field(
        default=5,
        ge=1,
        description="Compare-and-swap retries before a ledger write conflict is surfaced",
    )

    # ========================================
    # Mastery Policies
    # ========================================
    # Two thresholds coexist for "mastered": the best-score path used by the
    # course learning flow and the running-average path used by quiz submission.
    best_score_threshold: float = Field(
        default=0.75,
        ge=0,
        le=1,
        description="Mastery threshold for the best-score-wins policy (0-1)",
    )
    running_average_threshold: float = Field(
        default=0.70,
        ge=0,
        le=1,
        description="Mastery threshold for the running-average policy (0-1)",
    )
    completion_threshold: float = Field(
        default=0.70,
        ge=0,
        le=1,
        description="Score at which a prerequisite counts as met for topic paths (0-1)",
    )
    anti_cheat_failure_limit: int = Field(
        default=3,
        ge=1,
        description="Consecutive failed quizzes before content steps are reset",
    )

    # ========================================
    # Path Generation
    # ========================================
    max_alternative_routes: int = Field(
        default=3,
        ge=0,
        description="Alternative routes generated after the recommended route",
    )
    topic_path_limit: int = Field(
        default=50,
        ge=1,
        description="Maximum candidate paths enumerated for a topic recommendation",
    )
    path_cache_dir: str = Field(
        default=".masterly/paths",
        description="Directory for the local learning path cache",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default="logs/masterly.log",
        description="Log file path (None for stderr only)",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
