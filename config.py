"""
Configuration settings for the proficiency engine.

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
        env_prefix="PROFICIENCY_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Persistence
    # ========================================
    persistence_backend: Literal["memory", "json", "sql"] = Field(
        default="json",
        description="Key-value backend used for state snapshots",
    )
    state_dir: str = Field(
        default="~/.proficiency",
        description="Directory for the JSON file backend",
    )
    database_url: str = Field(
        default="sqlite:///proficiency.db",
        description="SQLAlchemy URL for the SQL backend",
    )
    storage_key: str = Field(
        default="proficiency-engine",
        description="Key under which the snapshot document is stored",
    )
    save_debounce_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Coalescing window for snapshot writes",
    )

    # ========================================
    # Analysis
    # ========================================
    analysis_cache_ttl_seconds: float = Field(
        default=0.05,
        ge=0.0,
        description="Maximum age of a cached analysis result",
    )
    analysis_cache_size: int = Field(
        default=256,
        gt=0,
        description="Maximum number of cached analysis results",
    )
    history_limit: int = Field(
        default=1000,
        gt=0,
        description="Observations retained per unit (FIFO eviction)",
    )
    learning_curve_limit: int = Field(
        default=50,
        gt=0,
        description="Rolling-accuracy samples retained per unit",
    )
    context_learning_rate: float = Field(
        default=0.1,
        gt=0.0,
        le=1.0,
        description="EMA rate for hour/position/adjacent-unit success rates",
    )
    exploration_rate: float = Field(
        default=0.1,
        ge=0.0,
        description="UCB-style exploration bonus rate for priority",
    )
    weak_threshold: float = Field(
        default=60.0,
        description="Weakness score above which a unit is flagged weak",
    )
    min_observations_for_ranking: int = Field(
        default=5,
        ge=0,
        description="Observations required before a unit appears in analyze_all",
    )
    random_seed: int | None = Field(
        default=None,
        description="Seed for Thompson sampling (None for nondeterministic)",
    )
    timezone: str = Field(
        default="UTC",
        description="IANA time zone for hour-of-day statistics and practice-time advice",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
