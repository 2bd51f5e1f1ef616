"""
Application Settings.

Centralized configuration using Pydantic Settings with environment variable loading.
Missing required values (Supabase credentials) raise a ValidationError at startup.

Pipeline tuning values default to the thresholds the directory has always
used for matching and deduplication; override them per environment with
the upper-case variable names (e.g. NAME_MATCH_THRESHOLD=0.9).

Production Mode:
    When app_env="production", additional validations apply:
    - api_key_enabled must be True
    - debug must be False
    - cors_allowed_origins cannot be ["*"]
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Supabase (hosted document backend)
    # -------------------------------------------------------------------------
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_key: SecretStr = Field(..., description="Supabase service role key")
    store_backend: Literal["supabase", "memory"] = Field(
        default="supabase",
        description="Document store backend. 'memory' keeps everything in-process.",
    )

    # -------------------------------------------------------------------------
    # GEOscraper (third-party review source)
    # -------------------------------------------------------------------------
    geoscraper_api_token: SecretStr | None = Field(
        default=None, description="GEOscraper API token (X-Berserker-Token)"
    )
    geoscraper_api_url: str = Field(
        default="https://api.geoscraper.net/google/map/review",
        description="GEOscraper Google Maps review endpoint",
    )
    geoscraper_timeout_seconds: float = Field(
        default=30.0, description="HTTP timeout for review source requests"
    )
    geoscraper_page_delay_seconds: float = Field(
        default=0.5, description="Pause between paginated review requests"
    )

    # -------------------------------------------------------------------------
    # Matching & Deduplication
    # -------------------------------------------------------------------------
    name_match_threshold: float = Field(
        default=0.85,
        ge=0.0,
        le=1.0,
        description="Fuzzy business name similarity must exceed this to match",
    )
    content_match_threshold: float = Field(
        default=0.9,
        ge=0.0,
        le=1.0,
        description="Review comment similarity must exceed this to count as duplicate",
    )

    # -------------------------------------------------------------------------
    # Review Sync Queue
    # -------------------------------------------------------------------------
    max_concurrent_syncs: int = Field(
        default=3, ge=1, description="Queue items processed at the same time"
    )
    queue_max_retries: int = Field(
        default=3, ge=1, description="Attempts before a queue item is marked failed"
    )
    queue_stuck_after_seconds: int = Field(
        default=300, description="Processing items older than this are reset to pending"
    )
    queue_bulk_add_limit: int = Field(
        default=100, description="Maximum items accepted by a single bulk add"
    )
    max_reviews_per_business: int = Field(
        default=200, description="Reviews fetched per business per sync"
    )
    review_import_batch_size: int = Field(
        default=100, description="Reviews written per import chunk during sync"
    )

    # -------------------------------------------------------------------------
    # Counter Repair
    # -------------------------------------------------------------------------
    sync_batch_size_limit: int = Field(
        default=20, description="Largest business id batch served for counter repair"
    )
    sync_max_skip: int = Field(
        default=100, description="Largest skip offset accepted for counter repair batches"
    )

    # -------------------------------------------------------------------------
    # Scheduler
    # -------------------------------------------------------------------------
    scheduler_enabled: bool = Field(
        default=True, description="Start the background sync jobs with the API"
    )
    daily_sync_hour: int = Field(
        default=2, ge=0, le=23, description="UTC hour of the daily review sync"
    )
    queue_process_interval_minutes: int = Field(
        default=5, ge=1, description="How often pending queue items are processed"
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    api_host: str = Field(default="0.0.0.0", description="Bind host for the API server")
    api_port: int = Field(default=8000, description="Bind port for the API server")

    # -------------------------------------------------------------------------
    # Security Settings
    # -------------------------------------------------------------------------
    api_key: SecretStr | None = Field(
        default=None,
        description="API key for authentication. If set, all requests require X-API-Key header.",
    )
    api_key_enabled: bool = Field(
        default=False,
        description="Enable API key authentication. Set True for production.",
    )

    # -------------------------------------------------------------------------
    # CORS Settings
    # -------------------------------------------------------------------------
    cors_allowed_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        description="Allowed CORS origins. Use ['*'] for development only.",
    )
    cors_allow_credentials: bool = Field(
        default=True,
        description="Allow credentials in CORS requests",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Reject insecure or in-process-only settings in production."""
        if self.app_env == "production":
            errors = []

            if not self.api_key_enabled:
                errors.append("api_key_enabled must be True in production")

            if self.api_key_enabled and not self.api_key:
                errors.append("api_key must be set when api_key_enabled is True")

            if self.debug:
                errors.append("debug must be False in production")

            if "*" in self.cors_allowed_origins:
                errors.append("cors_allowed_origins cannot contain '*' in production")

            if self.store_backend == "memory":
                errors.append("store_backend cannot be 'memory' in production")

            if errors:
                raise ValueError(
                    f"Production configuration errors: {'; '.join(errors)}"
                )

        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Call get_settings.cache_clear() to reload settings if needed.
    """
    return Settings()
