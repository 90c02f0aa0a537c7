"""
Configuration management for the feedback loop jobs using Pydantic Settings.

Loads configuration from environment variables with type validation and sane defaults.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: str = Field(default="development", description="Environment: development, staging, production")
    debug: bool = Field(default=False, description="Debug mode")

    # Database
    database_url: str = Field(default="sqlite:///./feedbackloop.db", description="SQLAlchemy connection URL")

    # Logging
    log_level: str = Field(default="INFO", description="Log level: DEBUG, INFO, WARNING, ERROR")
    log_format: str = Field(default="json", description="Log format: json or text")
    log_file: str = Field(default="", description="Log file path (empty disables the file sink)")

    # Family bias learner
    feedback_batch_size: int = Field(default=500, description="Unprocessed feedback entries read per run")
    learner_interval_hours: int = Field(default=6, description="Hours between learner runs")

    # Global pattern aggregation
    family_page_size: int = Field(default=500, description="Families read per pagination page")
    write_batch_cap: int = Field(default=499, description="Writes per committed batch (store limit is 500)")
    global_pattern_review_threshold: int = Field(default=10, description="Corrections above which a pattern is flagged")
    anonymization_salt: str = Field(default="dev-anonymization-salt-change-in-production", description="Key for hashing family ids")

    # Scheduler
    job_max_retries: int = Field(default=3, description="Attempts per scheduled run before giving up")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept log levels in any case."""
        return v.upper()

    @field_validator("feedback_batch_size", "family_page_size", "write_batch_cap", "job_max_retries")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        """Batch and page sizes must allow forward progress."""
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"


# Global settings instance
settings = Settings()
