"""
Configuration management using Pydantic Settings.
Values come from the environment (``MYCONTEXT_*``) or a local ``.env`` file.
"""
import logging
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mycontext.scheduling.retry_strategies import RetryPolicy


class Settings(BaseSettings):
    """Orchestrator settings with validation and environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="MYCONTEXT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="mycontext", description="Application name")
    environment: str = Field(default="development", description="Environment: development, staging, production")
    debug: bool = Field(default=False, description="Debug mode")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format: json or text")

    # Retry policy
    max_retries: int = Field(default=3, ge=0, le=20, description="Retries per step after the first attempt")
    retry_initial_delay_ms: int = Field(default=0, ge=0, description="Delay before the first retry")
    retry_max_delay_ms: int = Field(default=10000, ge=0, description="Upper bound for the backoff delay")
    retry_exponential_base: float = Field(default=2.0, ge=1.0, description="Backoff growth factor")
    retry_jitter: bool = Field(default=False, description="Add up to 25% random jitter to retry delays")

    # Interaction
    interactive: bool = Field(default=False, description="Ask before retrying interactive steps")
    confirm_timeout: float = Field(default=60.0, gt=0, description="Seconds to wait for a confirmation answer")

    # History
    history_limit: int = Field(default=1000, ge=1, description="Execution records kept in memory")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of allowed values."""
        allowed = ["development", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format is valid."""
        allowed = ["json", "text"]
        if v not in allowed:
            raise ValueError(f"Log format must be one of {allowed}")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_log_level(self) -> int:
        """Get logging level as integer."""
        return getattr(logging, self.log_level)

    def retry_policy(self) -> RetryPolicy:
        """Build the default step retry policy."""
        return RetryPolicy(
            max_retries=self.max_retries,
            initial_delay_ms=self.retry_initial_delay_ms,
            max_delay_ms=self.retry_max_delay_ms,
            exponential_base=self.retry_exponential_base,
            jitter=self.retry_jitter,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings
    """
    return Settings()
