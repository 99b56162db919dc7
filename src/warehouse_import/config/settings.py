"""
Configuration management for Warehouse Import.

Environment-based configuration using Pydantic BaseSettings. Values are read
from ``WHI_``-prefixed environment variables and an optional ``.env`` file
(overridable through ``WHI_ENV_FILE``).
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Determine project root for resolving .env by default
PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_ENV_FILE = PROJECT_ROOT / ".env"
ENV_FILE_OVERRIDE = os.getenv("WHI_ENV_FILE")
if ENV_FILE_OVERRIDE:
    env_file_candidate = Path(ENV_FILE_OVERRIDE).expanduser()
    if not env_file_candidate.is_absolute():
        env_file_candidate = PROJECT_ROOT / env_file_candidate
    SETTINGS_ENV_FILE = env_file_candidate
else:
    SETTINGS_ENV_FILE = DEFAULT_ENV_FILE


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    Environment variables are loaded with the WHI_ prefix. For example,
    WHI_STAGING_TABLE_PREFIX overrides ``staging_table_prefix``. LOG_LEVEL
    is read without prefix so it can be shared with the host process.
    """

    LOG_LEVEL: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Logging level (uppercase)",
    )

    # Database
    database_url: Optional[str] = Field(
        default=None,
        description="SQLAlchemy URL used by connect() when no URL is passed",
    )
    database_schema: Optional[str] = Field(
        default=None, description="Default schema of target tables"
    )
    statement_timeout_seconds: Optional[int] = Field(
        default=None,
        description="Backend-enforced statement timeout applied per session",
    )
    connect_max_retries: int = Field(
        default=3, description="Connection attempts before giving up"
    )
    connect_retry_backoff_base: float = Field(
        default=2.0, description="Base for exponential connect backoff (seconds)"
    )

    # Import engine
    staging_table_prefix: str = Field(
        default="__temp_csvimport", description="Prefix of staging table names"
    )
    timestamp_column: str = Field(
        default="_timestamp", description="Reserved last-write timestamp column"
    )
    manifest_chunk_size: int = Field(
        default=1000, description="Files per COPY statement for sliced manifests"
    )

    # Object storage
    blob_fetch_timeout: int = Field(
        default=60, description="Blob fetch request timeout in seconds"
    )
    aws_access_key_id: Optional[str] = Field(
        default=None, description="Access key for S3 sourced loads"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, description="Secret key for S3 sourced loads"
    )
    aws_region: Optional[str] = Field(
        default=None, description="Region of the S3 bucket holding source files"
    )

    @field_validator("manifest_chunk_size", "connect_max_retries")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value

    @field_validator("statement_timeout_seconds")
    @classmethod
    def _non_negative_timeout(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 0:
            raise ValueError("statement timeout cannot be negative")
        return value

    model_config = SettingsConfigDict(
        env_prefix="WHI_",
        env_file=str(SETTINGS_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance with loaded configuration
    """
    return Settings()
