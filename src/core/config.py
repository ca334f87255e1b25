"""Application configuration using pydantic-settings."""
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    database_url: str
    db_pool_size: int = Field(default=5, validation_alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=10, validation_alias="DB_MAX_OVERFLOW")

    # Filesystem blob store root (raw blobs under <ref>, compressed under <ref>.z)
    page_content_storage_path: str = Field(
        default="./storage/page-content",
        validation_alias="PAGE_CONTENT_STORAGE_PATH",
    )

    # Content at or above this many UTF-8 bytes is compressed by the auto policy
    compression_threshold_bytes: int = Field(
        default=1024, gt=0, validation_alias="COMPRESSION_THRESHOLD_BYTES",
    )

    # Diff policy constants
    diff_max_content_chars: int = Field(
        default=50 * 1024, gt=0, validation_alias="DIFF_MAX_CONTENT_CHARS",
    )
    diff_min_useful_chars: int = Field(
        default=200, gt=0, validation_alias="DIFF_MIN_USEFUL_CHARS",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
