"""Application configuration utilities."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings derived from environment variables."""

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    batch_max_concurrency: int = Field(default=3, ge=1, alias="BATCH_MAX_CONCURRENCY")
    batch_retry_attempts: int = Field(default=2, ge=0, alias="BATCH_RETRY_ATTEMPTS")
    batch_timeout_ms: int = Field(default=30_000, gt=0, alias="BATCH_TIMEOUT_MS")
    batch_backoff_base_ms: int = Field(
        default=1_000, ge=0, alias="BATCH_BACKOFF_BASE_MS"
    )
    batch_backoff_max_ms: int = Field(default=5_000, ge=0, alias="BATCH_BACKOFF_MAX_MS")
    max_files_per_upload: int = Field(default=10, ge=1, alias="MAX_FILES_PER_UPLOAD")
    max_upload_file_bytes: int = Field(
        default=25 * 1024 * 1024, gt=0, alias="MAX_UPLOAD_FILE_BYTES"
    )
    ocr_min_confidence: float = Field(default=30.0, alias="OCR_MIN_CONFIDENCE")
    ocr_language: str = Field(default="eng", alias="OCR_LANGUAGE")
    tesseract_cmd: str | None = Field(default=None, alias="TESSERACT_CMD")
    max_text_length: int = Field(default=100_000, gt=0, alias="MAX_TEXT_LENGTH")
    event_log_max_entries: int = Field(
        default=2_000, gt=0, alias="EVENT_LOG_MAX_ENTRIES"
    )

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


__all__ = ["Settings", "get_settings"]
