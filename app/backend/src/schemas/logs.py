"""Event log schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

LogLevel = Literal["debug", "info", "warn", "error"]
LogCategory = Literal["upload", "processing", "validation", "system", "error"]


class LogEntry(BaseModel):
    id: str
    timestamp: datetime
    level: LogLevel
    message: str
    category: LogCategory
    metadata: dict[str, Any] = Field(default_factory=dict)
    duration: float | None = None
    request_id: str | None = None


class UploadStats(BaseModel):
    total_uploads: int
    successful_uploads: int
    failed_uploads: int
    average_processing_time: float
    total_files_processed: int
    error_rate: float


class LogSummary(BaseModel):
    total_entries: int
    by_level: dict[str, int]
    by_category: dict[str, int]
    active_requests: int
    oldest_entry: datetime | None = None
    newest_entry: datetime | None = None


class LogStatsResponse(BaseModel):
    stats: UploadStats
    summary: LogSummary
