"""Upload and processing-result schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

ResultStatus = Literal["processing", "completed", "failed"]


class FileProcessingResultCreate(BaseModel):
    filename: str
    original_name: str
    file_size: int
    mime_type: str
    status: ResultStatus
    extracted_text: str | None = None
    word_count: int | None = None
    character_count: int | None = None
    processing_time: float | None = None
    error_message: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class FileProcessingResult(FileProcessingResultCreate):
    """A stored extraction outcome for one uploaded file."""

    id: str
    created_at: datetime
    updated_at: datetime


class UploadResponse(BaseModel):
    message: str
    results: list[FileProcessingResult]


class FileTypeRead(BaseModel):
    mime_type: str
    category: str
    max_size_mb: int
    description: str
