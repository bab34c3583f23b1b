"""Upload endpoint running validation and extraction for a set of files."""

from __future__ import annotations

from uuid import uuid4

import structlog
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from app.backend.src.core.config import Settings, get_settings
from app.backend.src.schemas.upload import UploadResponse
from app.backend.src.services.event_log import EventLog
from app.backend.src.services.file_validator import SUPPORTED_MIME_TYPES
from app.backend.src.services.upload_pipeline import UploadedFile, UploadPipeline

from .deps import get_event_log, get_upload_pipeline

LOGGER = structlog.get_logger(__name__)

router = APIRouter(tags=["uploads"])

_SUPPORTED_TYPES_MESSAGE = (
    "Supported types: PDF, images (PNG, JPG, JPEG), Word documents (DOCX), and text files."
)


@router.post("/upload", response_model=UploadResponse)
async def upload_files(
    files: list[UploadFile] | None = File(default=None),
    pipeline: UploadPipeline = Depends(get_upload_pipeline),
    event_log: EventLog = Depends(get_event_log),
    settings: Settings = Depends(get_settings),
) -> UploadResponse:
    """Validate and extract text from up to ``MAX_FILES_PER_UPLOAD`` files."""

    if not files:
        raise HTTPException(
            status_code=400,
            detail={"message": "No files uploaded", "error": "At least one file is required"},
        )

    if len(files) > settings.max_files_per_upload:
        raise HTTPException(
            status_code=400,
            detail={
                "message": "Too many files",
                "error": f"At most {settings.max_files_per_upload} files can be uploaded at once",
            },
        )

    uploads: list[UploadedFile] = []
    for file in files:
        mime_type = file.content_type or "application/octet-stream"
        if mime_type not in SUPPORTED_MIME_TYPES:
            raise HTTPException(
                status_code=400,
                detail={
                    "message": "Invalid file type",
                    "error": f"Invalid file type '{mime_type}'. {_SUPPORTED_TYPES_MESSAGE}",
                },
            )
        # One byte past the limit is enough to detect an oversized upload.
        content = await file.read(settings.max_upload_file_bytes + 1)
        if len(content) > settings.max_upload_file_bytes:
            limit_mb = settings.max_upload_file_bytes / (1024 * 1024)
            raise HTTPException(
                status_code=413,
                detail={
                    "message": "File too large",
                    "error": f"File '{file.filename}' exceeds the {limit_mb:g}MB upload limit",
                },
            )
        uploads.append(
            UploadedFile(
                filename=file.filename or "upload",
                mime_type=mime_type,
                content=content,
            )
        )

    request_id = str(uuid4())
    try:
        results = await pipeline.process(uploads, request_id=request_id)
    except Exception as exc:
        LOGGER.error("upload_processing_failed", request_id=request_id, error=str(exc))
        event_log.error(
            "Upload processing failed", "upload", {"error": str(exc)}, request_id
        )
        raise HTTPException(
            status_code=500,
            detail={"message": "Failed to process uploaded files", "error": str(exc)},
        ) from exc

    return UploadResponse(message=f"Processed {len(uploads)} file(s)", results=results)
