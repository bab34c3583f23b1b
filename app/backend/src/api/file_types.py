"""Supported file type information."""

from __future__ import annotations

from fastapi import APIRouter

from app.backend.src.schemas.upload import FileTypeRead
from app.backend.src.services.file_validator import SUPPORTED_MIME_TYPES, get_file_type_info

router = APIRouter(prefix="/file-types", tags=["file-types"])


@router.get("", response_model=list[FileTypeRead])
def list_file_types() -> list[FileTypeRead]:
    """Describe every accepted MIME type and its size limit."""

    types = []
    for mime_type in SUPPORTED_MIME_TYPES:
        info = get_file_type_info(mime_type)
        types.append(
            FileTypeRead(
                mime_type=mime_type,
                category=info.category,
                max_size_mb=info.max_size_mb,
                description=info.description,
            )
        )
    return types
