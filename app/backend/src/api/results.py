"""Endpoints for reading and deleting stored processing results."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from app.backend.src.core.storage import ResultStorage
from app.backend.src.schemas.upload import FileProcessingResult

from .deps import get_result_store

router = APIRouter(prefix="/results", tags=["results"])


@router.get("", response_model=list[FileProcessingResult])
def list_results(store: ResultStorage = Depends(get_result_store)) -> list[FileProcessingResult]:
    """Return every stored result, newest first."""

    return store.list()


@router.get("/{result_id}", response_model=FileProcessingResult)
def get_result(
    result_id: str, store: ResultStorage = Depends(get_result_store)
) -> FileProcessingResult:
    result = store.get(result_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Result not found")
    return result


@router.delete("/{result_id}")
def delete_result(
    result_id: str, store: ResultStorage = Depends(get_result_store)
) -> dict[str, str]:
    if not store.delete(result_id):
        raise HTTPException(status_code=404, detail="Result not found")
    return {"message": "Result deleted successfully"}


@router.delete("")
def clear_results(store: ResultStorage = Depends(get_result_store)) -> dict[str, str]:
    store.clear()
    return {"message": "All results cleared successfully"}
