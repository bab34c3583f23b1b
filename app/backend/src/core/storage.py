"""In-memory storage for file processing results."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Protocol
from uuid import uuid4

from app.backend.src.schemas.upload import FileProcessingResult, FileProcessingResultCreate


class ResultStorage(Protocol):
    """Minimal protocol for result storage backends."""

    def create(self, data: FileProcessingResultCreate) -> FileProcessingResult:
        """Persist a new result and return it with its id."""

    def get(self, result_id: str) -> FileProcessingResult | None:
        """Return a result by id."""

    def list(self) -> list[FileProcessingResult]:
        """Return all results, newest first."""

    def update(self, result_id: str, **changes: Any) -> FileProcessingResult | None:
        """Apply field changes to a stored result."""

    def delete(self, result_id: str) -> bool:
        """Remove a result, returning whether it existed."""

    def clear(self) -> None:
        """Remove every result."""


class InMemoryResultStore:
    """Thread-safe dictionary-backed store; contents are lost on restart."""

    def __init__(self) -> None:
        self._store: dict[str, FileProcessingResult] = {}
        self._lock = threading.Lock()

    def create(self, data: FileProcessingResultCreate) -> FileProcessingResult:
        now = datetime.now(timezone.utc)
        result = FileProcessingResult(
            **data.model_dump(),
            id=str(uuid4()),
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._store[result.id] = result
        return result

    def get(self, result_id: str) -> FileProcessingResult | None:
        with self._lock:
            return self._store.get(result_id)

    def list(self) -> list[FileProcessingResult]:
        with self._lock:
            results = list(self._store.values())
        return sorted(results, key=lambda result: result.created_at, reverse=True)

    def update(self, result_id: str, **changes: Any) -> FileProcessingResult | None:
        with self._lock:
            existing = self._store.get(result_id)
            if existing is None:
                return None
            if "metadata" in changes:
                changes["metadata"] = {**existing.metadata, **changes["metadata"]}
            updated = existing.model_copy(
                update={**changes, "updated_at": datetime.now(timezone.utc)}
            )
            self._store[result_id] = updated
            return updated

    def delete(self, result_id: str) -> bool:
        with self._lock:
            return self._store.pop(result_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


__all__ = ["InMemoryResultStore", "ResultStorage"]
