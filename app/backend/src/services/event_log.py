"""Queryable in-memory log of upload, validation and processing events.

Every entry is also forwarded to structlog, so the in-memory copy is only the
part exposed through ``/api/logs``. One ``EventLog`` is created per
application in ``create_app`` and lives on ``app.state``; ``clear()`` resets it.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, get_args
from uuid import uuid4

import structlog

from app.backend.src.schemas.logs import LogCategory, LogEntry, LogLevel, LogSummary, UploadStats

LOGGER = structlog.get_logger(__name__)

LOG_LEVELS: dict[str, int] = {"debug": 0, "info": 1, "warn": 2, "error": 3}
CATEGORIES: tuple[str, ...] = get_args(LogCategory)

_REQUEST_STARTED = "Request started"
_REQUEST_COMPLETED = "Request completed"
_FILE_UPLOADED = "File uploaded"


class EventLog:
    """Bounded ring of ``LogEntry`` records with simple query helpers."""

    def __init__(self, *, level: LogLevel = "info", max_entries: int = 2000) -> None:
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level '{level}'")
        self.level = level
        self._entries: deque[LogEntry] = deque(maxlen=max_entries)
        self._active_requests: dict[str, tuple[float, dict[str, Any]]] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------
    def _write(
        self,
        level: LogLevel,
        message: str,
        category: LogCategory,
        metadata: dict[str, Any] | None = None,
        request_id: str | None = None,
        duration: float | None = None,
    ) -> None:
        if category not in CATEGORIES:
            raise ValueError(f"Unknown log category '{category}'")
        if LOG_LEVELS[level] < LOG_LEVELS[self.level]:
            return

        entry = LogEntry(
            id=str(uuid4()),
            timestamp=datetime.now(timezone.utc),
            level=level,
            message=message,
            category=category,
            metadata=metadata or {},
            duration=duration,
            request_id=request_id,
        )
        with self._lock:
            self._entries.append(entry)

        log_method = {
            "debug": LOGGER.debug,
            "info": LOGGER.info,
            "warn": LOGGER.warning,
            "error": LOGGER.error,
        }[level]
        log_method(
            message,
            category=category,
            request_id=request_id,
            duration_ms=duration,
            **(metadata or {}),
        )

    def debug(self, message: str, category: LogCategory = "system", metadata: dict[str, Any] | None = None, request_id: str | None = None) -> None:
        self._write("debug", message, category, metadata, request_id)

    def info(self, message: str, category: LogCategory = "system", metadata: dict[str, Any] | None = None, request_id: str | None = None) -> None:
        self._write("info", message, category, metadata, request_id)

    def warn(self, message: str, category: LogCategory = "system", metadata: dict[str, Any] | None = None, request_id: str | None = None) -> None:
        self._write("warn", message, category, metadata, request_id)

    def error(self, message: str, category: LogCategory = "error", metadata: dict[str, Any] | None = None, request_id: str | None = None) -> None:
        self._write("error", message, category, metadata, request_id)

    # ------------------------------------------------------------------
    # Request tracking
    # ------------------------------------------------------------------
    def start_request(self, request_id: str, metadata: dict[str, Any] | None = None) -> None:
        metadata = dict(metadata or {})
        with self._lock:
            self._active_requests[request_id] = (time.perf_counter(), metadata)
        self.info(_REQUEST_STARTED, "upload", metadata, request_id)

    def end_request(self, request_id: str, metadata: dict[str, Any] | None = None) -> None:
        with self._lock:
            active = self._active_requests.pop(request_id, None)
        if active is None:
            self.warn(f"Request {request_id} not found in active requests", "system")
            return

        started, initial = active
        duration = (time.perf_counter() - started) * 1000
        merged = {**initial, **(metadata or {}), "duration": duration}
        self._write("info", _REQUEST_COMPLETED, "upload", merged, request_id, duration)

    # ------------------------------------------------------------------
    # Domain events
    # ------------------------------------------------------------------
    def log_file_upload(self, request_id: str, file_name: str, file_size: int, mime_type: str) -> None:
        self.info(
            f"{_FILE_UPLOADED}: {file_name}",
            "upload",
            {
                "file_name": file_name,
                "file_size": file_size,
                "mime_type": mime_type,
                "file_size_mb": round(file_size / (1024 * 1024), 2),
            },
            request_id,
        )

    def log_file_validation(
        self, request_id: str, file_name: str, is_valid: bool, error: str | None = None
    ) -> None:
        if is_valid:
            self.info(f"File validation passed: {file_name}", "validation", {"file_name": file_name}, request_id)
        else:
            self.warn(
                f"File validation failed: {file_name}",
                "validation",
                {"file_name": file_name, "error": error},
                request_id,
            )

    def log_processing_start(self, request_id: str, file_name: str, processing_type: str) -> None:
        self.info(
            f"Processing started: {file_name}",
            "processing",
            {"file_name": file_name, "processing_type": processing_type},
            request_id,
        )

    def log_processing_complete(
        self,
        request_id: str,
        file_name: str,
        processing_type: str,
        word_count: int,
        character_count: int,
        duration: float,
    ) -> None:
        self.info(
            f"Processing completed: {file_name}",
            "processing",
            {
                "file_name": file_name,
                "processing_type": processing_type,
                "word_count": word_count,
                "character_count": character_count,
                "duration": duration,
            },
            request_id,
        )

    def log_processing_error(
        self, request_id: str, file_name: str, processing_type: str, error: str, duration: float
    ) -> None:
        self.error(
            f"Processing failed: {file_name}",
            "processing",
            {
                "file_name": file_name,
                "processing_type": processing_type,
                "error": error,
                "duration": duration,
            },
            request_id,
        )

    def log_batch_start(self, request_id: str, file_count: int) -> None:
        self.info("Batch processing started", "upload", {"file_count": file_count}, request_id)

    def log_batch_progress(self, request_id: str, completed: int, total: int) -> None:
        percentage = int(completed * 100 / total + 0.5) if total else 0
        self.debug(
            f"Batch progress: {completed}/{total} ({percentage}%)",
            "upload",
            {"completed": completed, "total": total, "percentage": percentage},
            request_id,
        )

    def log_batch_complete(self, request_id: str, stats: dict[str, Any]) -> None:
        self.info("Batch processing completed", "upload", stats, request_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_logs(
        self,
        *,
        level: LogLevel | None = None,
        category: LogCategory | None = None,
        request_id: str | None = None,
        limit: int | None = None,
        since: datetime | None = None,
    ) -> list[LogEntry]:
        """Return matching entries, newest first."""

        with self._lock:
            logs = list(reversed(self._entries))

        if level:
            logs = [log for log in logs if LOG_LEVELS[log.level] >= LOG_LEVELS[level]]
        if category:
            logs = [log for log in logs if log.category == category]
        if request_id:
            logs = [log for log in logs if log.request_id == request_id]
        if since:
            if since.tzinfo is None:
                since = since.replace(tzinfo=timezone.utc)
            logs = [log for log in logs if log.timestamp >= since]

        logs.sort(key=lambda log: log.timestamp, reverse=True)
        if limit:
            logs = logs[:limit]
        return logs

    def get_request_logs(self, request_id: str) -> list[LogEntry]:
        return self.get_logs(request_id=request_id)

    def get_error_logs(self, limit: int = 50) -> list[LogEntry]:
        return self.get_logs(level="error", limit=limit)

    def get_upload_stats(self, since: datetime | None = None) -> UploadStats:
        logs = self.get_logs(category="upload", since=since)
        started = [log for log in logs if log.message == _REQUEST_STARTED]
        completed = [log for log in logs if log.message == _REQUEST_COMPLETED]
        errors = [log for log in logs if log.level == "error"]
        durations = [log.duration for log in completed if log.duration]

        return UploadStats(
            total_uploads=len(started),
            successful_uploads=len(completed),
            failed_uploads=len(errors),
            average_processing_time=sum(durations) / len(durations) if durations else 0.0,
            total_files_processed=sum(1 for log in logs if log.message.startswith(_FILE_UPLOADED)),
            error_rate=len(errors) / len(started) * 100 if started else 0.0,
        )

    def get_log_summary(self) -> LogSummary:
        with self._lock:
            entries = list(self._entries)
            active_requests = len(self._active_requests)

        by_level = {name: 0 for name in LOG_LEVELS}
        by_category: dict[str, int] = {}
        for entry in entries:
            by_level[entry.level] += 1
            by_category[entry.category] = by_category.get(entry.category, 0) + 1

        timestamps = sorted(entry.timestamp for entry in entries)
        return LogSummary(
            total_entries=len(entries),
            by_level=by_level,
            by_category=by_category,
            active_requests=active_requests,
            oldest_entry=timestamps[0] if timestamps else None,
            newest_entry=timestamps[-1] if timestamps else None,
        )

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._active_requests.clear()


__all__ = ["CATEGORIES", "EventLog", "LOG_LEVELS"]
