"""Endpoints exposing the in-memory event log."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from app.backend.src.schemas.logs import LogCategory, LogEntry, LogLevel, LogStatsResponse
from app.backend.src.services.event_log import EventLog

from .deps import get_event_log

router = APIRouter(prefix="/logs", tags=["logs"])


@router.get("", response_model=list[LogEntry])
def list_logs(
    level: LogLevel | None = None,
    category: LogCategory | None = None,
    request_id: str | None = None,
    limit: int = Query(default=100, ge=1, le=2000),
    since: datetime | None = None,
    event_log: EventLog = Depends(get_event_log),
) -> list[LogEntry]:
    """Return log entries matching the filters, newest first."""

    return event_log.get_logs(
        level=level,
        category=category,
        request_id=request_id,
        limit=limit,
        since=since,
    )


@router.get("/stats", response_model=LogStatsResponse)
def log_stats(
    since: datetime | None = None,
    event_log: EventLog = Depends(get_event_log),
) -> LogStatsResponse:
    return LogStatsResponse(
        stats=event_log.get_upload_stats(since),
        summary=event_log.get_log_summary(),
    )


@router.get("/errors", response_model=list[LogEntry])
def list_error_logs(
    limit: int = Query(default=50, ge=1, le=2000),
    event_log: EventLog = Depends(get_event_log),
) -> list[LogEntry]:
    return event_log.get_error_logs(limit)


@router.get("/requests/{request_id}", response_model=list[LogEntry])
def list_request_logs(
    request_id: str, event_log: EventLog = Depends(get_event_log)
) -> list[LogEntry]:
    """Return every entry recorded for one upload request, newest first."""

    return event_log.get_request_logs(request_id)


@router.delete("")
def clear_logs(event_log: EventLog = Depends(get_event_log)) -> dict[str, str]:
    event_log.clear()
    return {"message": "Logs cleared successfully"}
