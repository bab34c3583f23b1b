"""Liveness, readiness and metrics endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.backend.src.core.storage import ResultStorage
from app.backend.src.services.event_log import EventLog

from .deps import get_event_log, get_result_store

router = APIRouter(prefix="/health", tags=["health"])
metrics_router = APIRouter(tags=["health"])


@router.get("/live")
def liveness() -> dict[str, str]:
    return {"status": "live"}


@router.get("/ready")
def readiness(
    store: ResultStorage = Depends(get_result_store),
    event_log: EventLog = Depends(get_event_log),
) -> dict[str, Any]:
    """Report readiness once the result store and event log both answer."""

    summary = event_log.get_log_summary()
    return {
        "status": "ready",
        "stored_results": len(store.list()),
        "log_entries": summary.total_entries,
        "active_requests": summary.active_requests,
    }


@metrics_router.get("/metrics")
def metrics() -> Response:
    """Expose Prometheus metrics."""

    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
