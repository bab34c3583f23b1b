"""Request dependencies resolving the per-application services."""

from __future__ import annotations

from fastapi import Request

from app.backend.src.core.storage import ResultStorage
from app.backend.src.services.event_log import EventLog
from app.backend.src.services.upload_pipeline import UploadPipeline


def get_result_store(request: Request) -> ResultStorage:
    return request.app.state.result_store


def get_event_log(request: Request) -> EventLog:
    return request.app.state.event_log


def get_upload_pipeline(request: Request) -> UploadPipeline:
    return request.app.state.upload_pipeline
