"""Entrypoint for the FastAPI application."""

import os

from dotenv import load_dotenv

# Load .env locally only; deployments inject env vars directly.
env_path = os.path.join(os.path.dirname(__file__), "../.env")
if os.path.exists(env_path):
    load_dotenv(dotenv_path=os.path.abspath(env_path))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import file_types, health, logs, results, uploads
from .core.config import get_settings
from .core.logging import configure_logging
from .core.storage import InMemoryResultStore
from .services.event_log import LOG_LEVELS, EventLog
from .services.upload_pipeline import UploadPipeline


def _event_log_level(log_level: str) -> str:
    level = log_level.lower()
    if level == "warning":
        return "warn"
    if level == "critical":
        return "error"
    return level if level in LOG_LEVELS else "info"


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title="Document Extraction Service", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    store = InMemoryResultStore()
    event_log = EventLog(
        level=_event_log_level(settings.log_level),
        max_entries=settings.event_log_max_entries,
    )
    app.state.result_store = store
    app.state.event_log = event_log
    app.state.upload_pipeline = UploadPipeline(store, event_log, settings)

    app.include_router(health.router, prefix="/api")
    app.include_router(health.metrics_router, prefix="/api")
    app.include_router(uploads.router, prefix="/api")
    app.include_router(results.router, prefix="/api")
    app.include_router(logs.router, prefix="/api")
    app.include_router(file_types.router, prefix="/api")

    return app


app = create_app()
