"""Public API routers exposed by the FastAPI application."""

from . import (
    file_types,
    health,
    logs,
    results,
    uploads,
)

__all__ = [
    "file_types",
    "health",
    "logs",
    "results",
    "uploads",
]
