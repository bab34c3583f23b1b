"""Prometheus metric definitions for upload validation and extraction."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

upload_files_total = Counter(
    "upload_files_total",
    "Total files received by the upload endpoint.",
)

validation_rejections_total = Counter(
    "validation_rejections_total",
    "Uploads rejected before processing, by rejection category.",
    labelnames=["category"],
)

extraction_jobs_total = Counter(
    "extraction_jobs_total",
    "Total extraction jobs by terminal status.",
    labelnames=["status"],
)

extraction_job_duration_seconds = Histogram(
    "extraction_job_duration_seconds",
    "Duration of the final attempt of an extraction job in seconds.",
    labelnames=["source_type"],
)

__all__ = [
    "extraction_job_duration_seconds",
    "extraction_jobs_total",
    "upload_files_total",
    "validation_rejections_total",
]
