"""Validate uploads, run extraction as a batch and persist each outcome."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import Mapping, Sequence
from uuid import uuid4

import structlog

from app.backend.src.core.config import Settings, get_settings
from app.backend.src.core.errors import ExtractionError, UnsupportedFormatError
from app.backend.src.core.storage import ResultStorage
from app.backend.src.schemas.upload import FileProcessingResult, FileProcessingResultCreate

from .batch_processor import (
    BatchJob,
    BatchProcessor,
    BatchProcessorOptions,
    OverallProgress,
    ProgressReporter,
)
from .event_log import EventLog
from .extractors import EXTRACTORS, Extractor
from .file_validator import validate_file
from .metrics import (
    extraction_job_duration_seconds,
    extraction_jobs_total,
    upload_files_total,
    validation_rejections_total,
)
from .text_processor import TextAnalysis, analyze_text, clean_extracted_text

LOGGER = structlog.get_logger(__name__)


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    mime_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class ExtractionOutcome:
    text: str
    source_type: str
    analysis: TextAnalysis


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class UploadPipeline:
    """Controller tying validation, extraction and result storage together.

    A fresh ``BatchProcessor`` is used for every call to :meth:`process`, so
    concurrent requests never share job state.
    """

    def __init__(
        self,
        store: ResultStorage,
        event_log: EventLog,
        settings: Settings | None = None,
        *,
        extractors: Mapping[str, tuple[str, Extractor]] | None = None,
        batch_options: Mapping[str, object] | None = None,
    ) -> None:
        self.store = store
        self.event_log = event_log
        self.settings = settings or get_settings()
        self.extractors = extractors if extractors is not None else EXTRACTORS
        self._batch_overrides = dict(batch_options or {})

    def _source_type(self, mime_type: str) -> str:
        entry = self.extractors.get(mime_type)
        return entry[0] if entry else "unknown"

    async def process(
        self, files: Sequence[UploadedFile], request_id: str | None = None
    ) -> list[FileProcessingResult]:
        """Process an upload request and return one stored result per file, in order."""

        request_id = request_id or str(uuid4())
        self.event_log.start_request(request_id, {"file_count": len(files)})
        self.event_log.log_batch_start(request_id, len(files))

        processor = BatchProcessor(
            BatchProcessorOptions.from_settings(
                self.settings,
                on_progress=partial(self._on_progress, request_id),
                on_job_complete=partial(self._on_job_complete, request_id),
                on_job_error=partial(self._on_job_error, request_id),
                **self._batch_overrides,
            )
        )

        result_ids = [self._admit(processor, request_id, file) for file in files]

        if processor.get_pending_jobs():
            await processor.process_batch(partial(self._extract, request_id))

        statistics = processor.get_batch_statistics()
        rejected = len(files) - statistics.total
        self.event_log.log_batch_complete(
            request_id,
            {
                "total": len(files),
                "completed": statistics.completed,
                "failed": statistics.failed + rejected,
                "duration": statistics.total_processing_time,
            },
        )
        self.event_log.end_request(
            request_id,
            {"completed": statistics.completed, "failed": statistics.failed + rejected},
        )

        results = []
        for result_id in result_ids:
            result = self.store.get(result_id)
            if result is not None:
                results.append(result)
        return results

    def _admit(self, processor: BatchProcessor, request_id: str, file: UploadedFile) -> str:
        upload_files_total.inc()
        self.event_log.log_file_upload(request_id, file.filename, file.size, file.mime_type)

        stored_name = f"{int(time.time() * 1000)}-{file.filename}"
        verdict = validate_file(file.filename, file.mime_type, file.size, file.content)
        self.event_log.log_file_validation(
            request_id, file.filename, verdict.accepted, verdict.reason
        )

        if not verdict.accepted:
            category = verdict.category.value if verdict.category else "unknown"
            validation_rejections_total.labels(category=category).inc()
            LOGGER.info(
                "upload_rejected",
                request_id=request_id,
                filename=file.filename,
                category=category,
            )
            now = _utc_now()
            rejected = self.store.create(
                FileProcessingResultCreate(
                    filename=stored_name,
                    original_name=file.filename,
                    file_size=file.size,
                    mime_type=file.mime_type,
                    status="failed",
                    processing_time=0.0,
                    error_message=verdict.reason or "File validation failed",
                    metadata={
                        "uploaded_at": now,
                        "failed_at": now,
                        "validation_error": verdict.reason,
                    },
                )
            )
            return rejected.id

        queued = self.store.create(
            FileProcessingResultCreate(
                filename=stored_name,
                original_name=file.filename,
                file_size=file.size,
                mime_type=file.mime_type,
                status="processing",
                metadata={
                    "uploaded_at": _utc_now(),
                    "file_signature": verdict.signature_tag,
                },
            )
        )
        processor.add_job(queued.id, file)
        return queued.id

    def _extract(
        self, request_id: str, file: UploadedFile, report_progress: ProgressReporter
    ) -> ExtractionOutcome:
        entry = self.extractors.get(file.mime_type)
        if entry is None:
            raise UnsupportedFormatError("Unsupported file type")
        source_type, extractor = entry

        self.event_log.log_processing_start(request_id, file.filename, source_type)
        report_progress(10)
        raw_text = extractor(file.content)
        report_progress(70)

        text = clean_extracted_text(
            raw_text, source_type, max_length=self.settings.max_text_length
        )
        if not text:
            raise ExtractionError(
                "No text content remained after cleanup.", source_type=source_type
            )
        report_progress(90)

        analysis = analyze_text(text, with_language=True, with_pii=True, with_topics=True)
        return ExtractionOutcome(text=text, source_type=source_type, analysis=analysis)

    # ------------------------------------------------------------------
    # Batch observers
    # ------------------------------------------------------------------
    def _on_progress(self, request_id: str, job: BatchJob, overall: OverallProgress) -> None:
        if job.status.is_terminal:
            self.event_log.log_batch_progress(request_id, overall.completed, overall.total)

    def _on_job_complete(self, request_id: str, job: BatchJob) -> None:
        outcome: ExtractionOutcome = job.result
        file: UploadedFile = job.payload
        duration = job.processing_time_ms or 0.0

        self.store.update(
            job.id,
            status="completed",
            extracted_text=outcome.text,
            word_count=outcome.analysis.word_count,
            character_count=outcome.analysis.character_count,
            processing_time=duration,
            metadata={
                "completed_at": _utc_now(),
                "source_type": outcome.source_type,
                "attempts": job.attempts,
                "analysis": outcome.analysis.to_dict(),
            },
        )
        extraction_jobs_total.labels(status="completed").inc()
        extraction_job_duration_seconds.labels(source_type=outcome.source_type).observe(
            duration / 1000
        )
        self.event_log.log_processing_complete(
            request_id,
            file.filename,
            outcome.source_type,
            outcome.analysis.word_count,
            outcome.analysis.character_count,
            duration,
        )

    def _on_job_error(self, request_id: str, job: BatchJob, error: BaseException) -> None:
        file: UploadedFile = job.payload
        source_type = self._source_type(file.mime_type)
        duration = job.processing_time_ms or 0.0
        message = job.error or "Unknown processing error"

        self.store.update(
            job.id,
            status="failed",
            processing_time=duration,
            error_message=message,
            metadata={
                "failed_at": _utc_now(),
                "error": message,
                "error_type": type(error).__name__,
                "source_type": source_type,
                "attempts": job.attempts,
            },
        )
        extraction_jobs_total.labels(status="failed").inc()
        extraction_job_duration_seconds.labels(source_type=source_type).observe(
            duration / 1000
        )
        self.event_log.log_processing_error(
            request_id, file.filename, source_type, message, duration
        )


__all__ = ["ExtractionOutcome", "UploadPipeline", "UploadedFile"]
