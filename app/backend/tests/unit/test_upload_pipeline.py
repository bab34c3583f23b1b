"""Unit tests for the upload pipeline tying validation, batching and storage."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[4]))

from app.backend.src.core.config import Settings
from app.backend.src.core.errors import ExtractionError
from app.backend.src.core.storage import InMemoryResultStore
from app.backend.src.services.event_log import EventLog
from app.backend.src.services.upload_pipeline import UploadedFile, UploadPipeline


def _pipeline(extract, *, retry_attempts: int = 0) -> tuple[UploadPipeline, InMemoryResultStore, EventLog]:
    store = InMemoryResultStore()
    event_log = EventLog(level="debug")
    settings = Settings(
        batch_max_concurrency=2,
        batch_retry_attempts=retry_attempts,
        batch_timeout_ms=2_000,
    )
    pipeline = UploadPipeline(
        store,
        event_log,
        settings,
        extractors={"text/plain": ("txt", extract)},
        batch_options={"backoff_base_ms": 1, "backoff_max_ms": 2},
    )
    return pipeline, store, event_log


def _text(name: str, content: str) -> UploadedFile:
    return UploadedFile(filename=name, mime_type="text/plain", content=content.encode())


def test_accepted_and_rejected_files_keep_submission_order() -> None:
    pipeline, store, _ = _pipeline(lambda buffer: buffer.decode())
    files = [
        _text("notes.txt", "The invoice was paid on time."),
        _text("payload.exe", "The invoice was paid on time."),
        _text("more.txt", "Second   document\t\ttext."),
    ]

    results = asyncio.run(pipeline.process(files, request_id="req-1"))

    assert [result.original_name for result in results] == ["notes.txt", "payload.exe", "more.txt"]

    first, rejected, third = results
    assert first.status == "completed"
    assert first.extracted_text == "The invoice was paid on time."
    assert first.word_count == 6
    assert first.character_count == len(first.extracted_text)
    assert first.metadata["source_type"] == "txt"
    assert first.metadata["attempts"] == 1
    assert first.metadata["analysis"]["language"] == "en"
    assert first.metadata["file_signature"] == "TEXT"
    assert first.filename.endswith("-notes.txt")

    assert rejected.status == "failed"
    assert rejected.processing_time == 0.0
    assert rejected.error_message == "File type 'exe' is not allowed for security reasons"
    assert rejected.metadata["validation_error"] == rejected.error_message

    assert third.extracted_text == "Second document text."
    assert len(store.list()) == 3


def test_failed_extraction_is_stored_with_message_and_attempts() -> None:
    calls = 0

    def extract(buffer: bytes) -> str:
        nonlocal calls
        calls += 1
        raise ExtractionError("Document is unreadable", source_type="txt")

    pipeline, store, event_log = _pipeline(extract, retry_attempts=2)

    (result,) = asyncio.run(pipeline.process([_text("bad.txt", "some text here")]))

    assert calls == 3
    assert result.status == "failed"
    assert result.error_message == "Document is unreadable"
    assert result.metadata["attempts"] == 3
    assert result.metadata["error_type"] == "ExtractionError"
    assert result.processing_time is not None
    assert event_log.get_error_logs()[0].message == "Processing failed: bad.txt"


def test_text_that_cleans_to_nothing_fails() -> None:
    pipeline, _, _ = _pipeline(lambda buffer: "  \n\t ")

    (result,) = asyncio.run(pipeline.process([_text("blank.txt", "placeholder text")]))

    assert result.status == "failed"
    assert result.error_message == "No text content remained after cleanup."


def test_only_rejected_files_skip_the_batch() -> None:
    def extract(buffer: bytes) -> str:
        raise AssertionError("extractor must not run")

    pipeline, _, event_log = _pipeline(extract)

    (result,) = asyncio.run(
        pipeline.process([_text("eicar.txt", "harmless looking words")], request_id="req-2")
    )

    assert result.status == "failed"
    assert "security scan" in result.error_message
    messages = [entry.message for entry in event_log.get_request_logs("req-2")]
    assert "Batch processing completed" in messages
    assert "Request completed" in messages


def test_request_is_traced_in_the_event_log() -> None:
    pipeline, _, event_log = _pipeline(lambda buffer: buffer.decode())

    asyncio.run(pipeline.process([_text("a.txt", "alpha beta gamma")], request_id="req-3"))

    entries = event_log.get_request_logs("req-3")
    messages = [entry.message for entry in entries]
    for expected in (
        "Request started",
        "Batch processing started",
        "File uploaded: a.txt",
        "File validation passed: a.txt",
        "Processing started: a.txt",
        "Processing completed: a.txt",
        "Batch processing completed",
        "Request completed",
    ):
        assert expected in messages

    batch_complete = next(e for e in entries if e.message == "Batch processing completed")
    assert batch_complete.metadata["completed"] == 1
    assert batch_complete.metadata["failed"] == 0
