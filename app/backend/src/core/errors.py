"""Exception types shared by the extraction pipeline and the batch processor."""

from __future__ import annotations


class ExtractionError(Exception):
    """Raised when a document's text could not be extracted.

    The message is user-facing and ends up verbatim in the stored result.
    """

    def __init__(
        self,
        message: str,
        source_type: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.source_type = source_type
        self.original_error = original_error


class UnsupportedFormatError(ExtractionError):
    """Raised when no extractor is registered for a MIME type."""


class LowConfidenceError(ExtractionError):
    """Raised when OCR output is too unreliable to be useful."""

    def __init__(self, confidence: float, threshold: float) -> None:
        super().__init__(
            "Image quality too low for accurate text recognition "
            f"(confidence: {confidence:.1f}%). Please upload a higher resolution "
            "image with clearer text.",
            source_type="ocr",
        )
        self.confidence = confidence
        self.threshold = threshold


class ExtractionTimeoutError(ExtractionError):
    """Raised by the batch processor when an attempt exceeds its time budget."""

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"Processing timeout after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class BatchUsageError(Exception):
    """Raised when the batch processor is driven incorrectly."""


class DuplicateJobError(BatchUsageError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job '{job_id}' already exists")
        self.job_id = job_id


class EmptyBatchError(BatchUsageError):
    def __init__(self) -> None:
        super().__init__("No jobs to process")


__all__ = [
    "BatchUsageError",
    "DuplicateJobError",
    "EmptyBatchError",
    "ExtractionError",
    "ExtractionTimeoutError",
    "LowConfidenceError",
    "UnsupportedFormatError",
]
