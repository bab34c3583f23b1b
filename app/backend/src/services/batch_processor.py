"""Concurrency-bounded batch runner for extraction jobs.

``BatchProcessor`` admits pending jobs in FIFO order into an in-flight set of
at most ``max_concurrency`` asyncio tasks. Each job is retried with capped
exponential backoff and every attempt is raced against a deadline.

Synchronous extraction callables run in worker threads. A thread cannot be
interrupted, so a timed-out threaded attempt is abandoned rather than killed:
it keeps running in the background, and its late progress reports and result
are discarded because every write is checked against the attempt number that
produced it.
"""

from __future__ import annotations

import asyncio
import inspect
import threading
import time
from collections import deque
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable

import structlog

from app.backend.src.core.config import Settings, get_settings
from app.backend.src.core.errors import (
    DuplicateJobError,
    EmptyBatchError,
    ExtractionTimeoutError,
)

LOGGER = structlog.get_logger(__name__)


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class BatchJob:
    """A single file's extraction task.

    Instances returned by the processor's accessors are copies; mutating them
    has no effect on the processor.
    """

    id: str
    payload: Any
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    attempts: int = 0
    started_at: float | None = None
    ended_at: float | None = None
    result: Any = None
    error: str | None = None

    @property
    def processing_time_ms(self) -> float | None:
        if self.started_at is None or self.ended_at is None:
            return None
        return (self.ended_at - self.started_at) * 1000


@dataclass(frozen=True)
class OverallProgress:
    completed: int
    total: int
    percentage: int


@dataclass(frozen=True)
class BatchStatistics:
    total: int
    pending: int
    processing: int
    completed: int
    failed: int
    average_processing_time: float
    total_processing_time: float


class BatchEventType(str, Enum):
    PROGRESS = "progress"
    JOB_COMPLETE = "job_complete"
    JOB_ERROR = "job_error"
    BATCH_COMPLETE = "batch_complete"


@dataclass(frozen=True)
class BatchEvent:
    type: BatchEventType
    job: BatchJob | None = None
    overall: OverallProgress | None = None
    error: BaseException | None = None
    statistics: BatchStatistics | None = None


ProgressReporter = Callable[[float], None]
ExtractFn = Callable[[Any, ProgressReporter], Any]
ProgressCallback = Callable[[BatchJob, OverallProgress], None]
JobCompleteCallback = Callable[[BatchJob], None]
JobErrorCallback = Callable[[BatchJob, BaseException], None]
BatchListener = Callable[[BatchEvent], None]


@dataclass
class BatchProcessorOptions:
    max_concurrency: int = 3
    retry_attempts: int = 2
    timeout_ms: int = 30_000
    backoff_base_ms: int = 1_000
    backoff_max_ms: int = 5_000
    on_progress: ProgressCallback | None = None
    on_job_complete: JobCompleteCallback | None = None
    on_job_error: JobErrorCallback | None = None

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if self.retry_attempts < 0:
            raise ValueError("retry_attempts cannot be negative")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, **overrides: Any
    ) -> "BatchProcessorOptions":
        """Build options from application settings, applying explicit overrides."""

        settings = settings or get_settings()
        values: dict[str, Any] = {
            "max_concurrency": settings.batch_max_concurrency,
            "retry_attempts": settings.batch_retry_attempts,
            "timeout_ms": settings.batch_timeout_ms,
            "backoff_base_ms": settings.batch_backoff_base_ms,
            "backoff_max_ms": settings.batch_backoff_max_ms,
        }
        values.update(overrides)
        return cls(**values)


def _clamp_progress(value: float) -> int:
    return int(round(max(0.0, min(100.0, float(value)))))


def _is_async_callable(fn: Callable[..., Any]) -> bool:
    if inspect.iscoroutinefunction(fn):
        return True
    # Callable instances define the coroutine on __call__.
    call = getattr(fn, "__call__", None)
    return call is not None and inspect.iscoroutinefunction(call)


def _drain_abandoned(task: "asyncio.Future[Any]") -> None:
    # Retrieve the outcome so asyncio does not warn about an unobserved exception.
    if not task.cancelled():
        task.exception()


class BatchProcessor:
    """Run an extraction callable over queued jobs with bounded parallelism."""

    def __init__(
        self,
        options: BatchProcessorOptions | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.options = options or BatchProcessorOptions()
        self._clock = clock
        self._jobs: dict[str, BatchJob] = {}
        self._lock = threading.Lock()
        self._listeners: list[BatchListener] = []
        self._claimed: set[str] = set()
        self._batch_started_at: float | None = None
        self._batch_ended_at: float | None = None

    # ------------------------------------------------------------------
    # Registration and observers
    # ------------------------------------------------------------------
    def add_job(self, job_id: str, payload: Any) -> None:
        """Register a pending job; duplicate ids are rejected."""

        with self._lock:
            if job_id in self._jobs:
                raise DuplicateJobError(job_id)
            self._jobs[job_id] = BatchJob(id=job_id, payload=payload)

    def subscribe(self, listener: BatchListener) -> Callable[[], None]:
        """Register ``listener`` for batch events and return an unsubscribe callable."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    async def process_batch(self, extract: ExtractFn) -> dict[str, BatchJob]:
        """Drive every pending job to a terminal state.

        ``extract(payload, report_progress)`` may be a coroutine function or a
        plain function; plain functions run in a worker thread. Job failures
        never propagate out of this method.
        """

        with self._lock:
            # Queued ids stay pending until their task starts, so another call must skip them.
            queue = deque(
                job.id
                for job in self._jobs.values()
                if job.status is JobStatus.PENDING and job.id not in self._claimed
            )
            self._claimed.update(queue)
        if not queue:
            raise EmptyBatchError()

        self._batch_started_at = self._clock()
        self._batch_ended_at = None
        LOGGER.info(
            "batch_started",
            jobs=len(queue),
            max_concurrency=self.options.max_concurrency,
            retry_attempts=self.options.retry_attempts,
            timeout_ms=self.options.timeout_ms,
        )

        in_flight: set[asyncio.Task[None]] = set()
        try:
            while queue or in_flight:
                while queue and len(in_flight) < self.options.max_concurrency:
                    job_id = queue.popleft()
                    in_flight.add(
                        asyncio.create_task(
                            self._run_job(job_id, extract), name=f"batch-job-{job_id}"
                        )
                    )
                done, in_flight = await asyncio.wait(
                    in_flight, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    task.result()
        except BaseException:
            for task in in_flight:
                task.cancel()
            with self._lock:
                self._claimed.difference_update(queue)
            raise

        self._batch_ended_at = self._clock()
        statistics = self.get_batch_statistics()
        LOGGER.info(
            "batch_completed",
            total=statistics.total,
            completed=statistics.completed,
            failed=statistics.failed,
            duration_ms=round(statistics.total_processing_time, 2),
        )
        self._emit(BatchEvent(BatchEventType.BATCH_COMPLETE, statistics=statistics))
        return {job.id: job for job in self.get_all_jobs()}

    async def _run_job(self, job_id: str, extract: ExtractFn) -> None:
        max_attempts = self.options.retry_attempts + 1
        attempt = 0
        while True:
            attempt += 1
            started = self._start_attempt(job_id, attempt)
            if started is None:
                # Cleared while queued or between attempts.
                return

            try:
                result = await self._attempt(job_id, attempt, started.payload, extract)
            except Exception as exc:
                if attempt >= max_attempts:
                    self._fail(job_id, attempt, exc)
                    return
                delay_ms = self._backoff_ms(attempt)
                LOGGER.warning(
                    "batch_job_retry",
                    job_id=job_id,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    delay_ms=delay_ms,
                    error=str(exc),
                )
                await asyncio.sleep(delay_ms / 1000)
            else:
                self._complete(job_id, attempt, result)
                return

    async def _attempt(
        self, job_id: str, attempt: int, payload: Any, extract: ExtractFn
    ) -> Any:
        reporter = self._progress_reporter(job_id, attempt, asyncio.get_running_loop())
        if _is_async_callable(extract):
            task = asyncio.ensure_future(extract(payload, reporter))
        else:
            task = asyncio.ensure_future(asyncio.to_thread(extract, payload, reporter))

        try:
            done, _ = await asyncio.wait({task}, timeout=self.options.timeout_ms / 1000)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            return task.result()

        task.cancel()
        task.add_done_callback(_drain_abandoned)
        LOGGER.warning(
            "batch_job_attempt_timed_out",
            job_id=job_id,
            attempt=attempt,
            timeout_ms=self.options.timeout_ms,
        )
        raise ExtractionTimeoutError(self.options.timeout_ms)

    def _backoff_ms(self, attempt: int) -> int:
        return min(
            self.options.backoff_base_ms * 2 ** (attempt - 1),
            self.options.backoff_max_ms,
        )

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------
    def _start_attempt(self, job_id: str, attempt: int) -> BatchJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status.is_terminal:
                return None
            job.status = JobStatus.PROCESSING
            job.attempts = attempt
            job.started_at = self._clock()
            job.progress = 0
            snapshot = replace(job)
        self._notify_progress(snapshot)
        return snapshot

    def _progress_reporter(
        self, job_id: str, attempt: int, loop: asyncio.AbstractEventLoop
    ) -> ProgressReporter:
        loop_thread = threading.get_ident()

        def report(value: float) -> None:
            if threading.get_ident() == loop_thread:
                self._apply_progress(job_id, attempt, value)
                return
            try:
                loop.call_soon_threadsafe(self._apply_progress, job_id, attempt, value)
            except RuntimeError:
                # Loop already closed: the attempt was abandoned after its batch ended.
                LOGGER.debug("batch_progress_dropped", job_id=job_id, attempt=attempt)

        return report

    def _current(self, job_id: str, attempt: int) -> BatchJob | None:
        job = self._jobs.get(job_id)
        if job is None or job.attempts != attempt or job.status is not JobStatus.PROCESSING:
            return None
        return job

    def _apply_progress(self, job_id: str, attempt: int, value: float) -> None:
        with self._lock:
            job = self._current(job_id, attempt)
            if job is None:
                return
            job.progress = _clamp_progress(value)
            snapshot = replace(job)
        self._notify_progress(snapshot)

    def _complete(self, job_id: str, attempt: int, result: Any) -> None:
        with self._lock:
            job = self._current(job_id, attempt)
            if job is None:
                return
            job.status = JobStatus.COMPLETED
            job.progress = 100
            job.ended_at = self._clock()
            job.result = result
            snapshot = replace(job)

        LOGGER.info(
            "batch_job_completed",
            job_id=job_id,
            attempts=attempt,
            duration_ms=round(snapshot.processing_time_ms or 0.0, 2),
        )
        self._notify_progress(snapshot)
        self._safe_call(self.options.on_job_complete, snapshot, observer="on_job_complete")
        self._emit(BatchEvent(BatchEventType.JOB_COMPLETE, job=snapshot))

    def _fail(self, job_id: str, attempt: int, exc: BaseException) -> None:
        with self._lock:
            job = self._current(job_id, attempt)
            if job is None:
                return
            job.status = JobStatus.FAILED
            job.ended_at = self._clock()
            job.error = str(exc) or type(exc).__name__
            snapshot = replace(job)

        LOGGER.error(
            "batch_job_failed",
            job_id=job_id,
            attempts=attempt,
            error=snapshot.error,
        )
        self._notify_progress(snapshot)
        self._safe_call(self.options.on_job_error, snapshot, exc, observer="on_job_error")
        self._emit(BatchEvent(BatchEventType.JOB_ERROR, job=snapshot, error=exc))

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    def _overall_progress(self) -> OverallProgress:
        with self._lock:
            total = len(self._jobs)
            completed = sum(
                1 for job in self._jobs.values() if job.status is JobStatus.COMPLETED
            )
        percentage = int(completed * 100 / total + 0.5) if total else 0
        return OverallProgress(completed=completed, total=total, percentage=percentage)

    def _notify_progress(self, job: BatchJob) -> None:
        overall = self._overall_progress()
        self._safe_call(self.options.on_progress, job, overall, observer="on_progress")
        self._emit(BatchEvent(BatchEventType.PROGRESS, job=job, overall=overall))

    def _emit(self, event: BatchEvent) -> None:
        for listener in list(self._listeners):
            self._safe_call(listener, event, observer=f"listener:{event.type.value}")

    @staticmethod
    def _safe_call(callback: Callable[..., Any] | None, *args: Any, observer: str) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as exc:
            LOGGER.error("batch_observer_failed", observer=observer, error=str(exc))

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------
    def get_job_status(self, job_id: str) -> BatchJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return replace(job) if job is not None else None

    def get_all_jobs(self) -> list[BatchJob]:
        with self._lock:
            return [replace(job) for job in self._jobs.values()]

    def _jobs_with_status(self, status: JobStatus) -> list[BatchJob]:
        return [job for job in self.get_all_jobs() if job.status is status]

    def get_completed_jobs(self) -> list[BatchJob]:
        return self._jobs_with_status(JobStatus.COMPLETED)

    def get_failed_jobs(self) -> list[BatchJob]:
        return self._jobs_with_status(JobStatus.FAILED)

    def get_pending_jobs(self) -> list[BatchJob]:
        return self._jobs_with_status(JobStatus.PENDING)

    def get_batch_statistics(self) -> BatchStatistics:
        jobs = self.get_all_jobs()
        durations = [
            job.processing_time_ms
            for job in jobs
            if job.status is JobStatus.COMPLETED and job.processing_time_ms is not None
        ]
        average = sum(durations) / len(durations) if durations else 0.0
        total_time = 0.0
        if self._batch_started_at is not None:
            ended = self._batch_ended_at if self._batch_ended_at is not None else self._clock()
            total_time = (ended - self._batch_started_at) * 1000
        counts = {status: 0 for status in JobStatus}
        for job in jobs:
            counts[job.status] += 1
        return BatchStatistics(
            total=len(jobs),
            pending=counts[JobStatus.PENDING],
            processing=counts[JobStatus.PROCESSING],
            completed=counts[JobStatus.COMPLETED],
            failed=counts[JobStatus.FAILED],
            average_processing_time=average,
            total_processing_time=total_time,
        )

    def clear(self) -> None:
        """Discard all job state so the processor can be reused."""

        with self._lock:
            self._jobs.clear()
            self._claimed.clear()
            self._batch_started_at = None
            self._batch_ended_at = None


__all__ = [
    "BatchEvent",
    "BatchEventType",
    "BatchJob",
    "BatchProcessor",
    "BatchProcessorOptions",
    "BatchStatistics",
    "ExtractFn",
    "JobStatus",
    "OverallProgress",
    "ProgressReporter",
]
