"""Lifecycle of an asynchronous AI analysis job.

States::

    idle -> submitting -> processing -> completed | failed | partial
    idle -> submitting -> completed | partial          (inline execution)

Any state returns to ``idle`` on ``teardown``.  While processing, the job is
polled on a fixed interval by a single asyncio task; any poll failure is
logged and retried on the next tick.  Every submission bumps a generation
counter, and responses belonging to an older generation are dropped, so a
torn-down tracker never applies late results.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Mapping, Sequence


from ocr_estimate.core.schema import AnalysisJob, AnalysisResult
from ocr_estimate.core.validation import TransportError, ValidationError
from ocr_estimate.domain import LogicalDocument
from ocr_estimate.infrastructure import ReviewGateway

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 10.0

ResultsCallback = Callable[[AnalysisJob | None, list[AnalysisResult]], None]


class TrackerState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"

    @property
    def is_terminal(self) -> bool:
        return self in {TrackerState.COMPLETED, TrackerState.FAILED, TrackerState.PARTIAL}

    @property
    def is_busy(self) -> bool:
        return self in {TrackerState.SUBMITTING, TrackerState.PROCESSING}


def status_from_results(results: Sequence[AnalysisResult]) -> TrackerState:
    """Terminal state of an inline run, judged from its per-document results."""

    failed = sum(1 for result in results if result.processing_status == "failed")
    if not results or failed == 0:
        return TrackerState.COMPLETED
    if failed == len(results):
        return TrackerState.FAILED
    return TrackerState.PARTIAL


class AnalysisJobTracker:
    def __init__(
        self,
        gateway: ReviewGateway,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        on_results: ResultsCallback | None = None,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self._gateway = gateway
        self._poll_interval = poll_interval
        self._on_results = on_results
        self._generation = 0
        self._task: asyncio.Task[None] | None = None
        self.state = TrackerState.IDLE
        self.job: AnalysisJob | None = None
        self.results: list[AnalysisResult] = []

    @property
    def polling(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------
    async def submit(
        self,
        batch_id: str,
        selected_ids: Sequence[str],
        documents: Mapping[str, LogicalDocument],
    ) -> TrackerState:
        if self.state.is_busy:
            raise ValidationError("an analysis is already running for this batch")
        ids = list(dict.fromkeys(selected_ids))
        if not ids:
            raise ValidationError("select at least one document to analyse")
        for document_id in ids:
            document = documents.get(document_id)
            if document is None:
                raise ValidationError(f"unknown document: {document_id}")
            if not document.selectable:
                raise ValidationError(f"document {document_id} has not finished OCR")

        generation = self._reset(TrackerState.SUBMITTING)
        logger.info("Submitting %d document(s) of batch %s for analysis", len(ids), batch_id)
        try:
            submission = await self._gateway.submit_analysis(batch_id, ids)
        except TransportError:
            if generation == self._generation:
                self.state = TrackerState.IDLE
            raise

        if generation != self._generation:
            logger.debug("Discarding submission response for batch %s after teardown", batch_id)
            return self.state

        if submission.mode == "sync":
            self._finish(submission.job, submission.results, status_from_results(submission.results))
            return self.state

        if not submission.job_id:
            self.state = TrackerState.IDLE
            raise TransportError("analysis service accepted the job without a job id")

        job = submission.job or AnalysisJob(id=submission.job_id, status="processing", total_files=len(ids))
        self._start_polling(job, generation)
        return self.state

    def resume(self, job: AnalysisJob) -> None:
        """Continue tracking a job that was already running when the session opened."""

        generation = self._reset(TrackerState.SUBMITTING)
        self._start_polling(job, generation)

    def restore(self, job: AnalysisJob | None, results: list[AnalysisResult]) -> None:
        """Adopt a finished job found in the store."""

        self._reset(TrackerState.IDLE)
        if job is not None and job.is_terminal:
            self._finish(job, results, TrackerState(job.status))
        elif job is None and results:
            self._finish(None, results, status_from_results(results))

    def teardown(self) -> None:
        """Cancel polling and forget the current job.  Safe to call repeatedly."""

        if self.polling:
            logger.info("Analysis polling cancelled")
        self._reset(TrackerState.IDLE)

    async def wait(self) -> TrackerState:
        """Wait for the polling task, if any, to finish."""

        task = self._task
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        return self.state

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------
    def _reset(self, state: TrackerState) -> int:
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self.state = state
        self.job = None
        self.results = []
        return self._generation

    def _start_polling(self, job: AnalysisJob, generation: int) -> None:
        self.job = job
        self.state = TrackerState.PROCESSING
        self._task = asyncio.create_task(self._poll(job.id, generation))
        logger.info("Analysis job %s accepted, polling every %ss", job.id, self._poll_interval)

    async def _poll(self, job_id: str, generation: int) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            try:
                job, results = await self._gateway.poll_analysis(job_id)
            except Exception as exc:
                # Only cancellation ends the loop; everything else is retried on the next tick.
                logger.warning("Polling analysis job %s failed, retrying: %s", job_id, exc)
                continue

            if generation != self._generation:
                logger.debug("Discarding late poll response for job %s", job_id)
                return
            if job.is_terminal:
                self._task = None
                self._finish(job, results, TrackerState(job.status))
                return
            self.job = job

    def _finish(self, job: AnalysisJob | None, results: list[AnalysisResult], state: TrackerState) -> None:
        self.job = job
        self.results = list(results)
        self.state = state
        logger.info("Analysis %s finished as %s with %d result(s)", job.id if job else "-", state.value, len(results))
        if self._on_results is not None:
            self._on_results(job, self.results)
