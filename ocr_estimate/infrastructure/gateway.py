"""Collaborator contract for batch review data.

Batch files, page text and analysis jobs live in a remote data store.  This
module defines the contract the review workflow depends on plus an
in-memory implementation used for local runs and tests.  A deployment
installs a remote implementation with ``configure_review_gateway`` during
application start-up.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Protocol

from ocr_estimate.core.pages import dominant_language
from ocr_estimate.core.schema import (
    AnalysisJob,
    AnalysisResult,
    BatchFile,
    PageRecord,
    PricingConfig,
    SubmissionResult,
)
from ocr_estimate.core.settings import default_pricing_config
from ocr_estimate.core.validation import TransportError

from .normalize import normalize_batch_file, normalize_page


class ReviewGateway(Protocol):
    """Contract for the remote store behind a batch review."""

    async def fetch_batch_files(self, batch_id: str) -> list[BatchFile]: ...

    async def fetch_pages(self, file_id: str, include_text: bool = False) -> list[PageRecord]: ...

    async def fetch_existing_analysis(self, batch_id: str) -> tuple[AnalysisJob | None, list[AnalysisResult]]: ...

    async def submit_analysis(self, batch_id: str, file_ids: list[str]) -> SubmissionResult: ...

    async def poll_analysis(self, job_id: str) -> tuple[AnalysisJob, list[AnalysisResult]]: ...

    async def fetch_pricing_config(self) -> PricingConfig: ...


@dataclass(slots=True)
class _StoredJob:
    batch_id: str
    job: AnalysisJob
    results: list[AnalysisResult] = field(default_factory=list)


class InMemoryReviewGateway:
    """Deterministic gateway backed by dictionaries.

    Submissions are analysed from the stored OCR counts.  With ``defer=True``
    a job id is returned instead and the job completes on its first poll.
    """

    def __init__(self, *, defer: bool = False, pricing: PricingConfig | None = None) -> None:
        self._files: dict[str, list[BatchFile]] = {}
        self._pages: dict[str, list[PageRecord]] = {}
        self._jobs: dict[str, _StoredJob] = {}
        self._latest_job: dict[str, str] = {}
        self._job_counter = 0
        self._defer = defer
        self._pricing = pricing

    # ------------------------------------------------------------------
    # seeding
    # ------------------------------------------------------------------
    def add_batch(
        self,
        batch_id: str,
        files: Iterable[BatchFile],
        pages: dict[str, list[PageRecord]] | None = None,
    ) -> None:
        self._files[batch_id] = list(files)
        for file_id, records in (pages or {}).items():
            self._pages[file_id] = list(records)

    def add_analysis(self, batch_id: str, job: AnalysisJob, results: Iterable[AnalysisResult]) -> None:
        self._jobs[job.id] = _StoredJob(batch_id=batch_id, job=job, results=list(results))
        self._latest_job[batch_id] = job.id

    @classmethod
    def from_json(cls, path: Path, **kwargs: Any) -> "InMemoryReviewGateway":
        """Load batches written by ``scripts/make_sample_batch.py``."""

        gateway = cls(**kwargs)
        with path.open("r", encoding="utf-8") as fp:
            payload = json.load(fp)
        for batch_id, batch in (payload.get("batches") or {}).items():
            files = [normalize_batch_file(item) for item in batch.get("files") or []]
            pages = {
                file_id: [normalize_page(item) for item in records]
                for file_id, records in (batch.get("pages") or {}).items()
            }
            gateway.add_batch(batch_id, files, pages)
        return gateway

    # ------------------------------------------------------------------
    # contract
    # ------------------------------------------------------------------
    async def fetch_batch_files(self, batch_id: str) -> list[BatchFile]:
        if batch_id not in self._files:
            raise TransportError(f"batch {batch_id} not found", status_code=404)
        return list(self._files[batch_id])

    async def fetch_pages(self, file_id: str, include_text: bool = False) -> list[PageRecord]:
        pages = self._pages.get(file_id, [])
        if include_text:
            return list(pages)
        return [page.model_copy(update={"raw_text": None}) for page in pages]

    async def fetch_existing_analysis(self, batch_id: str) -> tuple[AnalysisJob | None, list[AnalysisResult]]:
        job_id = self._latest_job.get(batch_id)
        if job_id is None:
            return None, []
        stored = self._jobs[job_id]
        return stored.job, list(stored.results)

    async def submit_analysis(self, batch_id: str, file_ids: list[str]) -> SubmissionResult:
        files = await self.fetch_batch_files(batch_id)
        results = [self._analyse(batch_id, file_id, files) for file_id in file_ids]

        self._job_counter += 1
        job_id = f"job-{self._job_counter:05d}"
        failed = sum(1 for result in results if result.processing_status == "failed")
        now = datetime.now(timezone.utc)

        if self._defer:
            job = AnalysisJob(id=job_id, status="processing", total_files=len(file_ids), started_at=now)
            self.add_analysis(batch_id, job, results)
            return SubmissionResult(mode="async", job_id=job_id, job=job)

        job = AnalysisJob(
            id=job_id,
            status=_status_for(len(results), failed),
            total_files=len(file_ids),
            completed_files=len(results) - failed,
            failed_files=failed,
            total_documents_found=sum(result.document_count for result in results),
            started_at=now,
            completed_at=now,
        )
        self.add_analysis(batch_id, job, results)
        return SubmissionResult(mode="sync", job_id=job_id, job=job, results=results)

    async def poll_analysis(self, job_id: str) -> tuple[AnalysisJob, list[AnalysisResult]]:
        stored = self._jobs.get(job_id)
        if stored is None:
            raise TransportError(f"analysis job {job_id} not found", status_code=404)
        if stored.job.status == "processing":
            failed = sum(1 for result in stored.results if result.processing_status == "failed")
            stored.job = stored.job.model_copy(
                update={
                    "status": _status_for(len(stored.results), failed),
                    "completed_files": len(stored.results) - failed,
                    "failed_files": failed,
                    "total_documents_found": sum(result.document_count for result in stored.results),
                    "completed_at": datetime.now(timezone.utc),
                }
            )
        return stored.job, list(stored.results)

    async def fetch_pricing_config(self) -> PricingConfig:
        return self._pricing or default_pricing_config()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _analyse(self, batch_id: str, file_id: str, files: list[BatchFile]) -> AnalysisResult:
        target = next((item for item in files if item.id == file_id), None)
        if target is None:
            return AnalysisResult(
                analysis_id=f"{batch_id}:{file_id}",
                source_file_id=file_id,
                processing_status="failed",
                error_message="file not found in batch",
            )

        members = [target]
        if target.file_group_id:
            members = [item for item in files if item.file_group_id == target.file_group_id]

        pages = [page for member in members for page in self._pages.get(member.id, [])]
        return AnalysisResult(
            analysis_id=f"{batch_id}:{file_id}",
            source_file_id=file_id,
            original_filename=target.original_filename or target.filename,
            language=dominant_language(pages) or "",
            word_count=sum(member.word_count or 0 for member in members),
            page_count=sum(member.page_count or 0 for member in members),
        )


def _status_for(total: int, failed: int) -> str:
    if failed == 0:
        return "completed"
    if failed == total:
        return "failed"
    return "partial"


_gateway: ReviewGateway = InMemoryReviewGateway()


def configure_review_gateway(gateway: ReviewGateway) -> None:
    """Install the gateway used by new review sessions."""

    global _gateway
    _gateway = gateway


def get_review_gateway() -> ReviewGateway:
    """Return the currently configured gateway."""

    return _gateway
