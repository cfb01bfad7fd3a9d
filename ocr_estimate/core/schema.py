from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, field_validator

FileStatus = Literal["pending", "processing", "completed", "failed"]
JobStatus = Literal["processing", "completed", "failed", "partial"]
Complexity = Literal["easy", "medium", "hard"]

TERMINAL_JOB_STATUSES: frozenset[str] = frozenset({"completed", "failed", "partial"})


class BatchFile(BaseModel):
    """One OCR'd upload as recorded by the ingestion pipeline."""

    id: str
    filename: str
    status: FileStatus = "pending"
    page_count: int | None = None
    word_count: int | None = None
    file_size_bytes: int | None = None
    error_message: str | None = None
    file_group_id: str | None = None
    original_filename: str | None = None
    chunk_index: int | None = None


class PageRecord(BaseModel):
    page_number: int
    word_count: int = 0
    confidence_score: float | None = Field(default=None, ge=0.0, le=100.0)
    raw_text: str | None = None
    detected_language: str | None = None
    language_confidence: float | None = None

    @field_validator("detected_language")
    @classmethod
    def _normalise_language(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = value.strip().lower()
        return cleaned or None


class AnalysisJob(BaseModel):
    id: str
    status: JobStatus = "processing"
    total_files: int = 0
    completed_files: int = 0
    failed_files: int | None = None
    total_documents_found: int | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


class SubDocument(BaseModel):
    type: str = ""
    holder_name: str = ""
    page_range: str = ""
    language: str = ""


class ActionableItem(BaseModel):
    kind: Literal["warning", "note", "suggestion"] = "note"
    message: str


class AnalysisResult(BaseModel):
    """AI analysis output for one logical document, in its strict shape."""

    analysis_id: str
    source_file_id: str
    original_filename: str | None = None
    document_type: str = "unknown"
    document_type_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    language: str = ""
    issuing_country: str | None = None
    word_count: int = 0
    page_count: int = 0
    billable_pages: Decimal = Decimal("0")
    complexity: Complexity = "easy"
    complexity_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    document_count: int = Field(default=1, ge=1)
    sub_documents: list[SubDocument] = Field(default_factory=list)
    actionable_items: list[ActionableItem] = Field(default_factory=list)
    processing_status: Literal["completed", "failed"] = "completed"
    error_message: str | None = None


class PricingConfig(BaseModel):
    base_rate: Decimal = Field(default=Decimal("65"), gt=0)
    words_per_page: Decimal = Field(default=Decimal("225"), gt=0)
    certification_unit_price: Decimal = Field(default=Decimal("50"), ge=0)


class SubmissionResult(BaseModel):
    """Answer of the analysis collaborator to a submission.

    ``mode == "sync"`` carries the finished ``results``; ``mode == "async"``
    carries the ``job_id`` to poll.
    """

    mode: Literal["sync", "async"]
    job_id: str | None = None
    job: AnalysisJob | None = None
    results: list[AnalysisResult] = Field(default_factory=list)
