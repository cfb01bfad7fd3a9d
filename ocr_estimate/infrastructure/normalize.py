"""Normalise collaborator payloads into the strict review schema.

The OCR and analysis services have shipped several payload revisions, so the
same value can arrive under camelCase, snake_case or legacy column names.
Everything is resolved here; nothing downstream sees the raw dictionaries.
"""
from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from ocr_estimate.core.schema import (
    ActionableItem,
    AnalysisJob,
    AnalysisResult,
    BatchFile,
    PageRecord,
    PricingConfig,
    SubDocument,
    SubmissionResult,
)

_FILE_STATUSES = {
    "pending": "pending",
    "queued": "pending",
    "processing": "processing",
    "running": "processing",
    "completed": "completed",
    "complete": "completed",
    "success": "completed",
    "failed": "failed",
    "error": "failed",
}

_JOB_STATUSES = {
    "pending": "processing",
    "queued": "processing",
    "running": "processing",
    "processing": "processing",
    "completed": "completed",
    "complete": "completed",
    "success": "completed",
    "partial": "partial",
    "partial_success": "partial",
    "completed_with_errors": "partial",
    "failed": "failed",
    "error": "failed",
}

_COMPLEXITIES = {
    "easy": "easy",
    "low": "easy",
    "simple": "easy",
    "medium": "medium",
    "moderate": "medium",
    "hard": "hard",
    "high": "hard",
    "complex": "hard",
}


def _pick(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _safe_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _safe_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _safe_decimal(value: Any, default: str = "0") -> Decimal:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return Decimal(default)
    if not result.is_finite():
        return Decimal(default)
    return result


def _fraction(value: Any) -> float:
    """Model confidences are 0-1; some revisions report percentages."""

    number = _safe_float(value)
    if number is None or number < 0:
        return 0.0
    if number > 1:
        number = number / 100.0
    return min(number, 1.0)


def _percent(value: Any) -> float | None:
    """Page confidences arrive as 0-1 fractions or 0-100 percentages."""

    number = _safe_float(value)
    if number is None or not math.isfinite(number) or number < 0:
        return None
    if number <= 1:
        number = number * 100.0
    return min(number, 100.0)


def _list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    text = _text(value)
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None


def normalize_batch_file(raw: Mapping[str, Any]) -> BatchFile:
    status = str(_pick(raw, "status") or "pending").lower()
    return BatchFile(
        id=str(_pick(raw, "id", "fileId", "file_id")),
        filename=str(_pick(raw, "filename", "fileName", "name") or ""),
        status=_FILE_STATUSES.get(status, "pending"),
        page_count=_safe_int(_pick(raw, "pageCount", "page_count")),
        word_count=_safe_int(_pick(raw, "wordCount", "word_count")),
        file_size_bytes=_safe_int(_pick(raw, "fileSizeBytes", "file_size_bytes", "file_size")),
        error_message=_text(_pick(raw, "errorMessage", "error_message")),
        file_group_id=_text(_pick(raw, "fileGroupId", "file_group_id")),
        original_filename=_text(_pick(raw, "originalFilename", "original_filename")),
        chunk_index=_safe_int(_pick(raw, "chunkIndex", "chunk_index")),
    )


def normalize_page(raw: Mapping[str, Any]) -> PageRecord:
    return PageRecord(
        page_number=_safe_int(_pick(raw, "pageNumber", "page_number")) or 0,
        word_count=_safe_int(_pick(raw, "wordCount", "word_count")) or 0,
        confidence_score=_percent(_pick(raw, "confidenceScore", "confidence_score", "confidence")),
        raw_text=_pick(raw, "rawText", "raw_text", "text"),
        detected_language=_text(_pick(raw, "detectedLanguage", "detected_language", "language")),
        language_confidence=_safe_float(_pick(raw, "languageConfidence", "language_confidence")),
    )


def normalize_job(raw: Mapping[str, Any]) -> AnalysisJob:
    status = str(_pick(raw, "status") or "processing").lower()
    return AnalysisJob(
        id=str(_pick(raw, "id", "jobId", "job_id")),
        status=_JOB_STATUSES.get(status, "processing"),
        total_files=_safe_int(_pick(raw, "totalFiles", "total_files")) or 0,
        completed_files=_safe_int(_pick(raw, "completedFiles", "completed_files")) or 0,
        failed_files=_safe_int(_pick(raw, "failedFiles", "failed_files")),
        total_documents_found=_safe_int(_pick(raw, "totalDocumentsFound", "total_documents_found")),
        started_at=_timestamp(_pick(raw, "startedAt", "started_at", "created_at")),
        completed_at=_timestamp(_pick(raw, "completedAt", "completed_at")),
    )


def _normalize_sub_document(raw: Mapping[str, Any]) -> SubDocument:
    return SubDocument(
        type=str(_pick(raw, "type", "documentType", "document_type") or ""),
        holder_name=str(_pick(raw, "holderName", "holder_name") or ""),
        page_range=str(_pick(raw, "pageRange", "page_range") or ""),
        language=str(_pick(raw, "language") or ""),
    )


def _normalize_actionable_item(raw: Any) -> ActionableItem | None:
    if isinstance(raw, str):
        return ActionableItem(kind="note", message=raw) if raw.strip() else None
    if not isinstance(raw, Mapping):
        return None
    message = _text(_pick(raw, "message", "text"))
    if not message:
        return None
    kind = str(_pick(raw, "kind", "type") or "note").lower()
    if kind not in {"warning", "note", "suggestion"}:
        kind = "note"
    return ActionableItem(kind=kind, message=message)


def normalize_result(raw: Mapping[str, Any]) -> AnalysisResult:
    complexity = str(_pick(raw, "complexity", "assessedComplexity", "assessed_complexity") or "easy").lower()
    status = str(_pick(raw, "processingStatus", "processing_status") or "completed").lower()

    sub_documents = [
        _normalize_sub_document(item)
        for item in _list(_pick(raw, "subDocuments", "sub_documents"))
        if isinstance(item, Mapping)
    ]
    actionable = [
        item
        for item in (_normalize_actionable_item(entry) for entry in _list(_pick(raw, "actionableItems", "actionable_items")))
        if item is not None
    ]

    original = _pick(raw, "originalFilename", "original_filename")
    if original is None and isinstance(raw.get("quote_files"), Mapping):
        original = raw["quote_files"].get("original_filename")

    return AnalysisResult(
        analysis_id=str(_pick(raw, "analysisId", "analysis_id", "id")),
        source_file_id=str(_pick(raw, "sourceFileId", "source_file_id", "fileId", "file_id", "quote_file_id")),
        original_filename=_text(original),
        document_type=str(_pick(raw, "documentType", "document_type", "detected_document_type") or "unknown"),
        document_type_confidence=_fraction(_pick(raw, "documentTypeConfidence", "document_type_confidence")),
        language=str(_pick(raw, "language", "detectedLanguage", "detected_language") or "").lower(),
        issuing_country=_text(_pick(raw, "issuingCountry", "issuing_country", "country_of_issue")),
        word_count=_safe_int(_pick(raw, "wordCount", "word_count")) or 0,
        page_count=_safe_int(_pick(raw, "pageCount", "page_count")) or 0,
        billable_pages=_safe_decimal(_pick(raw, "billablePages", "billable_pages")),
        complexity=_COMPLEXITIES.get(complexity, "easy"),
        complexity_confidence=_fraction(_pick(raw, "complexityConfidence", "complexity_confidence")),
        document_count=max(_safe_int(_pick(raw, "documentCount", "document_count")) or 1, 1),
        sub_documents=sub_documents,
        actionable_items=actionable,
        processing_status="failed" if status in {"failed", "error"} else "completed",
        error_message=_text(_pick(raw, "errorMessage", "error_message")),
    )


def normalize_pricing_config(raw: Mapping[str, Any]) -> PricingConfig:
    return PricingConfig(
        base_rate=_safe_decimal(_pick(raw, "baseRate", "base_rate"), "65"),
        words_per_page=_safe_decimal(_pick(raw, "wordsPerPage", "words_per_page"), "225"),
        certification_unit_price=_safe_decimal(
            _pick(raw, "certificationUnitPrice", "certification_unit_price", "certification_price"), "50"
        ),
    )


def normalize_submission(raw: Mapping[str, Any]) -> SubmissionResult:
    mode = str(_pick(raw, "mode") or "").lower()
    job_id = _pick(raw, "jobId", "job_id")
    raw_results = _pick(raw, "results")

    if mode not in {"sync", "async"}:
        # Older revisions omit ``mode``: inline results imply a synchronous run.
        mode = "sync" if raw_results is not None and job_id is None else "async"

    job_payload = _pick(raw, "job")
    job = normalize_job(job_payload) if isinstance(job_payload, Mapping) else None
    if job_id is None and job is not None:
        job_id = job.id

    return SubmissionResult(
        mode=mode,
        job_id=str(job_id) if job_id is not None else None,
        job=job,
        results=[normalize_result(item) for item in _list(raw_results) if isinstance(item, Mapping)],
    )
