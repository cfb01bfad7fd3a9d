"""Batch review workflow.

A :class:`ReviewSession` owns everything derived while staff review one OCR
batch: logical documents, the analysis selection, the job tracker, the page
cache and the editable pricing rows.  None of it is persisted; closing the
session discards it.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from ocr_estimate.core.grouping import group_files
from ocr_estimate.core.pages import PageSummary, most_common_country, most_common_language, summarize_pages
from ocr_estimate.core.pricing import clear_override, init_row, recompute_totals, update_row
from ocr_estimate.core.schema import AnalysisJob, AnalysisResult, BatchFile, PageRecord
from ocr_estimate.core.settings import default_pricing_config, resolve_pricing_config
from ocr_estimate.core.validation import TransportError, ValidationError
from ocr_estimate.domain import EstimateTotals, LogicalDocument, PricingRow
from ocr_estimate.exporters import ocr_results_csv, pricing_csv
from ocr_estimate.infrastructure import ReviewGateway, get_review_gateway
from ocr_estimate.workers.page_cache import PageTextCache
from ocr_estimate.workers.tracker import DEFAULT_POLL_INTERVAL, AnalysisJobTracker, TrackerState

logger = logging.getLogger(__name__)


class ReviewSession:
    """Coordinates grouping, analysis and pricing for one open batch."""

    def __init__(
        self,
        batch_id: str,
        gateway: ReviewGateway,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.batch_id = batch_id
        self._gateway = gateway
        self.files: list[BatchFile] = []
        self.documents: list[LogicalDocument] = []
        self._documents_by_id: dict[str, LogicalDocument] = {}
        self._selection: set[str] = set()
        self._rows: dict[str, PricingRow] = {}
        self.pricing_config = default_pricing_config()
        self.last_results: list[AnalysisResult] = []
        self.notices: list[str] = []
        self.tracker = AnalysisJobTracker(gateway, poll_interval=poll_interval, on_results=self._apply_results)
        self.pages = PageTextCache(self._load_pages)
        self.closed = False

    # ------------------------------------------------------------------
    # session lifecycle
    # ------------------------------------------------------------------
    async def open(self) -> None:
        """Load batch files, pricing config and any earlier analysis.

        Raises :class:`TransportError` when the batch files cannot be loaded;
        calling ``open`` again retries.
        """

        files = await self._gateway.fetch_batch_files(self.batch_id)
        self._set_files(files)
        self.pricing_config = await resolve_pricing_config(self._gateway.fetch_pricing_config)

        try:
            job, results = await self._gateway.fetch_existing_analysis(self.batch_id)
        except TransportError as exc:
            logger.warning("Could not load earlier analysis for batch %s: %s", self.batch_id, exc)
            return

        if job is not None and job.status == "processing":
            self.tracker.resume(job)
        elif job is not None or results:
            self.tracker.restore(job, results)

    async def reload_files(self) -> list[LogicalDocument]:
        files = await self._gateway.fetch_batch_files(self.batch_id)
        self._set_files(files)
        return self.documents

    def close(self) -> None:
        self.tracker.teardown()
        self._rows.clear()
        self.closed = True
        logger.info("Review session for batch %s closed", self.batch_id)

    def _set_files(self, files: list[BatchFile]) -> None:
        self.files = list(files)
        self.documents = group_files(self.files)
        self._documents_by_id = {document.id: document for document in self.documents}
        self._selection = {doc_id for doc_id in self._selection if self._is_selectable(doc_id)}

    # ------------------------------------------------------------------
    # documents & selection
    # ------------------------------------------------------------------
    def get_document(self, document_id: str) -> LogicalDocument:
        document = self._documents_by_id.get(document_id)
        if document is None:
            raise ValidationError(f"unknown document: {document_id}")
        return document

    def _is_selectable(self, document_id: str) -> bool:
        document = self._documents_by_id.get(document_id)
        return document is not None and document.selectable

    @property
    def selectable_documents(self) -> list[LogicalDocument]:
        return [document for document in self.documents if document.selectable]

    @property
    def selected_ids(self) -> list[str]:
        return [document.id for document in self.documents if document.id in self._selection]

    def select(self, document_id: str) -> bool:
        """Add a document to the selection; documents still in OCR are refused."""

        if not self._is_selectable(document_id):
            return False
        self._selection.add(document_id)
        return True

    def deselect(self, document_id: str) -> None:
        self._selection.discard(document_id)

    def toggle(self, document_id: str) -> bool:
        if document_id in self._selection:
            self._selection.discard(document_id)
            return False
        return self.select(document_id)

    def set_selection(self, document_ids: list[str]) -> list[str]:
        self._selection = {doc_id for doc_id in document_ids if self._is_selectable(doc_id)}
        return self.selected_ids

    def select_all(self) -> list[str]:
        self._selection = {document.id for document in self.selectable_documents}
        return self.selected_ids

    def clear_selection(self) -> None:
        self._selection.clear()

    # ------------------------------------------------------------------
    # analysis
    # ------------------------------------------------------------------
    @property
    def analysis_state(self) -> TrackerState:
        return self.tracker.state

    @property
    def analysis_job(self) -> AnalysisJob | None:
        return self.tracker.job

    async def analyze_selected(self) -> TrackerState:
        try:
            return await self.tracker.submit(self.batch_id, self.selected_ids, self._documents_by_id)
        except TransportError:
            # The previous job was already discarded by the tracker.
            self._rows.clear()
            raise

    def reanalyze(self, reason: str) -> list[str]:
        """Return to the selection stage with the previously analysed documents selected."""

        if not reason or not reason.strip():
            raise ValidationError("a reason is required to re-analyse documents")

        source_ids = [result.source_file_id for result in self.last_results]
        matched = {
            document.id
            for document in self.documents
            if document.selectable and any(document.contains_file(file_id) for file_id in source_ids)
        }

        logger.info("Re-analysing %d document(s) of batch %s: %s", len(matched), self.batch_id, reason.strip())
        self.tracker.teardown()
        self._rows.clear()
        self._selection = matched
        return self.selected_ids

    def _document_for_file(self, file_id: str) -> LogicalDocument | None:
        for document in self.documents:
            if document.contains_file(file_id):
                return document
        return None

    def _apply_results(self, job: AnalysisJob | None, results: list[AnalysisResult]) -> None:
        self.last_results = list(results)
        rows: dict[str, PricingRow] = {}
        notices: list[str] = []
        for result in results:
            document = self._document_for_file(result.source_file_id)
            filename = document.display_filename if document else None
            if result.processing_status == "failed":
                label = filename or result.original_filename or result.source_file_id
                notices.append(f"Analysis failed for {label}: {result.error_message or 'unknown error'}")
                continue
            rows[result.analysis_id] = init_row(result, self.pricing_config, filename=filename)
        self._rows = rows
        self.notices = notices
        if notices:
            logger.info("Batch %s analysis finished with %d failed document(s)", self.batch_id, len(notices))

    # ------------------------------------------------------------------
    # pricing
    # ------------------------------------------------------------------
    @property
    def pricing_rows(self) -> list[PricingRow]:
        if self.tracker.state.is_busy:
            return []
        return list(self._rows.values())

    @property
    def totals(self) -> EstimateTotals:
        return recompute_totals(self.pricing_rows, self.pricing_config.certification_unit_price)

    def _row(self, analysis_id: str) -> PricingRow:
        row = self._rows.get(analysis_id)
        if row is None or self.tracker.state.is_busy:
            raise ValidationError(f"unknown pricing row: {analysis_id}")
        return row

    def update_pricing(self, analysis_id: str, field: str, value: Any) -> PricingRow:
        row = update_row(self._row(analysis_id), field, value, words_per_page=self.pricing_config.words_per_page)
        self._rows[analysis_id] = row
        return row

    def clear_pricing_override(self, analysis_id: str, field: str) -> PricingRow:
        row = clear_override(self._row(analysis_id), field, config=self.pricing_config)
        self._rows[analysis_id] = row
        return row

    def export_pricing(self) -> tuple[str, str]:
        return pricing_csv.export_filename(self.batch_id), pricing_csv.pricing_to_csv(self.pricing_rows, self.totals)

    def handoff(self) -> dict[str, Any]:
        """Payload handed to quote creation when staff apply the estimate."""

        completed = [result for result in self.last_results if result.processing_status == "completed"]
        return {
            "batch_id": self.batch_id,
            "job_id": self.tracker.job.id if self.tracker.job else None,
            "pricing_rows": self.pricing_rows,
            "totals": self.totals,
            "source_language": most_common_language(completed),
            "issuing_country": most_common_country(completed),
        }

    # ------------------------------------------------------------------
    # OCR pages
    # ------------------------------------------------------------------
    async def _load_pages(self, file_id: str) -> list[PageRecord]:
        return await self._gateway.fetch_pages(file_id, include_text=True)

    async def document_pages(self, document_id: str) -> list[PageRecord]:
        document = self.get_document(document_id)
        pages: list[PageRecord] = []
        for file_id in document.member_file_ids:
            pages.extend(await self.pages.get(file_id))
        return pages

    async def document_summary(self, document_id: str) -> PageSummary:
        return summarize_pages(await self.document_pages(document_id))

    async def ocr_handoff(self, document_id: str) -> dict[str, Any]:
        summary = await self.document_summary(document_id)
        return {
            "total_pages": summary.total_pages,
            "total_words": summary.total_words,
            "primary_language": summary.primary_language,
        }

    async def export_ocr_results(self) -> tuple[str, str]:
        pages = {item.id: await self.pages.get(item.id) for item in self.files if item.status == "completed"}
        return ocr_results_csv.export_filename(self.batch_id), ocr_results_csv.ocr_results_to_csv(self.files, pages)


class ReviewService:
    """Registry of open review sessions for the process.

    Concurrent opens of the same batch share one in-flight open, so a batch
    never has more than one live session.
    """

    def __init__(self, *, poll_interval: float = DEFAULT_POLL_INTERVAL) -> None:
        self.poll_interval = poll_interval
        self._sessions: dict[str, ReviewSession] = {}
        self._opening: dict[str, asyncio.Future[ReviewSession]] = {}

    async def open_session(self, batch_id: str, gateway: ReviewGateway | None = None) -> ReviewSession:
        session = self._sessions.get(batch_id)
        if session is not None:
            return session

        pending = self._opening.get(batch_id)
        if pending is None:
            pending = asyncio.ensure_future(self._open(batch_id, gateway or get_review_gateway()))
            self._opening[batch_id] = pending
        return await asyncio.shield(pending)

    async def _open(self, batch_id: str, gateway: ReviewGateway) -> ReviewSession:
        session = ReviewSession(batch_id, gateway, poll_interval=self.poll_interval)
        try:
            await session.open()
        except (Exception, asyncio.CancelledError):
            session.close()
            raise
        finally:
            if self._opening.get(batch_id) is asyncio.current_task():
                del self._opening[batch_id]
        self._sessions[batch_id] = session
        return session

    def get_session(self, batch_id: str) -> ReviewSession | None:
        return self._sessions.get(batch_id)

    def close_session(self, batch_id: str) -> bool:
        pending = self._opening.pop(batch_id, None)
        if pending is not None and not pending.done():
            pending.cancel()
        session = self._sessions.pop(batch_id, None)
        if session is None:
            return pending is not None
        session.close()
        return True

    def reset(self) -> None:
        for batch_id in list(self._sessions) + list(self._opening):
            self.close_session(batch_id)


_service = ReviewService()


def get_review_service() -> ReviewService:
    """Return the singleton review service for the process."""

    return _service


def reset_review_state() -> None:
    """Close every open session (used in tests)."""

    _service.reset()
