from __future__ import annotations

import asyncio
import json
from decimal import Decimal
from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1]))

import httpx
import pytest

from ocr_estimate.core.settings import resolve_pricing_config
from ocr_estimate.core.validation import ConfigUnavailable, TransportError
from ocr_estimate.infrastructure import HttpReviewGateway

API_BASE = "https://data.example.test/api"


def _gateway(handler) -> tuple[HttpReviewGateway, httpx.AsyncClient]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpReviewGateway(API_BASE, token="secret-token", http_client=http_client), http_client


def _run(gateway: HttpReviewGateway, http_client: httpx.AsyncClient, call):
    async def scenario():
        try:
            return await call(gateway)
        finally:
            await gateway.aclose()
            await http_client.aclose()

    return asyncio.run(scenario())


def test_fetch_batch_files_normalises_payload_revisions():
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("Authorization")
        return httpx.Response(
            200,
            json={
                "success": True,
                "files": [
                    {"id": "f1", "filename": "a.pdf", "status": "success", "pageCount": "3", "wordCount": 610},
                    {
                        "file_id": "f2",
                        "fileName": "b_part1.pdf",
                        "status": "running",
                        "file_group_id": "g1",
                        "chunk_index": 0,
                        "original_filename": "b.pdf",
                    },
                ],
            },
        )

    gateway, http_client = _gateway(handler)
    files = _run(gateway, http_client, lambda gw: gw.fetch_batch_files("batch-7"))

    assert captured["url"] == f"{API_BASE}/batches/batch-7/files"
    assert captured["auth"] == "Bearer secret-token"
    assert files[0].status == "completed"
    assert files[0].page_count == 3
    assert files[0].word_count == 610
    assert files[1].id == "f2"
    assert files[1].status == "processing"
    assert files[1].file_group_id == "g1"
    assert files[1].original_filename == "b.pdf"


def test_fetch_pages_passes_include_text_flag():
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["params"] = dict(request.url.params)
        return httpx.Response(
            200,
            json={
                "pages": [
                    {"page_number": 1, "word_count": 120, "confidence_score": 0.87, "detected_language": "ES"},
                    {"pageNumber": 2, "wordCount": 80, "confidenceScore": 92, "rawText": "texto"},
                ]
            },
        )

    gateway, http_client = _gateway(handler)
    pages = _run(gateway, http_client, lambda gw: gw.fetch_pages("f1", include_text=True))

    assert captured["params"] == {"includeText": "true"}
    assert pages[0].confidence_score == pytest.approx(87.0)
    assert pages[0].detected_language == "es"
    assert pages[1].confidence_score == pytest.approx(92.0)
    assert pages[1].raw_text == "texto"


def test_submit_analysis_sync_and_async_shapes():
    responses = iter(
        [
            {
                "mode": "sync",
                "results": [
                    {
                        "id": "an-1",
                        "quote_file_id": "f1",
                        "detected_document_type": "marriage_certificate",
                        "document_type_confidence": 93,
                        "assessed_complexity": "High",
                        "word_count": "700",
                        "billable_pages": "3.6",
                        "documentCount": 0,
                        "actionable_items": ["Check the seal", {"type": "warning", "text": "Blurred stamp"}],
                    }
                ],
            },
            {"jobId": "job-42", "job": {"id": "job-42", "status": "queued", "total_files": 2}},
        ]
    )
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content.decode("utf-8")))
        return httpx.Response(200, json=next(responses))

    gateway, http_client = _gateway(handler)

    async def call(gw: HttpReviewGateway):
        return await gw.submit_analysis("b1", ["f1"]), await gw.submit_analysis("b1", ["f1", "f2"])

    sync, deferred = _run(gateway, http_client, call)

    assert bodies == [{"fileIds": ["f1"]}, {"fileIds": ["f1", "f2"]}]
    assert sync.mode == "sync"
    result = sync.results[0]
    assert result.analysis_id == "an-1"
    assert result.source_file_id == "f1"
    assert result.document_type == "marriage_certificate"
    assert result.document_type_confidence == pytest.approx(0.93)
    assert result.complexity == "hard"
    assert result.word_count == 700
    assert result.billable_pages == Decimal("3.6")
    assert result.document_count == 1
    assert [item.kind for item in result.actionable_items] == ["note", "warning"]

    assert deferred.mode == "async"
    assert deferred.job_id == "job-42"
    assert deferred.job.status == "processing"


def test_poll_analysis_maps_partial_status():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/analysis-jobs/job-42"
        return httpx.Response(
            200,
            json={
                "job": {"id": "job-42", "status": "completed_with_errors", "totalFiles": 2, "completedFiles": 1},
                "results": [
                    {"analysisId": "an-1", "sourceFileId": "f1", "wordCount": 10},
                    {"analysisId": "an-2", "sourceFileId": "f2", "processingStatus": "error", "errorMessage": "timeout"},
                ],
            },
        )

    gateway, http_client = _gateway(handler)
    job, results = _run(gateway, http_client, lambda gw: gw.poll_analysis("job-42"))

    assert job.status == "partial"
    assert job.is_terminal
    assert [result.processing_status for result in results] == ["completed", "failed"]
    assert results[1].error_message == "timeout"


def test_poll_analysis_tolerates_malformed_nested_lists():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "job": {"id": "job-7", "status": "completed", "totalFiles": 1, "completedFiles": 1},
                "results": [{"analysisId": "an-1", "sourceFileId": "f1", "subDocuments": 3, "actionableItems": "x"}],
            },
        )

    gateway, http_client = _gateway(handler)
    job, results = _run(gateway, http_client, lambda gw: gw.poll_analysis("job-7"))

    assert job.is_terminal
    assert results[0].sub_documents == []
    assert results[0].actionable_items == []


def test_poll_analysis_with_non_list_results_yields_no_results():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"job": {"id": "job-8", "status": "completed"}, "results": {"oops": 1}})

    gateway, http_client = _gateway(handler)
    job, results = _run(gateway, http_client, lambda gw: gw.poll_analysis("job-8"))

    assert job.status == "completed"
    assert results == []

def test_errors_become_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/files"):
            return httpx.Response(404, json={"error": "not found"})
        if request.url.path.endswith("/analysis"):
            return httpx.Response(200, json={"success": False, "error": "batch locked"})
        raise httpx.ConnectError("connection refused", request=request)

    gateway, http_client = _gateway(handler)

    async def call(gw: HttpReviewGateway):
        with pytest.raises(TransportError) as missing:
            await gw.fetch_batch_files("nope")
        assert missing.value.status_code == 404
        with pytest.raises(TransportError, match="batch locked"):
            await gw.fetch_existing_analysis("b1")
        with pytest.raises(TransportError):
            await gw.poll_analysis("job-1")
        with pytest.raises(ConfigUnavailable):
            await gw.fetch_pricing_config()
        return await resolve_pricing_config(gw.fetch_pricing_config)

    config = _run(gateway, http_client, call)

    assert config.base_rate == Decimal("65")
    assert config.certification_unit_price == Decimal("50")


def test_pricing_config_from_service():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"config": {"baseRate": 72.5, "wordsPerPage": 250, "certificationUnitPrice": 40}})

    gateway, http_client = _gateway(handler)
    config = _run(gateway, http_client, lambda gw: resolve_pricing_config(gw.fetch_pricing_config))

    assert config.base_rate == Decimal("72.5")
    assert config.words_per_page == Decimal("250")
    assert config.certification_unit_price == Decimal("40")


def test_api_base_must_be_absolute():
    with pytest.raises(ValueError):
        HttpReviewGateway("localhost:8000")
