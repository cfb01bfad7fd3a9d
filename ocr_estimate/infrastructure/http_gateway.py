"""HTTP implementation of the review gateway."""
from __future__ import annotations

import logging
from typing import Any, Mapping
from urllib.parse import urlparse

import httpx
from pydantic import ValidationError as SchemaError

from ocr_estimate.core.schema import AnalysisJob, AnalysisResult, BatchFile, PageRecord, PricingConfig, SubmissionResult
from ocr_estimate.core.validation import ConfigUnavailable, TransportError

from .normalize import (
    normalize_batch_file,
    normalize_job,
    normalize_page,
    normalize_pricing_config,
    normalize_result,
    normalize_submission,
)

logger = logging.getLogger(__name__)


class HttpReviewGateway:
    """Client for the batch review endpoints of the data service."""

    def __init__(
        self,
        api_base: str,
        *,
        token: str | None = None,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        parsed = urlparse(api_base)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("api_base must include scheme and host")

        self._base_url = api_base.rstrip("/")
        self._headers = {"Accept": "application/json"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    async def _request(self, method: str, path: str, **kwargs: Any) -> Mapping[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            response = await self._client.request(method, url, headers=self._headers, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            raise TransportError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportError(f"{method} {path} returned invalid JSON") from exc

        if not isinstance(payload, Mapping):
            raise TransportError(f"{method} {path} returned an unexpected payload")
        if payload.get("success") is False:
            raise TransportError(str(payload.get("error") or f"{method} {path} was rejected"))
        return payload

    @staticmethod
    def _items(payload: Mapping[str, Any], *keys: str) -> list[Mapping[str, Any]]:
        for key in keys:
            value = payload.get(key)
            if isinstance(value, list):
                return [item for item in value if isinstance(item, Mapping)]
        return []

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def fetch_batch_files(self, batch_id: str) -> list[BatchFile]:
        payload = await self._request("GET", f"/batches/{batch_id}/files")
        return [normalize_batch_file(item) for item in self._items(payload, "files", "items")]

    async def fetch_pages(self, file_id: str, include_text: bool = False) -> list[PageRecord]:
        params = {"includeText": "true" if include_text else "false"}
        payload = await self._request("GET", f"/files/{file_id}/pages", params=params)
        return [normalize_page(item) for item in self._items(payload, "pages", "items")]

    async def fetch_existing_analysis(self, batch_id: str) -> tuple[AnalysisJob | None, list[AnalysisResult]]:
        payload = await self._request("GET", f"/batches/{batch_id}/analysis")
        job_payload = payload.get("job")
        job = normalize_job(job_payload) if isinstance(job_payload, Mapping) else None
        results = [normalize_result(item) for item in self._items(payload, "results")]
        return job, results

    async def submit_analysis(self, batch_id: str, file_ids: list[str]) -> SubmissionResult:
        payload = await self._request("POST", f"/batches/{batch_id}/analysis", json={"fileIds": list(file_ids)})
        return normalize_submission(payload)

    async def poll_analysis(self, job_id: str) -> tuple[AnalysisJob, list[AnalysisResult]]:
        payload = await self._request("GET", f"/analysis-jobs/{job_id}")
        job_payload = payload.get("job")
        if not isinstance(job_payload, Mapping):
            raise TransportError(f"analysis job {job_id} missing from response")
        results = [normalize_result(item) for item in self._items(payload, "results")]
        return normalize_job(job_payload), results

    async def fetch_pricing_config(self) -> PricingConfig:
        try:
            payload = await self._request("GET", "/pricing-config")
            return normalize_pricing_config(payload.get("config") if isinstance(payload.get("config"), Mapping) else payload)
        except (TransportError, SchemaError) as exc:
            raise ConfigUnavailable(str(exc)) from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["HttpReviewGateway"]
