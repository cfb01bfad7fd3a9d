from __future__ import annotations

from dataclasses import asdict
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, HTTPException
from fastapi.responses import Response

from ocr_estimate.application import ReviewSession, get_review_service
from ocr_estimate.core.pages import language_name
from ocr_estimate.core.validation import TransportError, ValidationError

router = APIRouter(prefix="/batches", tags=["review"])


def json_sanitise(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, list):
        return [json_sanitise(item) for item in value]
    if isinstance(value, dict):
        return {key: json_sanitise(val) for key, val in value.items()}
    return value


def transport_failure(exc: TransportError) -> HTTPException:
    if exc.status_code == 404:
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=502, detail={"message": str(exc), "retry": True})


def require_session(batch_id: str) -> ReviewSession:
    session = get_review_service().get_session(batch_id)
    if session is None:
        raise HTTPException(status_code=404, detail="review session not open")
    return session


def documents_payload(session: ReviewSession) -> dict:
    selected = set(session.selected_ids)
    items = []
    for document in session.documents:
        entry = asdict(document)
        entry["selectable"] = document.selectable
        entry["selected"] = document.id in selected
        items.append(entry)
    return {"batch_id": session.batch_id, "items": items, "selected": session.selected_ids}


def analysis_payload(session: ReviewSession) -> dict:
    job = session.analysis_job
    return {
        "state": session.analysis_state.value,
        "job": job.model_dump(mode="json") if job else None,
        "results": [result.model_dump(mode="json") for result in session.tracker.results],
        "notices": list(session.notices),
    }


@router.post("/{batch_id}/review")
async def open_review(batch_id: str) -> dict:
    try:
        session = await get_review_service().open_session(batch_id)
    except TransportError as exc:
        raise transport_failure(exc) from exc
    return {**documents_payload(session), "analysis": analysis_payload(session)}


@router.delete("/{batch_id}/review")
async def close_review(batch_id: str) -> dict:
    closed = get_review_service().close_session(batch_id)
    return {"batch_id": batch_id, "closed": closed}


@router.get("/{batch_id}/review/documents")
async def list_documents(batch_id: str, refresh: bool = False) -> dict:
    session = require_session(batch_id)
    if refresh:
        try:
            await session.reload_files()
        except TransportError as exc:
            raise transport_failure(exc) from exc
    return documents_payload(session)


@router.get("/{batch_id}/review/documents/{document_id}/pages")
async def get_document_pages(batch_id: str, document_id: str, include_text: bool = False) -> dict:
    session = require_session(batch_id)
    try:
        pages = await session.document_pages(document_id)
        summary = await session.document_summary(document_id)
    except ValidationError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TransportError as exc:
        raise transport_failure(exc) from exc

    exclude = None if include_text else {"raw_text"}
    return {
        "document_id": document_id,
        "summary": {
            **asdict(summary),
            "primary_language_name": language_name(summary.primary_language),
        },
        "pages": [page.model_dump(exclude=exclude) for page in pages],
    }


@router.get("/{batch_id}/review/documents/{document_id}/handoff")
async def get_document_handoff(batch_id: str, document_id: str) -> dict:
    session = require_session(batch_id)
    try:
        return await session.ocr_handoff(document_id)
    except ValidationError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TransportError as exc:
        raise transport_failure(exc) from exc


@router.put("/{batch_id}/review/selection")
async def set_selection(batch_id: str, payload: dict) -> dict:
    session = require_session(batch_id)
    ids = payload.get("ids")
    if not isinstance(ids, list):
        raise HTTPException(status_code=400, detail="ids must be a list")
    session.set_selection([str(item) for item in ids])
    return documents_payload(session)


@router.post("/{batch_id}/review/selection/all")
async def select_all(batch_id: str) -> dict:
    session = require_session(batch_id)
    session.select_all()
    return documents_payload(session)


@router.post("/{batch_id}/review/analyze")
async def analyze_selected(batch_id: str) -> dict:
    session = require_session(batch_id)
    try:
        await session.analyze_selected()
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except TransportError as exc:
        raise transport_failure(exc) from exc
    return analysis_payload(session)


@router.get("/{batch_id}/review/analysis")
async def get_analysis(batch_id: str) -> dict:
    return analysis_payload(require_session(batch_id))


@router.post("/{batch_id}/review/reanalyze")
async def reanalyze(batch_id: str, payload: dict) -> dict:
    session = require_session(batch_id)
    try:
        session.reanalyze(str(payload.get("reason") or ""))
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return documents_payload(session)


@router.get("/{batch_id}/review/ocr/export")
async def export_ocr_results(batch_id: str) -> Response:
    session = require_session(batch_id)
    try:
        filename, text = await session.export_ocr_results()
    except TransportError as exc:
        raise transport_failure(exc) from exc
    return Response(
        content=text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
