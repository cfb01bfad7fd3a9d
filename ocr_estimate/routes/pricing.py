from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, HTTPException
from fastapi.responses import Response

from ocr_estimate.application import ReviewSession
from ocr_estimate.core.validation import ValidationError
from ocr_estimate.exporters.pricing_csv import document_type_label

from .review import json_sanitise, require_session

router = APIRouter(prefix="/batches", tags=["pricing"])


def pricing_payload(session: ReviewSession) -> dict:
    rows = []
    for row in session.pricing_rows:
        entry = asdict(row)
        entry["document_type_label"] = document_type_label(row.document_type)
        rows.append(entry)
    return json_sanitise(
        {
            "batch_id": session.batch_id,
            "state": session.analysis_state.value,
            "rows": rows,
            "totals": asdict(session.totals),
            "notices": list(session.notices),
        }
    )


@router.get("/{batch_id}/review/pricing")
async def get_pricing(batch_id: str) -> dict:
    return pricing_payload(require_session(batch_id))


@router.patch("/{batch_id}/review/pricing/{analysis_id}")
async def update_pricing(batch_id: str, analysis_id: str, payload: dict) -> dict:
    session = require_session(batch_id)
    field = payload.get("field")
    if not field:
        raise HTTPException(status_code=400, detail="field is required")
    try:
        session.update_pricing(analysis_id, str(field), payload.get("value"))
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return pricing_payload(session)


@router.delete("/{batch_id}/review/pricing/{analysis_id}/overrides/{field}")
async def clear_pricing_override(batch_id: str, analysis_id: str, field: str) -> dict:
    session = require_session(batch_id)
    try:
        session.clear_pricing_override(analysis_id, field)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return pricing_payload(session)


@router.get("/{batch_id}/review/pricing/export")
async def export_pricing(batch_id: str) -> Response:
    session = require_session(batch_id)
    filename, text = session.export_pricing()
    return Response(
        content=text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{batch_id}/review/handoff")
async def get_handoff(batch_id: str) -> dict:
    session = require_session(batch_id)
    handoff = session.handoff()
    handoff["pricing_rows"] = [asdict(row) for row in handoff["pricing_rows"]]
    handoff["totals"] = asdict(handoff["totals"])
    return json_sanitise(handoff)
