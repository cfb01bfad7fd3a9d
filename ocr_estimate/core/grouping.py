"""Reconcile OCR batch files into logical documents.

Oversized uploads are split into chunks before OCR; every chunk carries the
same ``file_group_id`` and a ``chunk_index``.  Grouping puts them back
together so that staff review and analysis operate on whole documents.
"""
from __future__ import annotations

from typing import Iterable, Sequence

from ocr_estimate.core.schema import BatchFile
from ocr_estimate.domain import LogicalDocument
from ocr_estimate.domain.review import AggregateStatus


def aggregate_status(statuses: Iterable[str]) -> AggregateStatus:
    collected = list(statuses)
    if collected and all(status == "completed" for status in collected):
        return "completed"
    if collected and all(status == "failed" for status in collected):
        return "failed"
    return "partial"


def _counted(value: int | None, status: str) -> int:
    # Counts of unfinished members are not meaningful yet.
    if status != "completed" or value is None:
        return 0
    return value


def _chunk_key(item: BatchFile) -> int:
    return item.chunk_index if item.chunk_index is not None else 0


def _build(members: Sequence[BatchFile], *, grouped: bool) -> LogicalDocument:
    ordered = sorted(members, key=_chunk_key) if grouped else list(members)
    representative = ordered[0]

    display = representative.filename
    if grouped:
        original = next((item.original_filename for item in ordered if item.original_filename), None)
        if original:
            display = original

    return LogicalDocument(
        id=representative.id,
        display_filename=display,
        member_file_ids=[item.id for item in ordered],
        file_group_id=representative.file_group_id if grouped else None,
        is_grouped=grouped,
        total_pages=sum(_counted(item.page_count, item.status) for item in ordered),
        total_words=sum(_counted(item.word_count, item.status) for item in ordered),
        aggregate_status=aggregate_status(item.status for item in ordered),
    )


def group_files(files: Iterable[BatchFile]) -> list[LogicalDocument]:
    """Return one logical document per file group and per standalone file.

    Documents come out in the order their first member appears in ``files``.
    Chunks are ordered by ``chunk_index`` (missing indexes count as 0); the
    sort is stable, so ties keep their input order.
    """

    slots: list[tuple[str | None, list[BatchFile]]] = []
    groups: dict[str, list[BatchFile]] = {}

    for item in files:
        if item.file_group_id:
            members = groups.get(item.file_group_id)
            if members is None:
                members = []
                groups[item.file_group_id] = members
                slots.append((item.file_group_id, members))
            members.append(item)
        else:
            slots.append((None, [item]))

    return [_build(members, grouped=group_id is not None) for group_id, members in slots]
