"""Per-page OCR word count export for a batch."""
from __future__ import annotations

import csv
from typing import Mapping, Sequence

import pandas as pd

from ocr_estimate.core.schema import BatchFile, PageRecord

HEADER = ["File", "Page", "Words"]


def export_filename(batch_id: str) -> str:
    return f"ocr-results-{batch_id}.csv"


def _section(records: list[list[str]], *, header: bool) -> str:
    frame = pd.DataFrame(records, columns=HEADER, dtype=str)
    return frame.to_csv(index=False, header=header, quoting=csv.QUOTE_ALL, lineterminator="\n")


def ocr_results_to_csv(files: Sequence[BatchFile], pages: Mapping[str, Sequence[PageRecord]]) -> str:
    parts = [_section([], header=True)]
    grand_total = 0

    for item in files:
        file_pages = sorted(pages.get(item.id, []), key=lambda page: page.page_number)
        if file_pages:
            records = [[item.filename, str(page.page_number), str(page.word_count)] for page in file_pages]
            total = item.word_count if item.word_count is not None else sum(page.word_count for page in file_pages)
            records.append([item.filename, "Total", str(total)])
            grand_total += total
        else:
            records = [[item.filename, "Error", item.error_message or "Unknown error"]]
        parts.append(_section(records, header=False))
        parts.append("\n")

    parts.append("\n")
    parts.append(_section([["Grand Total", "", str(grand_total)]], header=False))
    return "".join(parts)
