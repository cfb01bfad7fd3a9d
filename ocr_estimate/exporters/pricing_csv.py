from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable

import pandas as pd

from ocr_estimate.domain import EstimateTotals, PricingRow

HEADER = [
    "Filename",
    "Document Type",
    "Word Count",
    "Billable Pages",
    "Complexity",
    "Base Rate",
    "Translation Cost",
    "Documents",
]

_AMOUNT_COLUMN = HEADER.index("Translation Cost")
_DOCUMENTS_COLUMN = HEADER.index("Documents")


def document_type_label(document_type: str | None) -> str:
    if not document_type:
        return "Unknown"
    words = document_type.replace("-", "_").split("_")
    return " ".join(word.capitalize() for word in words if word) or "Unknown"


def export_filename(batch_id: str | None) -> str:
    prefix = batch_id[:8] if batch_id else "export"
    return f"pricing-estimate-{prefix}.csv"


def _summary_row(label: str, amount: str, documents: str = "") -> list[str]:
    row = [""] * len(HEADER)
    row[0] = label
    row[_AMOUNT_COLUMN] = amount
    row[_DOCUMENTS_COLUMN] = documents
    return row


def _to_csv(frame: pd.DataFrame, *, header: bool) -> str:
    return frame.to_csv(index=False, header=header, quoting=csv.QUOTE_ALL, lineterminator="\n")


def pricing_to_csv(rows: Iterable[PricingRow], totals: EstimateTotals) -> str:
    """Render the pricing table and its totals as quoted CSV text."""

    records = [
        [
            row.filename,
            document_type_label(row.document_type),
            str(row.word_count),
            str(row.billable_pages),
            row.complexity,
            f"{row.base_rate:.2f}",
            f"{row.translation_cost:.2f}",
            str(row.document_count),
        ]
        for row in rows
    ]
    table = pd.DataFrame(records, columns=HEADER, dtype=str)

    noun = "document" if totals.total_documents == 1 else "documents"
    summary = pd.DataFrame(
        [
            _summary_row("Translation Subtotal", f"{totals.translation_subtotal:.2f}"),
            _summary_row(
                f"Certification Estimate ({totals.total_documents} {noun} x {totals.certification_unit_price:.2f})",
                f"{totals.certification_estimate:.2f}",
                str(totals.total_documents),
            ),
            _summary_row("Estimated Total", f"{totals.estimated_total:.2f}"),
        ],
        dtype=str,
    )
    return _to_csv(table, header=True) + "\n" + _to_csv(summary, header=False)


def export_pricing_estimate(path: Path, rows: Iterable[PricingRow], totals: EstimateTotals) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(pricing_to_csv(rows, totals), encoding="utf-8")
    return path
