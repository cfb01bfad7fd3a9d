"""Domain entities derived during one batch review session."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Literal

AggregateStatus = Literal["completed", "failed", "partial"]


@dataclass(slots=True)
class LogicalDocument:
    """A source document reassembled from one or more OCR'd batch files."""

    id: str
    display_filename: str
    member_file_ids: list[str] = field(default_factory=list)
    file_group_id: str | None = None
    is_grouped: bool = False
    total_pages: int = 0
    total_words: int = 0
    aggregate_status: AggregateStatus = "partial"

    @property
    def selectable(self) -> bool:
        return self.aggregate_status == "completed"

    def contains_file(self, file_id: str) -> bool:
        return file_id == self.id or file_id in self.member_file_ids


@dataclass(slots=True)
class PricingRow:
    """Editable pricing line for one analysed document."""

    analysis_id: str
    source_file_id: str
    filename: str
    document_type: str
    word_count: int
    document_count: int
    billable_pages: Decimal
    complexity: str
    complexity_multiplier: Decimal
    base_rate: Decimal
    translation_cost: Decimal
    line_total: Decimal
    billable_pages_overridden: bool = False
    base_rate_overridden: bool = False
    language_multiplier: Decimal = Decimal("1")


@dataclass(slots=True, frozen=True)
class EstimateTotals:
    translation_subtotal: Decimal = Decimal("0.00")
    total_documents: int = 0
    certification_unit_price: Decimal = Decimal("0.00")
    certification_estimate: Decimal = Decimal("0.00")
    estimated_total: Decimal = Decimal("0.00")
