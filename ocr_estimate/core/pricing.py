"""Billable page and translation cost calculation.

All arithmetic runs on ``Decimal`` so that the same inputs always produce the
same invoice amounts.  Two rounding rules apply and both always round *up*:

* billable pages round up to the next tenth of a page, with a floor of one
  page per document;
* translation cost rounds up to the next $2.50 increment.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from decimal import ROUND_CEILING, Decimal, InvalidOperation
from typing import Any, Iterable

from ocr_estimate.core.schema import AnalysisResult, PricingConfig
from ocr_estimate.core.validation import ValidationError
from ocr_estimate.domain import EstimateTotals, PricingRow

logger = logging.getLogger(__name__)

COMPLEXITY_MULTIPLIERS: dict[str, Decimal] = {
    "easy": Decimal("1.00"),
    "medium": Decimal("1.15"),
    "hard": Decimal("1.25"),
}

PAGE_INCREMENT = Decimal("0.1")
MINIMUM_BILLABLE_PAGES = Decimal("1.0")
PRICE_INCREMENT = Decimal("2.50")
CENTS = Decimal("0.01")

EDITABLE_FIELDS = ("complexity", "billable_pages", "base_rate")


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENTS)


def multiplier_for(complexity: str) -> Decimal:
    return COMPLEXITY_MULTIPLIERS[complexity]


def billable_pages(word_count: Any, complexity_multiplier: Any, words_per_page: Any) -> Decimal:
    """Pages to charge for ``word_count`` words at the given complexity."""

    per_page = _to_decimal(words_per_page)
    if per_page <= 0:
        raise ValueError("words_per_page must be positive")

    # Divide last so that results landing exactly on a tenth stay exact.
    tenths = (_to_decimal(word_count) * _to_decimal(complexity_multiplier) * 10) / per_page
    rounded = (tenths.to_integral_value(rounding=ROUND_CEILING) * PAGE_INCREMENT).quantize(PAGE_INCREMENT)
    return max(rounded, MINIMUM_BILLABLE_PAGES)


def round_up_to_increment(amount: Any, increment: Decimal = PRICE_INCREMENT) -> Decimal:
    steps = (_to_decimal(amount) / increment).to_integral_value(rounding=ROUND_CEILING)
    return _money(steps * increment)


def translation_cost(billable: Any, base_rate: Any, language_multiplier: Any = Decimal("1")) -> Decimal:
    amount = _to_decimal(billable) * _to_decimal(base_rate) * _to_decimal(language_multiplier)
    return round_up_to_increment(amount)


def parse_non_negative(value: Any) -> Decimal | None:
    """Parse user input as a finite, non-negative number; ``None`` when invalid."""

    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite() or parsed < 0:
        return None
    # Plain notation without a negative zero: "1e1" -> 10, "-0" -> 0.
    return abs(Decimal(format(parsed, "f")))


def _with_cost(row: PricingRow) -> PricingRow:
    cost = translation_cost(row.billable_pages, row.base_rate, row.language_multiplier)
    return replace(row, translation_cost=cost, line_total=cost)


def init_row(
    result: AnalysisResult,
    config: PricingConfig,
    *,
    filename: str | None = None,
    language_multiplier: Any = Decimal("1"),
) -> PricingRow:
    """Build the initial pricing row for a completed analysis result."""

    multiplier = multiplier_for(result.complexity)
    suggested = result.billable_pages
    if suggested is None or suggested <= 0:
        suggested = billable_pages(result.word_count, multiplier, config.words_per_page)

    row = PricingRow(
        analysis_id=result.analysis_id,
        source_file_id=result.source_file_id,
        filename=filename or result.original_filename or result.source_file_id,
        document_type=result.document_type,
        word_count=result.word_count,
        document_count=max(result.document_count, 1),
        billable_pages=_to_decimal(suggested),
        complexity=result.complexity,
        complexity_multiplier=multiplier,
        base_rate=_to_decimal(config.base_rate),
        translation_cost=Decimal("0.00"),
        line_total=Decimal("0.00"),
        language_multiplier=_to_decimal(language_multiplier),
    )
    return _with_cost(row)


def update_row(row: PricingRow, field: str, value: Any, *, words_per_page: Any) -> PricingRow:
    """Apply one staff edit and return the recomputed row.

    Invalid values leave the row unchanged.  A directly edited page count is
    locked: later complexity changes no longer recompute it.
    """

    if field not in EDITABLE_FIELDS:
        raise ValidationError(f"unknown pricing field: {field}")

    updated = row
    if field == "complexity":
        complexity = str(value).strip().lower() if value is not None else ""
        if complexity in COMPLEXITY_MULTIPLIERS:
            multiplier = COMPLEXITY_MULTIPLIERS[complexity]
            updated = replace(row, complexity=complexity, complexity_multiplier=multiplier)
            if not row.billable_pages_overridden:
                updated = replace(
                    updated,
                    billable_pages=billable_pages(row.word_count, multiplier, words_per_page),
                )
        else:
            logger.debug("Ignoring invalid complexity %r for %s", value, row.analysis_id)
    elif field == "billable_pages":
        parsed = parse_non_negative(value)
        if parsed is not None:
            updated = replace(row, billable_pages=parsed, billable_pages_overridden=True)
    elif field == "base_rate":
        parsed = parse_non_negative(value)
        if parsed is not None:
            updated = replace(row, base_rate=parsed, base_rate_overridden=True)

    return _with_cost(updated)


def clear_override(row: PricingRow, field: str, *, config: PricingConfig) -> PricingRow:
    """Drop a staff override and restore the computed value."""

    if field == "billable_pages":
        restored = replace(
            row,
            billable_pages=billable_pages(row.word_count, row.complexity_multiplier, config.words_per_page),
            billable_pages_overridden=False,
        )
    elif field == "base_rate":
        restored = replace(row, base_rate=_to_decimal(config.base_rate), base_rate_overridden=False)
    else:
        raise ValidationError(f"field has no override: {field}")
    return _with_cost(restored)


def recompute_totals(rows: Iterable[PricingRow], certification_unit_price: Any) -> EstimateTotals:
    collected = list(rows)
    unit_price = _money(_to_decimal(certification_unit_price))
    subtotal = _money(sum((row.translation_cost for row in collected), Decimal("0")))
    documents = sum(row.document_count for row in collected)
    certification = _money(unit_price * documents)
    return EstimateTotals(
        translation_subtotal=subtotal,
        total_documents=documents,
        certification_unit_price=unit_price,
        certification_estimate=certification,
        estimated_total=_money(subtotal + certification),
    )
