"""Domain layer definitions."""

from .review import EstimateTotals, LogicalDocument, PricingRow

__all__ = [
    "EstimateTotals",
    "LogicalDocument",
    "PricingRow",
]
