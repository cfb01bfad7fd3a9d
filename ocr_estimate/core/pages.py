"""Page level OCR rollups."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Literal, Sequence

from ocr_estimate.core.schema import AnalysisResult, PageRecord

ConfidenceBand = Literal["high", "medium", "low"]

LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "ar": "Arabic",
    "ru": "Russian",
    "hi": "Hindi",
    "nl": "Dutch",
    "pl": "Polish",
    "sv": "Swedish",
    "da": "Danish",
    "fi": "Finnish",
    "no": "Norwegian",
    "tr": "Turkish",
    "th": "Thai",
    "vi": "Vietnamese",
    "id": "Indonesian",
    "ms": "Malay",
    "tl": "Tagalog",
    "uk": "Ukrainian",
    "cs": "Czech",
    "ro": "Romanian",
    "hu": "Hungarian",
    "el": "Greek",
    "he": "Hebrew",
}


@dataclass(slots=True, frozen=True)
class PageSummary:
    total_pages: int
    total_words: int
    primary_language: str | None
    average_confidence: float
    confidence_band: ConfidenceBand


def most_common(values: Iterable[str | None]) -> str | None:
    """Most frequent non-empty value; the first one seen wins a tie."""

    counts = Counter(value for value in values if value)
    if not counts:
        return None
    # Counter preserves insertion order and most_common() sorts stably.
    return counts.most_common(1)[0][0]


def dominant_language(pages: Iterable[PageRecord]) -> str | None:
    return most_common(page.detected_language for page in pages)


def average_confidence(pages: Iterable[PageRecord]) -> float:
    scores = [page.confidence_score for page in pages if page.confidence_score is not None]
    if not scores:
        return 0.0
    return sum(scores) / len(scores)


def confidence_band(score: float) -> ConfidenceBand:
    if score >= 90:
        return "high"
    if score >= 70:
        return "medium"
    return "low"


def language_name(code: str | None) -> str:
    if not code:
        return "Unknown"
    return LANGUAGE_NAMES.get(code.lower(), code.upper())


def summarize_pages(pages: Sequence[PageRecord]) -> PageSummary:
    confidence = average_confidence(pages)
    return PageSummary(
        total_pages=len(pages),
        total_words=sum(page.word_count for page in pages),
        primary_language=dominant_language(pages),
        average_confidence=confidence,
        confidence_band=confidence_band(confidence),
    )


def most_common_language(results: Iterable[AnalysisResult]) -> str | None:
    return most_common(result.language for result in results if result.processing_status == "completed")


def most_common_country(results: Iterable[AnalysisResult]) -> str | None:
    return most_common(result.issuing_country for result in results if result.processing_status == "completed")
