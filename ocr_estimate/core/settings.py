from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

import yaml
from pydantic import ValidationError as SchemaError

from ocr_estimate.core.schema import PricingConfig
from ocr_estimate.core.validation import TransportError

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"

FALLBACK_PRICING: dict[str, Any] = {
    "base_rate": 65,
    "words_per_page": 225,
    "certification_unit_price": 50,
}


def _load_pricing_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return dict(FALLBACK_PRICING)
    try:
        with path.open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp) or {}
    except (OSError, yaml.YAMLError):
        logger.warning("Could not read pricing defaults from %s", path)
        return dict(FALLBACK_PRICING)
    if not isinstance(data, dict):
        return dict(FALLBACK_PRICING)
    return {**FALLBACK_PRICING, **data}


def default_pricing_config(path: Path | None = None) -> PricingConfig:
    """Pricing defaults shipped with the package."""

    data = _load_pricing_file(path or CONFIG_DIR / "pricing.yaml")
    try:
        return PricingConfig(**data)
    except SchemaError:
        logger.warning("Invalid pricing defaults in config file, using built-in values")
        return PricingConfig(**FALLBACK_PRICING)


async def resolve_pricing_config(fetch: Callable[[], Awaitable[PricingConfig]]) -> PricingConfig:
    """Fetch the deployment pricing config, falling back to the defaults.

    A failing config source never blocks a review session.
    """

    try:
        return await fetch()
    except (TransportError, SchemaError) as exc:
        logger.warning("Pricing config unavailable (%s), using defaults", exc)
        return default_pricing_config()
