"""
product_view.py — what the product card shows for an AnalysisRecord.

Rendering lives in the front end. This module only fixes the values it
receives, including the fallbacks shown when the reply did not mention a
field.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from coffee_analysis import AnalysisRecord

MAX_NOTES_SHOWN = 4

# ── Fallback copy ─────────────────────────────────────────────────────────────
DEFAULT_COUNTRY     = "Single Origin"
DEFAULT_NOTES_TEXT  = "Premium blend"
DEFAULT_BREW_METHOD = "Pour Over, French Press"
DEFAULT_WATER_TEMP  = "195-205°F"
DEFAULT_GRIND       = "Medium"
DEFAULT_RATIO       = "1:15 (coffee:water)"
DEFAULT_DESCRIPTION = (
    "Experience the exceptional quality and distinctive character of this NODE Coffee "
    "Roasters selection. Carefully sourced and expertly roasted to bring out the unique "
    "flavor profile that makes each cup a memorable experience."
)


@dataclass(frozen=True)
class ProductView:
    roast_level: str
    roast_dots: tuple[bool, ...]       # 5 entries, True = filled
    notes: tuple[str, ...]             # at most MAX_NOTES_SHOWN
    notes_fallback: Optional[str]      # shown instead of notes when there are none
    country: str
    region: Optional[str]
    description: str
    brew_method: str
    water_temp: str
    grind_size: str
    ratio: str
    rating: float
    reupload_required: bool


def clean_description(text: str) -> str:
    """Drop markdown emphasis and collapse whitespace."""
    return re.sub(r"\s+", " ", re.sub(r"\*+", "", text)).strip()


def build_product_view(record: AnalysisRecord, reply_text: str = "") -> ProductView:
    notes = record.flavor_profile.notes if record.flavor_profile else ()
    origin = record.origin
    return ProductView(
        roast_level=record.roast_level,
        roast_dots=tuple(level <= record.roast_scale for level in range(1, 6)),
        notes=notes[:MAX_NOTES_SHOWN],
        notes_fallback=None if notes else DEFAULT_NOTES_TEXT,
        country=(origin.country if origin and origin.country else DEFAULT_COUNTRY),
        region=origin.region if origin else None,
        description=clean_description(reply_text) or DEFAULT_DESCRIPTION,
        brew_method=record.brewing_methods[0] if record.brewing_methods else DEFAULT_BREW_METHOD,
        water_temp=DEFAULT_WATER_TEMP,
        grind_size=DEFAULT_GRIND,
        ratio=DEFAULT_RATIO,
        rating=record.overall_rating,
        reupload_required=record.reupload_required,
    )
