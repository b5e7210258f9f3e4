"""
coffee_analysis.py — turn the model's free-form package description into an
AnalysisRecord.

The model's answer has no fixed grammar, so every field is pulled out by an
ordered list of regular expressions and keyword vocabularies. Parsing never
fails: anything not found falls back to DEFAULTS, which is merged last.

Precedence rules
  roast level     first rule in ROAST_RULES that yields a level wins; a
                  captured digit 1–5 beats the rule's ordinal
  origin/region   labelled capture first, then the gazetteer
  processing      labelled capture first, then known method names
  brewing         labelled capture first, then known brew methods
  tasting notes   union of every labelled capture and every vocabulary hit,
                  first-seen order, case-insensitive duplicates dropped
  acidity / body  first keyword bucket present in the lower-cased text
  rating          4.5 + 0.1 per distinct positive word present, max 5.0
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from prompts import REJECTION_PHRASE

logger = logging.getLogger(__name__)

_I = re.IGNORECASE


# ── Record types ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Origin:
    country: Optional[str] = None
    region: Optional[str] = None


@dataclass(frozen=True)
class FlavorProfile:
    notes: tuple[str, ...] = ()
    acidity: Optional[str] = None
    body: Optional[str] = None


@dataclass(frozen=True)
class AnalysisRecord:
    """Structured product profile for one analysed reply."""
    roast_level: str
    roast_scale: int
    overall_rating: float
    origin: Optional[Origin] = None
    flavor_profile: Optional[FlavorProfile] = None
    processing_method: Optional[str] = None
    brewing_methods: tuple[str, ...] = ()
    reupload_required: bool = False
    matched_rule: Optional[int] = field(default=None, compare=False)

    def to_dict(self) -> dict:
        """JSON shape consumed by the product view."""
        data: dict = {"roastLevel": self.roast_level, "overall_rating": self.overall_rating}
        if self.origin:
            data["origin"] = {
                k: v for k, v in (("country", self.origin.country), ("region", self.origin.region)) if v
            }
        if self.flavor_profile:
            fp: dict = {}
            if self.flavor_profile.notes:
                fp["notes"] = list(self.flavor_profile.notes)
            if self.flavor_profile.acidity:
                fp["acidity"] = self.flavor_profile.acidity
            if self.flavor_profile.body:
                fp["body"] = self.flavor_profile.body
            data["flavorProfile"] = fp
        if self.processing_method:
            data["processing"] = {"method": self.processing_method}
        if self.brewing_methods:
            data["brewingRecommendations"] = {"methods": list(self.brewing_methods)}
        if self.reupload_required:
            data["reuploadRequired"] = True
        return data


# ── Defaults (merged after every extraction pass) ─────────────────────────────

@dataclass(frozen=True)
class AnalysisDefaults:
    roast_scale: int = 3
    overall_rating: float = 4.5
    rating_step: float = 0.1
    rating_ceiling: float = 5.0


DEFAULTS = AnalysisDefaults()

ROAST_LABELS = {1: "Light", 2: "Medium-Light", 3: "Medium", 4: "Medium-Dark", 5: "Dark"}


def roast_label(scale: int) -> str:
    return f"{ROAST_LABELS.get(scale, 'Medium')} ({scale}/5)"


# ── Roast level rules ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RoastRule:
    """A roast-level pattern. ordinal is the level implied when nothing is captured."""
    pattern: re.Pattern
    ordinal: Optional[int] = None

    def level(self, text: str) -> Optional[tuple[int, str]]:
        """Return (level, matched_text) or None if this rule gives no level."""
        match = self.pattern.search(text)
        if not match:
            return None
        if match.groups() and match.group(1):
            num = int(match.group(1))
            if 1 <= num <= 5:
                return num, match.group(0)
        if self.ordinal is not None:
            return self.ordinal, match.group(0)
        return None


def _rule(pattern: str, ordinal: Optional[int] = None) -> RoastRule:
    return RoastRule(re.compile(pattern, _I), ordinal)


# Most specific phrasing first. Order is significant.
ROAST_RULES: tuple[RoastRule, ...] = (
    # "after careful examination, circle number N ..." verification format
    _rule(r"after\s*careful\s*examination[,\s]*circle\s*number\s*(\d)"),
    _rule(r"circle\s*number\s*(\d)\s*from\s*the\s*left\s*appears\s*darker"),
    _rule(r"circle\s*number\s*(\d)\s*from\s*the\s*left\s*appears\s*filled"),
    # step-by-step format
    _rule(r"circle\s*number\s*(\d)\s*is\s*darker"),
    _rule(r"circle\s*number\s*(\d)\s*is\s*filled"),
    _rule(r"circle\s*(\d)\s*is\s*darker/filled"),
    _rule(r"circle\s*(\d)\s*is\s*filled/dark"),
    _rule(r"circle\s*(\d)\s*appears\s*darker"),
    _rule(r"circle\s*(\d)\s*is\s*the\s*filled"),
    # position-based
    _rule(r"(?:position\s*)?(\d)(?:\s*circle)?\s*from\s*(?:the\s*)?left\s*is\s*filled"),
    _rule(r"(?:the\s*)?(\d)(?:st|nd|rd|th)?\s*circle\s*from\s*(?:the\s*)?left\s*is\s*filled"),
    _rule(r"(?:the\s*)?(\d)(?:st|nd|rd|th)?\s*circle.*(?:filled|darker)"),
    _rule(r"(?:the\s*)?(\d)(?:st|nd|rd|th)?\s*position.*filled"),
    _rule(r"position\s*(\d)\s*filled"),
    _rule(r"(?:the\s*)?first.*filled.*1[/\s]*5", 1),
    _rule(r"(?:the\s*)?second.*filled.*2[/\s]*5", 2),
    _rule(r"(?:the\s*)?third.*filled.*3[/\s]*5", 3),
    _rule(r"(?:the\s*)?fourth.*filled.*4[/\s]*5", 4),
    _rule(r"(?:the\s*)?fifth.*filled.*5[/\s]*5", 5),
    # direct "N/5" phrasing
    _rule(r"roast profile[:\s]*(\d)[/\s]*5"),
    _rule(r"roast[:\s]*(\d)[/\s]*5"),
    _rule(r"(\d)[/\s]*5.*roast"),
    _rule(r"roast level[:\s]*(\d)[/\s]*5"),
    _rule(r"(\d) out of 5"),
    _rule(r"(\d)/5"),
    # bare ordinal descriptions
    _rule(r"first circle (?:filled|darker)", 1),
    _rule(r"second circle (?:filled|darker)", 2),
    _rule(r"third circle (?:filled|darker)", 3),
    _rule(r"fourth circle (?:filled|darker)", 4),
    _rule(r"fifth circle (?:filled|darker)", 5),
)


def extract_roast_scale(text: str) -> tuple[Optional[int], Optional[int]]:
    """Return (level, rule_index) for the first rule that yields a level."""
    for i, rule in enumerate(ROAST_RULES):
        found = rule.level(text)
        if found:
            level, matched = found
            logger.debug("Roast level %d from rule %d: %r", level, i, matched)
            return level, i
    logger.debug("No roast level phrasing found")
    return None, None


# ── Labelled-capture / gazetteer cascades ─────────────────────────────────────

def _alternation(words: tuple[str, ...]) -> re.Pattern:
    return re.compile("(?:" + "|".join(re.escape(w) for w in words) + ")", _I)


ORIGIN_COUNTRIES = (
    "guatemala", "ethiopia", "colombia", "brazil", "kenya", "costa rica", "jamaica",
    "yemen", "honduras", "nicaragua", "panama", "rwanda", "salvador", "peru", "mexico",
    "ecuador", "india", "indonesia", "papua new guinea",
)
ORIGIN_REGIONS = (
    "huehuetenango", "yirgacheffe", "sidamo", "kona", "blue mountain", "antigua",
    "tarrazú", "jinotega", "matagalpa",
)
PROCESS_METHODS = (
    "washed", "natural", "honey", "semi-washed", "wet-processed", "dry-processed",
    "pulped natural",
)
BREW_METHODS = (
    "pour over", "french press", "espresso", "drip", "aeropress", "chemex", "v60",
    "moka pot",
)
FLAVOR_WORDS = (
    "citrus", "chocolate", "caramel", "fruity", "nutty", "floral", "spicy", "sweet",
    "berry", "wine", "tropical", "vanilla", "honey", "apple", "cherry", "lemon",
    "orange", "cocoa", "almond", "hazelnut", "cinnamon", "cardamom",
)

# Each list: labelled captures (group 1) first, then the vocabulary (group 0)
ORIGIN_PATTERNS = (
    re.compile(r"origin[:\s]*([^.\n,]+)", _I),
    re.compile(r"from[:\s]*([^.\n,]+)", _I),
    _alternation(ORIGIN_COUNTRIES),
)
REGION_PATTERNS = (
    re.compile(r"region[:\s]*([^.\n,]+)", _I),
    re.compile(r"farm[:\s]*([^.\n,]+)", _I),
    _alternation(ORIGIN_REGIONS),
)
PROCESS_PATTERNS = (
    re.compile(r"process(?:ing|ed)?[:\s]*([^.\n,]+)", _I),
    _alternation(PROCESS_METHODS),
)
BREW_PATTERNS = (
    re.compile(r"brew(?:ing)?[:\s]*([^.\n,]+)", _I),
    re.compile(r"recommend(?:ed|s)?\s+for[:\s]*([^.\n,]+)", _I),
    _alternation(BREW_METHODS),
)
TASTING_NOTE_PATTERNS = (
    re.compile(r"tasting notes?[:\s]*([^.\n]+)", _I),
    re.compile(r"notes?[:\s]*([^.\n]+)", _I),
    re.compile(r"flavou?r profile[:\s]*([^.\n]+)", _I),
    re.compile(r"taste[:\s]*([^.\n]+)", _I),
)
FLAVOR_WORD_PATTERN = _alternation(FLAVOR_WORDS)

_ASTERISKS = re.compile(r"\*+")
_LEADING_CONJUNCTION = re.compile(r"^(?:and|&)\s*", _I)


def _clean(span: str) -> str:
    return _ASTERISKS.sub("", span.strip()).strip()


def first_capture(
    patterns: tuple[re.Pattern, ...], text: str, strip_markdown: bool = True
) -> Optional[str]:
    """
    Span of the first pattern that matches (group 1 if present, else group 0).
    Markdown asterisks are removed only when strip_markdown is set.
    """
    for pattern in patterns:
        match = pattern.search(text)
        if not match:
            continue
        span = match.group(1) if pattern.groups else match.group(0)
        cleaned = _clean(span) if strip_markdown else span.strip()
        if cleaned:
            return cleaned
    return None


def extract_tasting_notes(text: str) -> tuple[str, ...]:
    seen: dict[str, str] = {}

    def add(note: str) -> None:
        seen.setdefault(note.lower(), note)

    for pattern in TASTING_NOTE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        for part in re.split(r"[,;]", match.group(1)):
            note = _LEADING_CONJUNCTION.sub("", part.strip())
            note = _clean(note)
            if len(note) > 2:
                add(note)

    for match in FLAVOR_WORD_PATTERN.finditer(text):
        add(match.group(0))

    return tuple(seen.values())


# ── Keyword buckets ───────────────────────────────────────────────────────────

ACIDITY_BUCKETS = (
    ("Bright",   ("bright", "crisp", "vibrant")),
    ("Smooth",   ("smooth", "mellow", "low acid")),
    ("Balanced", ("balanced",)),
)
BODY_BUCKETS = (
    ("Full",   ("full body", "rich", "heavy")),
    ("Light",  ("light body", "delicate")),
    ("Medium", ("medium body",)),
)
POSITIVE_WORDS = (
    "exceptional", "outstanding", "premium", "exquisite", "remarkable", "distinctive",
    "complex", "balanced", "expertly", "artisanal",
)


def first_bucket(buckets: tuple, lowered: str) -> Optional[str]:
    for label, keywords in buckets:
        if any(k in lowered for k in keywords):
            return label
    return None


def compute_rating(lowered: str, defaults: AnalysisDefaults = DEFAULTS) -> float:
    hits = sum(1 for w in POSITIVE_WORDS if w in lowered)
    rating = min(defaults.rating_ceiling, defaults.overall_rating + defaults.rating_step * hits)
    return round(rating, 1)


# ── Entry point ───────────────────────────────────────────────────────────────

REUPLOAD_RECORD = AnalysisRecord(
    roast_level="Please upload NODE coffee",
    roast_scale=DEFAULTS.roast_scale,
    overall_rating=DEFAULTS.overall_rating,
    origin=Origin(country="NODE Coffee Required", region="Upload NODE Product"),
    flavor_profile=FlavorProfile(notes=("Upload NODE Coffee Product",)),
    reupload_required=True,
)


def parse_analysis(text: str) -> AnalysisRecord:
    """Extract an AnalysisRecord from the model's reply. Never raises."""
    if REJECTION_PHRASE in text:
        logger.info("Model rejected the package; re-upload required")
        return REUPLOAD_RECORD

    lowered = text.lower()
    scale, rule_index = extract_roast_scale(text)

    country = first_capture(ORIGIN_PATTERNS, text)
    region  = first_capture(REGION_PATTERNS, text)
    origin  = Origin(country=country, region=region) if (country or region) else None

    notes   = extract_tasting_notes(text)
    acidity = first_bucket(ACIDITY_BUCKETS, lowered)
    body    = first_bucket(BODY_BUCKETS, lowered)
    flavor  = FlavorProfile(notes, acidity, body) if (notes or acidity or body) else None

    brew = first_capture(BREW_PATTERNS, text, strip_markdown=False)

    if scale is None:
        scale = DEFAULTS.roast_scale
    return AnalysisRecord(
        roast_level=roast_label(scale),
        roast_scale=scale,
        overall_rating=compute_rating(lowered),
        origin=origin,
        flavor_profile=flavor,
        processing_method=first_capture(PROCESS_PATTERNS, text, strip_markdown=False),
        brewing_methods=(brew,) if brew else (),
        matched_rule=rule_index,
    )
