"""String normalization utilities for label text.

Every function here is total: any string in, a string (or None for the
numeric parsers) out. Applying a text normalizer twice gives the same result
as applying it once.
"""

import re
from typing import List, Optional, Tuple

# Punctuation stripped before token comparison. Periods are handled
# separately so decimals like "37.5" survive.
_PUNCTUATION_RE = re.compile(r"[,;:!?()\[\]{}'\"‘’“”]")
_HYPHEN_RE = re.compile(r"[-–—/]")
_PERIOD_RE = re.compile(r"(?<!\d)\.|\.(?!\d)")
_WHITESPACE_RE = re.compile(r"\s+")
_AMPERSAND_RE = re.compile(r"[ \t]*&[ \t]*")

# Proof is checked before percent; both forms are often printed together.
_PROOF_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:°\s*)?proof\b", re.IGNORECASE)
_PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%")
_BARE_NUMBER_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*$")

# (pattern, multiplier to mL) - order matters, compound units first
NET_CONTENTS_UNITS: List[Tuple[str, float]] = [
    (r"(\d+(?:\.\d+)?)\s*(?:fl\.?\s*oz\.?|fluid\s+ounces?)", 29.5735),
    (r"(\d+(?:\.\d+)?)\s*(?:ml|milliliters?|millilitres?)\b", 1.0),
    (r"(\d+(?:\.\d+)?)\s*(?:cl|centiliters?|centilitres?)\b", 10.0),
    (r"(\d+(?:\.\d+)?)\s*(?:l|liters?|litres?)\b", 1000.0),
    (r"(\d+(?:\.\d+)?)\s*(?:oz|ounces?)\b", 29.5735),
    (r"(\d+(?:\.\d+)?)\s*(?:pt|pints?)\b", 473.176),
    (r"(\d+(?:\.\d+)?)\s*(?:qt|quarts?)\b", 946.353),
    (r"(\d+(?:\.\d+)?)\s*(?:gal|gallons?)\b", 3785.41),
]

_AGE_PATTERNS = [
    re.compile(r"(\d+)\s*(?:-|\s)?\s*(?:years?|yrs?)\b", re.IGNORECASE),
    re.compile(r"\b(\d+)\b"),
]
_YEAR_RE = re.compile(r"\b(1[89]\d{2}|20\d{2})\b")


def normalize_whitespace(s: str) -> str:
    """Collapse runs of whitespace to a single space and trim."""
    if not s:
        return ""
    return _WHITESPACE_RE.sub(" ", s).strip()


def strip_punctuation(s: str) -> str:
    """Remove punctuation so "Alc./Vol." compares equal to "Alc Vol".

    Periods between digits are kept. Hyphens and slashes become spaces.
    """
    if not s:
        return ""
    s = _PERIOD_RE.sub("", s)
    s = _PUNCTUATION_RE.sub("", s)
    s = _HYPHEN_RE.sub(" ", s)
    return normalize_whitespace(s)


def collapse_spaces(s: str) -> str:
    """Remove all whitespace ("750 mL" -> "750mL")."""
    if not s:
        return ""
    return _WHITESPACE_RE.sub("", s)


def normalize_ampersand(s: str) -> str:
    """Canonicalize "&" to "and".

    Applied to both sides of a comparison, so "Produced & Bottled by" and
    "Produced and Bottled by" meet in the middle whichever one is declared.
    """
    if not s:
        return ""
    return _AMPERSAND_RE.sub(" and ", s).strip()


def normalize_text(s: str) -> str:
    """Lowercase, ampersand, punctuation and whitespace normalization."""
    if not s:
        return ""
    return strip_punctuation(normalize_ampersand(s.lower()))


def parse_alcohol_content(s: str) -> Optional[float]:
    """Parse an alcohol statement to ABV percent.

    Proof figures are halved. When both forms are present proof is used.
    """
    if not s:
        return None
    match = _PROOF_RE.search(s)
    if match:
        return float(match.group(1)) / 2
    match = _PERCENT_RE.search(s)
    if match:
        return float(match.group(1))
    match = _BARE_NUMBER_RE.match(s)
    if match:
        return float(match.group(1))
    return None


def parse_net_contents_ml(s: str) -> Optional[float]:
    """Parse a net contents statement to millilitres."""
    if not s:
        return None
    lower = s.lower()
    for pattern, multiplier in NET_CONTENTS_UNITS:
        match = re.search(pattern, lower)
        if match:
            return round(float(match.group(1)) * multiplier, 1)
    match = _BARE_NUMBER_RE.match(lower)
    if match:
        return float(match.group(1))
    return None


def parse_age_years(s: str) -> Optional[float]:
    """Parse an age statement ("Aged 10 Years", "8-Year-Old") to years."""
    if not s:
        return None
    for pattern in _AGE_PATTERNS:
        match = pattern.search(s)
        if match:
            return float(match.group(1))
    return None


def parse_year(s: str) -> Optional[float]:
    if not s:
        return None
    match = _YEAR_RE.search(s)
    return float(match.group(1)) if match else None


_UNIT_PARSERS = {
    "alcohol_content": parse_alcohol_content,
    "net_contents": parse_net_contents_ml,
    "age_statement": parse_age_years,
    "vintage_year": parse_year,
}


def has_comparable_units(field_name: str) -> bool:
    return field_name in _UNIT_PARSERS


def to_comparable_units(field_name: str, s: str) -> Optional[float]:
    """Field-aware numeric canonicalization for comparison.

    Returns ABV percent, millilitres, years or a calendar year depending on
    the field; None for text fields or unparseable input.
    """
    parser = _UNIT_PARSERS.get(field_name)
    if parser is None:
        return None
    try:
        return parser(s)
    except (TypeError, ValueError):
        return None
