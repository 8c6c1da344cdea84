"""Field comparison: does the label agree with the application?"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional

from rapidfuzz import fuzz

from .catalog import QUALIFYING_PHRASES
from .fields import ExtractedField
from .normalizer import (
    has_comparable_units,
    normalize_text,
    normalize_whitespace,
    to_comparable_units,
)
from ..config import get_settings

logger = logging.getLogger(__name__)


class ComparisonStatus(str, Enum):
    """Outcome of comparing a declared value with the label."""
    MATCH = "match"
    MISMATCH = "mismatch"
    MISSING_DECLARED = "missing_declared"
    MISSING_EXTRACTED = "missing_extracted"


@dataclass(frozen=True)
class ComparisonOutcome:
    """Result of comparing one field."""
    field_name: str
    status: ComparisonStatus
    normalized_declared: str
    normalized_extracted: Optional[str]
    confidence: int  # agreement score, 0-100
    reasoning: str

    @property
    def is_match(self) -> bool:
        return self.status == ComparisonStatus.MATCH


UNIT_LABELS = {
    "alcohol_content": "% ABV",
    "net_contents": " mL",
    "age_statement": " years",
    "vintage_year": "",
}

COUNTRY_FILLER_WORDS = {"product", "of", "imported", "from", "made", "in", "produced", "the"}


def _outcome(field_name, status, declared, extracted, confidence, reasoning) -> ComparisonOutcome:
    return ComparisonOutcome(
        field_name=field_name,
        status=status,
        normalized_declared=declared,
        normalized_extracted=extracted,
        confidence=int(max(0, min(100, round(confidence)))),
        reasoning=reasoning,
    )


def _text_similarity(a: str, b: str) -> float:
    """Best of character and word-order-insensitive similarity (0-1)."""
    if not a or not b:
        return 0.0
    return max(fuzz.ratio(a, b), fuzz.token_sort_ratio(a, b)) / 100.0


def _compare_units(field_name: str, declared: str, extracted: str) -> Optional[ComparisonOutcome]:
    declared_units = to_comparable_units(field_name, declared)
    extracted_units = to_comparable_units(field_name, extracted)
    if declared_units is None or extracted_units is None:
        return None

    settings = get_settings()
    unit = UNIT_LABELS[field_name]
    norm_declared = f"{declared_units:g}{unit}"
    norm_extracted = f"{extracted_units:g}{unit}"
    difference = abs(declared_units - extracted_units)

    if field_name == "alcohol_content":
        tolerance = settings.abv_tolerance
    elif field_name == "net_contents":
        tolerance = settings.net_contents_tolerance * max(declared_units, extracted_units)
    else:
        tolerance = 0.0

    if difference == 0:
        return _outcome(field_name, ComparisonStatus.MATCH, norm_declared, norm_extracted, 100,
                        f"Values agree ({norm_extracted})")
    if difference <= tolerance:
        return _outcome(field_name, ComparisonStatus.MATCH, norm_declared, norm_extracted, 90,
                        f"Within tolerance: label {norm_extracted}, application {norm_declared}")
    return _outcome(field_name, ComparisonStatus.MISMATCH, norm_declared, norm_extracted, 0,
                    f"Label shows {norm_extracted} but application states {norm_declared}")


def _compare_health_warning(declared: str, extracted: str) -> ComparisonOutcome:
    norm_declared = normalize_whitespace(declared)
    norm_extracted = normalize_whitespace(extracted)
    field_name = "health_warning"

    if norm_declared == norm_extracted:
        return _outcome(field_name, ComparisonStatus.MATCH, norm_declared, norm_extracted, 100,
                        "Warning text matches exactly")
    if norm_declared.lower() == norm_extracted.lower():
        return _outcome(field_name, ComparisonStatus.MATCH, norm_declared, norm_extracted, 85,
                        "Warning text matches except for capitalization; "
                        "'GOVERNMENT WARNING:' must appear in capital letters")

    similarity = _text_similarity(norm_declared.lower(), norm_extracted.lower())
    threshold = get_settings().health_warning_similarity_threshold
    if similarity >= threshold:
        return _outcome(field_name, ComparisonStatus.MATCH, norm_declared, norm_extracted,
                        min(84, similarity * 100),
                        f"Warning text nearly identical ({similarity:.0%}); likely OCR noise")
    return _outcome(field_name, ComparisonStatus.MISMATCH, norm_declared, norm_extracted,
                    similarity * 100, f"Warning text differs ({similarity:.0%} similar)")


def resolve_qualifying_phrase(value: str) -> Optional[str]:
    """Map a value to its vocabulary phrase, ignoring case, punctuation and "&"."""
    normalized = normalize_text(value)
    for phrase in QUALIFYING_PHRASES:
        if normalize_text(phrase) == normalized:
            return phrase
    return None


def _compare_qualifying_phrase(declared: str, extracted: str) -> Optional[ComparisonOutcome]:
    declared_phrase = resolve_qualifying_phrase(declared)
    extracted_phrase = resolve_qualifying_phrase(extracted)
    if declared_phrase is None or extracted_phrase is None:
        return None
    if declared_phrase == extracted_phrase:
        return _outcome("qualifying_phrase", ComparisonStatus.MATCH, declared_phrase, extracted_phrase,
                        100, f"Same qualifying phrase '{declared_phrase}'")
    return _outcome("qualifying_phrase", ComparisonStatus.MISMATCH, declared_phrase, extracted_phrase,
                    0, f"Label says '{extracted_phrase}' but application states '{declared_phrase}'")


def _compare_country(declared: str, extracted: str) -> ComparisonOutcome:
    norm_declared = normalize_text(declared)
    norm_extracted = normalize_text(extracted)
    field_name = "country_of_origin"

    if norm_declared in norm_extracted or norm_extracted in norm_declared:
        return _outcome(field_name, ComparisonStatus.MATCH, norm_declared, norm_extracted, 90,
                        "Country statement contains the declared country")

    declared_words = set(norm_declared.split()) - COUNTRY_FILLER_WORDS
    extracted_words = set(norm_extracted.split()) - COUNTRY_FILLER_WORDS
    if declared_words and extracted_words:
        overlap = len(declared_words & extracted_words) / max(len(declared_words), len(extracted_words))
        if overlap >= 0.5:
            return _outcome(field_name, ComparisonStatus.MATCH, norm_declared, norm_extracted,
                            overlap * 100, f"Country words overlap ({overlap:.0%})")
    return _outcome(field_name, ComparisonStatus.MISMATCH, norm_declared, norm_extracted, 0,
                    f"Label shows '{extracted}' but application states '{declared}'")


def _compare_text(field_name: str, declared: str, extracted: str) -> ComparisonOutcome:
    norm_declared = normalize_text(declared)
    norm_extracted = normalize_text(extracted)

    if norm_declared == norm_extracted:
        return _outcome(field_name, ComparisonStatus.MATCH, norm_declared, norm_extracted, 100,
                        "Values match (ignoring case and punctuation)")

    similarity = _text_similarity(norm_declared, norm_extracted)
    if similarity >= get_settings().text_match_threshold:
        return _outcome(field_name, ComparisonStatus.MATCH, norm_declared, norm_extracted,
                        similarity * 100, f"Values similar ({similarity:.0%})")

    shorter = min(norm_declared, norm_extracted, key=len)
    if len(shorter) >= 3 and (norm_declared in norm_extracted or norm_extracted in norm_declared):
        return _outcome(field_name, ComparisonStatus.MATCH, norm_declared, norm_extracted, 80,
                        "One value contains the other")

    return _outcome(field_name, ComparisonStatus.MISMATCH, norm_declared, norm_extracted,
                    similarity * 100,
                    f"Label shows '{extracted}' but application states '{declared}' "
                    f"({similarity:.0%} similar)")


def compare_field(
    field_name: str,
    declared_value: Optional[str],
    extracted_value: Optional[str],
) -> ComparisonOutcome:
    """Compare a declared application value with the value read from the label.

    A missing extracted value is always ``missing_extracted``, whatever the
    declared value is.
    """
    if extracted_value is None or not extracted_value.strip():
        return _outcome(field_name, ComparisonStatus.MISSING_EXTRACTED,
                        normalize_text(declared_value or ""), None, 0,
                        "Field not found on label")
    if declared_value is None or not declared_value.strip():
        return _outcome(field_name, ComparisonStatus.MISSING_DECLARED, "",
                        normalize_text(extracted_value), 0,
                        "No declared value to compare against")

    if field_name == "health_warning":
        return _compare_health_warning(declared_value, extracted_value)

    if has_comparable_units(field_name):
        outcome = _compare_units(field_name, declared_value, extracted_value)
        if outcome is not None:
            return outcome
        logger.debug(f"{field_name}: could not parse units, comparing as text")

    if field_name == "qualifying_phrase":
        outcome = _compare_qualifying_phrase(declared_value, extracted_value)
        if outcome is not None:
            return outcome

    if field_name == "country_of_origin":
        return _compare_country(declared_value, extracted_value)

    return _compare_text(field_name, declared_value, extracted_value)


def compare_fields(
    declared_values: Mapping[str, Optional[str]],
    fields: Iterable[ExtractedField],
) -> Dict[str, ComparisonOutcome]:
    """Compare every declared field with its classified counterpart."""
    by_name = {f.field_name: f for f in fields}
    outcomes = {}
    for field_name, declared in declared_values.items():
        extracted = by_name.get(field_name)
        outcomes[field_name] = compare_field(
            field_name, declared, extracted.value if extracted else None
        )
    return outcomes
