"""Rule-based label field classification.

Runs locally with no network access. Two modes:

- verification: declared values are located in the OCR text with the
  match cascade (``matching.run_cascade``)
- extraction: field-specific extractors discover values from scratch

Fields without a declared value are always filled by extraction, so every
applicable catalog field appears in the result.
"""

import logging
from typing import Dict, List, Mapping, Optional

from .catalog import BeverageType, get_catalog
from .extractors import extract_fields
from .fields import ClassificationResult, ExtractedField
from .image_roles import detect_beverage_type
from .matching import MatchAttempt, run_cascade

logger = logging.getLogger(__name__)

STRATEGY_LABELS = {
    "exact": "Exact match",
    "punctuation": "Match ignoring punctuation",
    "collapsed": "Match ignoring punctuation and spacing",
    "fuzzy": "Fuzzy match",
    "token_overlap": "Token overlap match",
}


def _describe(attempt: MatchAttempt) -> str:
    label = STRATEGY_LABELS.get(attempt.strategy, attempt.strategy)
    if attempt.detail:
        return f"{label} ({attempt.detail})"
    return label


def verify_declared_value(text: str, field_name: str, declared_value: Optional[str]) -> ExtractedField:
    """Locate one declared value in the OCR text."""
    if declared_value is None or not declared_value.strip():
        return ExtractedField.not_found(field_name, "No declared value provided")

    attempt = run_cascade(text, declared_value)
    if attempt is None:
        return ExtractedField.not_found(field_name, "Declared value not found in label text")

    return ExtractedField(
        field_name=field_name,
        value=declared_value.strip(),
        confidence=attempt.confidence,
        reasoning=_describe(attempt),
        source_text=attempt.matched_text,
    )


def rule_classify(
    full_text: str,
    beverage_type: Optional[BeverageType] = None,
    declared_values: Optional[Mapping[str, Optional[str]]] = None,
) -> ClassificationResult:
    """Classify OCR text into label fields without an LLM.

    Args:
        full_text: Combined OCR text of every label image
        beverage_type: Active beverage type, or None to use every catalog field
        declared_values: Application values keyed by field name; switches on
            verification mode for those fields

    Returns:
        ClassificationResult with one entry per applicable catalog field.
        Never raises: fields without evidence come back with value None and
        confidence 0.
    """
    catalog = get_catalog()
    text = full_text or ""
    field_names = catalog.field_names_for(beverage_type)

    results: Dict[str, ExtractedField] = {}
    claimed: List[str] = []

    for field_name, declared in (declared_values or {}).items():
        if not catalog.is_applicable(field_name, beverage_type):
            logger.warning(f"Skipping declared value for unknown or inapplicable field '{field_name}'")
            continue
        try:
            verified = verify_declared_value(text, field_name, declared)
        except Exception as e:
            logger.exception(f"Verification of {field_name} failed: {e}")
            verified = ExtractedField.not_found(field_name, "Verification error")
        results[field_name] = verified
        if verified.found:
            claimed.append(verified.source_text or verified.value)

    remaining = [name for name in field_names if name not in results]
    if remaining:
        extracted = extract_fields(
            text, beverage_type, remaining, claimed=claimed, brand=results.get("brand_name")
        )
        results.update(extracted)

    fields = tuple(
        results.get(name) or ExtractedField.not_found(name, "Not found in label text")
        for name in field_names
    )

    detected = beverage_type if beverage_type is not None else detect_beverage_type(text)
    found = sum(1 for f in fields if f.found)
    logger.debug(
        f"Rule classification: {found}/{len(fields)} fields found, "
        f"{len(declared_values or {})} declared"
    )
    return ClassificationResult(fields=fields, detected_beverage_type=detected)
