"""Field-specific extractors used when no declared value is known.

Each extractor takes the combined OCR text (and the beverage type, which
some vocabularies depend on) and returns an ``ExtractedField`` or None.
Brand and fanciful names are handled last, by elimination, once every other
field has claimed its text.
"""

import re
import logging
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from rapidfuzz.distance import Levenshtein

from .catalog import (
    BEVERAGE_LABELS,
    COMMON_CLASS_TYPES,
    QUALIFYING_PHRASES,
    BeverageType,
    find_appellation_in_text,
    find_varietal_in_text,
    get_catalog,
)
from .fields import ExtractedField
from .normalizer import (
    normalize_ampersand,
    normalize_text,
    normalize_whitespace,
    parse_net_contents_ml,
)

logger = logging.getLogger(__name__)

Extractor = Callable[[str, Optional[BeverageType]], Optional[ExtractedField]]

US_STATES = (
    "Alabama", "Alaska", "Arizona", "Arkansas", "California", "Colorado",
    "Connecticut", "Delaware", "Florida", "Georgia", "Hawaii", "Idaho",
    "Illinois", "Indiana", "Iowa", "Kansas", "Kentucky", "Louisiana", "Maine",
    "Maryland", "Massachusetts", "Michigan", "Minnesota", "Mississippi",
    "Missouri", "Montana", "Nebraska", "Nevada", "New Hampshire", "New Jersey",
    "New Mexico", "New York", "North Carolina", "North Dakota", "Ohio",
    "Oklahoma", "Oregon", "Pennsylvania", "Rhode Island", "South Carolina",
    "South Dakota", "Tennessee", "Texas", "Utah", "Vermont", "Virginia",
    "Washington", "West Virginia", "Wisconsin", "Wyoming",
)

COUNTRY_ANCHORS = ("product of", "imported from", "made in", "produced in")
COUNTRY_STOP_WORDS = {"as", "and", "by", "from", "for", "is", "was", "that", "which", "where"}

BRAND_STOP_WORDS = {
    "the", "and", "of", "by", "a", "an", "in", "for", "with", "from", "to", "at",
}

# Trailing "(90 Proof)" is kept with the percent statement
_PROOF_SUFFIX = r"(?:\s*\(?\s*\d+(?:\.\d+)?\s*proof\s*\)?)?"

# Patterns are tried in order; the first hit wins.
ALCOHOL_PATTERNS = [
    r"\d+(?:\.\d+)?\s*%\s*alc(?:ohol)?\.?\s*/\s*vol(?:ume)?\.?" + _PROOF_SUFFIX,
    r"\d+(?:\.\d+)?\s*%\s*alc\.?\s+by\s+vol(?:ume)?\.?" + _PROOF_SUFFIX,
    r"\d+(?:\.\d+)?\s*%\s*alcohol\s+by\s+volume" + _PROOF_SUFFIX,
    r"alcohol\s+\d+(?:\.\d+)?\s*%\s*by\s+volume",
    r"\d+(?:\.\d+)?\s*%\s*alc\b\.?",
    r"\d+(?:\.\d+)?\s*(?:°\s*)?proof\b",
    r"\d+(?:\.\d+)?\s*%\s*abv\b",
]

NET_CONTENTS_PATTERN = re.compile(
    r"\b\d+(?:\.\d+)?\s*(?:fl\.?\s*oz\.?|ml|cl|liters?|litres?|l|oz)(?![a-z])",
    re.IGNORECASE,
)

AGE_PATTERNS = [
    r"aged\s+(?:a\s+minimum\s+of\s+|at\s+least\s+)?\d+\s+years?",
    r"\d+\s+years?\s+old",
    r"\d+\s*yrs?\.?\s+old",
    r"\d+[\s-]years?[\s-]old",
    r"\d+-years?\b",
]

VINTAGE_PATTERN = re.compile(
    r"\b(19\d{2}|20[0-2]\d|2030)\b(?!\s*(?:ml|cl|l\b|%|fl|oz))",
    re.IGNORECASE,
)

WARNING_ANCHOR = re.compile(r"government\s+warning", re.IGNORECASE)
WARNING_FALLBACK_CHARS = 500

CITY_STATE_PATTERN = re.compile(
    r"\b([A-Z][A-Za-z'.-]+(?:[ \t]+[A-Z][A-Za-z'.-]+)*,[ \t]*[A-Z]{2})\b"
)

ADDRESS_STOP_PATTERNS = [
    re.compile(r"government\s+warning", re.IGNORECASE),
    re.compile(r"contains\s+sul", re.IGNORECASE),
    re.compile(r"\d+(?:\.\d+)?\s*%\s*alc", re.IGNORECASE),
    re.compile(r"\.\s+(?=[A-Z(])"),
]

# Boilerplate removed before brand scoring
BOILERPLATE_PATTERNS = [
    re.compile(r"government\s+warning.*?health\s+problems\.?", re.IGNORECASE | re.DOTALL),
    re.compile(r"---\s*image\s+\d+\s*---", re.IGNORECASE),
    re.compile(r"contains\s+sul(?:f|ph)ites\.?", re.IGNORECASE),
    re.compile(r"according\s+to\s+the\s+surgeon\s+general", re.IGNORECASE),
]


def _words_pattern(phrase: str) -> str:
    return r"\s+".join(re.escape(w) for w in phrase.split())


def _flexible_pattern(phrase: str) -> re.Pattern:
    """Word-bounded, whitespace-tolerant pattern; "Whisky" also matches "Whiskey"."""
    words = []
    for word in phrase.split():
        escaped = re.escape(word)
        escaped = re.sub(r"(?i)whisky", "whiske?y", escaped)
        words.append(escaped)
    body = r"\s+".join(words)
    return re.compile(r"(?<![A-Za-z0-9])" + body + r"(?![A-Za-z0-9])", re.IGNORECASE)


def _found(field_name: str, value: str, confidence: int, reasoning: str,
           source_text: Optional[str] = None) -> ExtractedField:
    value = normalize_whitespace(value)
    return ExtractedField(
        field_name=field_name,
        value=value,
        confidence=confidence,
        reasoning=reasoning,
        source_text=normalize_whitespace(source_text) if source_text else value,
    )


# =============================================================================
# Pattern extractors
# =============================================================================

def extract_health_warning(text: str, beverage_type: Optional[BeverageType] = None) -> Optional[ExtractedField]:
    """Capture the statutory warning from its anchor to the end of section (2)."""
    match = WARNING_ANCHOR.search(text)
    if not match:
        return None
    rest = text[match.start():]
    lower = rest.lower()
    section_1 = lower.find("(1)")
    section_2 = lower.find("(2)")
    if section_1 != -1 and section_2 > section_1:
        end = re.search(r"\.(\s|$)", rest[section_2:])
        stop = section_2 + end.start() + 1 if end else len(rest)
        return _found(
            "health_warning", rest[:stop], 85,
            "Found GOVERNMENT WARNING with both numbered statements",
        )
    return _found(
        "health_warning", rest[:WARNING_FALLBACK_CHARS], 60,
        "Found GOVERNMENT WARNING anchor but not both numbered statements",
    )


def extract_alcohol_content(text: str, beverage_type: Optional[BeverageType] = None) -> Optional[ExtractedField]:
    for pattern in ALCOHOL_PATTERNS:
        match = re.search(pattern, text, re.IGNORECASE)
        if match:
            return _found(
                "alcohol_content", match.group(0).strip(), 90,
                f"Matched alcohol statement '{match.group(0).strip()}'",
            )
    return None


def extract_net_contents(text: str, beverage_type: Optional[BeverageType] = None) -> Optional[ExtractedField]:
    match = NET_CONTENTS_PATTERN.search(text)
    if not match:
        return None
    value = match.group(0).strip()
    reasoning = f"Matched net contents '{value}'"
    volume_ml = parse_net_contents_ml(value)
    if (beverage_type is not None and volume_ml is not None
            and not get_catalog().is_standard_fill(beverage_type, volume_ml)):
        reasoning += f" ({volume_ml:g} mL is not a standard fill for {BEVERAGE_LABELS[beverage_type]})"
    return _found("net_contents", value, 90, reasoning)


def _fuzzy_phrase_window(words: List[str], phrase: str) -> Tuple[float, Optional[str]]:
    target = normalize_text(phrase)
    size = len(target.split())
    best_score, best_window = 0.0, None
    for i in range(len(words) - size + 1):
        window = " ".join(words[i:i + size])
        score = Levenshtein.normalized_similarity(target, window)
        if score > best_score:
            best_score, best_window = score, window
    return best_score, best_window


def extract_qualifying_phrase(text: str, beverage_type: Optional[BeverageType] = None) -> Optional[ExtractedField]:
    """Match the qualifying phrase vocabulary, longest phrase first.

    "Produced & Bottled by" resolves to "Produced and Bottled by" rather than
    the shorter "Bottled by" it also contains.
    """
    amp_text = normalize_ampersand(text)
    words = normalize_text(text).split()
    for phrase in sorted(QUALIFYING_PHRASES, key=len, reverse=True):
        match = _flexible_pattern(phrase).search(amp_text)
        if match:
            # "Distiled and Bottled by" should not settle for "Bottled by"
            key = normalize_text(phrase)
            longer = [p for p in QUALIFYING_PHRASES if len(p) > len(phrase) and key in normalize_text(p)]
            return _fuzzy_qualifying_phrase(words, longer) or _found(
                "qualifying_phrase", phrase, 95,
                f"Matched qualifying phrase '{phrase}'", source_text=match.group(0),
            )
    return _fuzzy_qualifying_phrase(words, QUALIFYING_PHRASES)


def _fuzzy_qualifying_phrase(words: List[str], phrases: Iterable[str]) -> Optional[ExtractedField]:
    best_phrase, best_score, best_window = None, 0.0, None
    for phrase in sorted(phrases, key=len, reverse=True):
        score, window = _fuzzy_phrase_window(words, phrase)
        if score > best_score:
            best_phrase, best_score, best_window = phrase, score, window
    if best_phrase is None or best_score < 0.85:
        return None
    confidence = min(90, max(80, round(best_score * 100)))
    return _found(
        "qualifying_phrase", best_phrase, confidence,
        f"Fuzzy match '{best_window}' -> '{best_phrase}' ({best_score:.0%})",
        source_text=best_window,
    )


def extract_sulfite_declaration(text: str, beverage_type: Optional[BeverageType] = None) -> Optional[ExtractedField]:
    lower = normalize_whitespace(text.lower())
    if "contains sulfites" in lower:
        return _found("sulfite_declaration", "Contains Sulfites", 95, "Found 'Contains Sulfites'")
    if "contains sulphites" in lower:
        return _found(
            "sulfite_declaration", "Contains Sulfites", 90,
            "Found British spelling 'Contains Sulphites'", source_text="contains sulphites",
        )
    if "sulfite" in lower or "sulphite" in lower:
        word = "sulfite" if "sulfite" in lower else "sulphite"
        return _found(
            "sulfite_declaration", "Contains Sulfites", 75,
            "Sulfite mention without the standard declaration wording", source_text=word,
        )
    return None


def extract_vintage_year(text: str, beverage_type: Optional[BeverageType] = None) -> Optional[ExtractedField]:
    match = VINTAGE_PATTERN.search(text)
    if not match:
        return None
    return _found("vintage_year", match.group(1), 80, f"Standalone year {match.group(1)}")


def extract_grape_varietal(text: str, beverage_type: Optional[BeverageType] = None) -> Optional[ExtractedField]:
    varietal = find_varietal_in_text(text)
    if varietal:
        return _found("grape_varietal", varietal, 90, f"Known varietal '{varietal}'")

    # Unlisted varietals are usually printed right after the vintage
    match = re.search(
        r"\b(?:19\d{2}|20[0-2]\d)\s+([A-Z][a-zà-ÿ]+(?:\s+[A-Z][a-zà-ÿ]+)?)\b", text
    )
    if match and not find_appellation_in_text(match.group(1)):
        return _found(
            "grape_varietal", match.group(1), 60,
            "Capitalized words following the vintage year",
        )
    return None


def extract_appellation(text: str, beverage_type: Optional[BeverageType] = None) -> Optional[ExtractedField]:
    appellation = find_appellation_in_text(text)
    if appellation:
        return _found("appellation_of_origin", appellation, 85, f"Known appellation '{appellation}'")
    return None


def extract_age_statement(text: str, beverage_type: Optional[BeverageType] = None) -> Optional[ExtractedField]:
    for pattern in AGE_PATTERNS:
        match = re.search(pattern, text, re.IGNORECASE)
        if match:
            return _found("age_statement", match.group(0), 90, f"Matched age statement '{match.group(0)}'")
    return None


def extract_country_of_origin(text: str, beverage_type: Optional[BeverageType] = None) -> Optional[ExtractedField]:
    """Country following an origin anchor, up to three words."""
    anchors = "|".join(_words_pattern(a) for a in COUNTRY_ANCHORS)
    for match in re.finditer(rf"\b({anchors})\s+([^\n]+)", text, re.IGNORECASE):
        words = []
        for word in match.group(2).split():
            cleaned = word.strip(".,;:()")
            if not cleaned or cleaned.lower() in COUNTRY_STOP_WORDS:
                break
            words.append(cleaned)
            if len(words) == 3 or word != word.rstrip(".,;:)"):
                break
        if not words:
            continue
        prefix = normalize_whitespace(match.group(1)).lower().capitalize()
        value = f"{prefix} {' '.join(words)}"
        return _found(
            "country_of_origin", value, 85,
            f"Origin statement anchored on '{prefix}'", source_text=value,
        )
    return None


def extract_class_type(text: str, beverage_type: Optional[BeverageType] = None) -> Optional[ExtractedField]:
    """Longest class/type designation present, from the TTB codes or common designations."""
    catalog = get_catalog()
    candidates = [(c.description, 85, f"TTB class/type {c.code}") for c in catalog.class_types_for(beverage_type)]
    candidates += [(name, 80, "Common class/type designation") for name in COMMON_CLASS_TYPES]
    for description, confidence, origin in sorted(candidates, key=lambda c: len(c[0]), reverse=True):
        match = _flexible_pattern(description).search(text)
        if match:
            return _found(
                "class_type", match.group(0), confidence,
                f"{origin}: '{description}'",
            )
    return None


def extract_name_and_address(text: str, beverage_type: Optional[BeverageType] = None) -> Optional[ExtractedField]:
    """Text following the qualifying phrase, else a "City, ST" pattern."""
    amp_text = normalize_ampersand(text)
    for phrase in sorted(QUALIFYING_PHRASES, key=len, reverse=True):
        match = _flexible_pattern(phrase).search(amp_text)
        if not match:
            continue
        remainder = amp_text[match.end():]
        lines = [line for line in remainder.split("\n")]
        candidate = lines[0].lstrip(" :")
        if not candidate.strip() and len(lines) > 1:
            candidate = lines[1]
        candidate = _cut_address(candidate)
        if len(candidate) >= 3:
            return _found(
                "name_and_address", candidate, 75,
                f"Text following qualifying phrase '{phrase}'",
            )
        break

    match = CITY_STATE_PATTERN.search(text)
    if match:
        return _found("name_and_address", match.group(1), 60, "City, State pattern")
    return None


def _cut_address(line: str) -> str:
    cut = len(line)
    for pattern in ADDRESS_STOP_PATTERNS:
        match = pattern.search(line)
        if match:
            cut = min(cut, match.start())
    return normalize_whitespace(line[:cut]).strip(" ,;:")


def extract_state_of_distillation(text: str, beverage_type: Optional[BeverageType] = None) -> Optional[ExtractedField]:
    states = "|".join(_words_pattern(s) for s in sorted(US_STATES, key=len, reverse=True))
    match = re.search(rf"\bdistilled\s+in\s+({states})\b", text, re.IGNORECASE)
    if match:
        return _found("state_of_distillation", match.group(0), 80, "Matched 'Distilled in' statement")
    match = re.search(rf"\b({states})\s+straight\b", text, re.IGNORECASE)
    if match:
        return _found("state_of_distillation", match.group(0), 80, "State preceding 'Straight' designation")
    return None


FIELD_EXTRACTORS: Dict[str, Extractor] = {
    "health_warning": extract_health_warning,
    "qualifying_phrase": extract_qualifying_phrase,
    "sulfite_declaration": extract_sulfite_declaration,
    "alcohol_content": extract_alcohol_content,
    "net_contents": extract_net_contents,
    "vintage_year": extract_vintage_year,
    "age_statement": extract_age_statement,
    "country_of_origin": extract_country_of_origin,
    "class_type": extract_class_type,
    "grape_varietal": extract_grape_varietal,
    "appellation_of_origin": extract_appellation,
    "name_and_address": extract_name_and_address,
    "state_of_distillation": extract_state_of_distillation,
}


# =============================================================================
# Brand / fanciful name by elimination
# =============================================================================

def _remove_claimed(text: str, claimed: Iterable[str]) -> str:
    cleaned = text
    for pattern in BOILERPLATE_PATTERNS:
        cleaned = pattern.sub("\n", cleaned)
    for value in sorted({c for c in claimed if c and c.strip()}, key=len, reverse=True):
        words = [r"(?:and|&)" if w.lower() == "and" else re.escape(w) for w in value.split()]
        body = r"(?<![A-Za-z0-9])" + r"\s*".join(words) + r"(?![A-Za-z0-9])"
        cleaned = re.sub(body, "\n", cleaned, flags=re.IGNORECASE)
    return cleaned


def _is_noise_line(line: str) -> bool:
    stripped = line.strip()
    if len(stripped) <= 1:
        return True
    if not re.search(r"[A-Za-z]", stripped):
        return True
    if stripped.startswith("---") or re.match(r"^image\s+\d+", stripped, re.IGNORECASE):
        return True
    if re.match(r"^\(\d\)", stripped):
        return True
    words = [w.strip(".,;:&").lower() for w in stripped.split()]
    return all(not w or w in BRAND_STOP_WORDS for w in words)


def score_brand_line(line: str, position: int) -> int:
    """Score a candidate line: earlier, shorter and all-caps lines score higher."""
    if _is_noise_line(line):
        return -1
    score = max(0, 10 - 2 * position)
    word_count = len(line.split())
    if word_count <= 4:
        score += 5
    elif word_count <= 6:
        score += 2
    else:
        score -= 3
    if any(c.isalpha() for c in line) and line == line.upper():
        score += 3
    if re.search(r",\s*[A-Z]{2}\b", line):
        score -= 5  # looks like an address
    return score


def _ranked_lines(text: str, claimed: Iterable[str]) -> List[Tuple[int, str]]:
    cleaned = _remove_claimed(text, claimed)
    lines = [normalize_whitespace(line).strip(" ,;:-") for line in cleaned.splitlines()]
    lines = [line for line in lines if line]
    scored = [(score_brand_line(line, i), line) for i, line in enumerate(lines)]
    scored = [(score, line) for score, line in scored if score > 0]
    # Stable sort keeps earlier lines first on ties
    return sorted(scored, key=lambda item: item[0], reverse=True)


def extract_brand_and_fanciful(
    text: str,
    claimed: Iterable[str] = (),
    brand: Optional[ExtractedField] = None,
) -> Tuple[Optional[ExtractedField], Optional[ExtractedField]]:
    """Pick the brand line and a secondary fanciful-name line.

    ``claimed`` holds values already attributed to other fields; they are
    cut out of the text before lines are scored. ``brand`` is a brand name
    settled elsewhere (a verified declared value); when given, only the
    fanciful name is picked. The fanciful name's confidence is always below
    the brand's, and there is no fanciful name without a brand.
    """
    claimed = list(claimed)
    if brand is None:
        ranked = _ranked_lines(text, claimed)
        if not ranked:
            return None, None
        brand = _found(
            "brand_name", ranked[0][1], 70,
            "Most prominent unclaimed line near the top of the label",
        )
    if not brand.found:
        return brand, None

    fanciful_confidence = min(60, brand.confidence - 10)
    ranked = _ranked_lines(text, claimed + [brand.source_text or brand.value])
    if not ranked or fanciful_confidence <= 0:
        return brand, None
    fanciful = _found(
        "fanciful_name", ranked[0][1], fanciful_confidence,
        "Secondary unclaimed line after the brand name",
    )
    return brand, fanciful


def extract_fields(
    text: str,
    beverage_type: Optional[BeverageType],
    field_names: Iterable[str],
    claimed: Iterable[str] = (),
    brand: Optional[ExtractedField] = None,
) -> Dict[str, ExtractedField]:
    """Run the extractors for the requested fields.

    Pass one runs every pattern extractor; pass two assigns brand and
    fanciful names from what the first pass left unclaimed. A ``brand``
    already verified by the caller is kept and only the fanciful name is
    picked around it. Fields with no evidence are absent from the returned
    mapping.
    """
    requested = list(field_names)
    results: Dict[str, ExtractedField] = {}
    if not text or not text.strip():
        return results

    for name in requested:
        extractor = FIELD_EXTRACTORS.get(name)
        if extractor is None:
            continue
        try:
            extracted = extractor(text, beverage_type)
        except Exception as e:
            logger.exception(f"Extractor for {name} failed: {e}")
            extracted = None
        if extracted is not None:
            results[name] = extracted

    if "brand_name" in requested or "fanciful_name" in requested:
        taken = list(claimed) + [f.source_text or f.value for f in results.values()]
        # Remove canonical values too ("Contains Sulfites", qualifying phrases)
        taken += [f.value for f in results.values()]
        try:
            brand, fanciful = extract_brand_and_fanciful(text, taken, brand=brand)
        except Exception as e:
            logger.exception(f"Brand extraction failed: {e}")
            brand, fanciful = None, None
        if brand is not None and "brand_name" in requested:
            results["brand_name"] = brand
        if fanciful is not None and "fanciful_name" in requested:
            results["fanciful_name"] = fanciful

    return results
