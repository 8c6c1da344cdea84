"""Match cascade for locating a declared value in OCR text.

Each strategy is a pure callable ``(text, candidate) -> MatchAttempt | None``.
``run_cascade`` tries them in order and returns the first success, so a
cheap precise match always wins over a fuzzy one on the same text.

Confidence bands:
- exact substring: 95 (whole line) / 90
- punctuation-stripped: 88
- punctuation-stripped + space-collapsed: 85
- fuzzy sliding window: 70-90, scaled by similarity
- token overlap: 75-85, scaled by overlap fraction
"""

import re
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Callable, List, Optional, Sequence

from rapidfuzz.distance import Levenshtein

from .normalizer import (
    collapse_spaces,
    normalize_ampersand,
    normalize_text,
    normalize_whitespace,
    strip_punctuation,
)
from ..config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchAttempt:
    """A successful match of a candidate value against OCR text."""
    strategy: str
    confidence: int
    matched_text: Optional[str] = None
    similarity: float = 1.0
    detail: str = ""


MatchStrategy = Callable[[str, str], Optional[MatchAttempt]]


def _word_pattern(candidate: str, bounded: bool = True) -> Optional[re.Pattern]:
    """Regex for the candidate's words, allowing any whitespace between them."""
    words = candidate.split()
    if not words:
        return None
    body = r"\s+".join(re.escape(w) for w in words)
    if bounded:
        body = r"(?<![a-z0-9])" + body + r"(?![a-z0-9])"
    return re.compile(body, re.IGNORECASE)


def _is_whole_line(text: str, start: int, end: int) -> bool:
    line_start = text.rfind("\n", 0, start) + 1
    line_end = text.find("\n", end)
    if line_end == -1:
        line_end = len(text)
    return not text[line_start:start].strip() and not text[end:line_end].strip()


def exact_match(text: str, candidate: str) -> Optional[MatchAttempt]:
    """Case-insensitive substring match.

    A hit on word boundaries is preferred so "Old Tom" lands on its own line
    rather than inside "Old Tomato". Text glued together by OCR
    ("BulleitBourbon", "45%Alc./Vol.") still counts as a verbatim hit.
    """
    candidate = normalize_whitespace(candidate)
    pattern = _word_pattern(candidate)
    if pattern is None or not text:
        return None
    match = pattern.search(text)
    if match:
        if _is_whole_line(text, match.start(), match.end()):
            return MatchAttempt("exact", 95, match.group(0), detail="whole line")
        return MatchAttempt("exact", 90, match.group(0), detail="substring")
    match = _word_pattern(candidate, bounded=False).search(text)
    if not match:
        return None
    return MatchAttempt("exact", 90, match.group(0), detail="substring")


def punctuation_match(text: str, candidate: str) -> Optional[MatchAttempt]:
    """Substring match after stripping punctuation from both sides."""
    stripped_candidate = strip_punctuation(candidate)
    pattern = _word_pattern(stripped_candidate)
    if pattern is None:
        return None
    match = pattern.search(strip_punctuation(text))
    if not match:
        return None
    return MatchAttempt("punctuation", 88, match.group(0))


def collapsed_match(text: str, candidate: str) -> Optional[MatchAttempt]:
    """Punctuation-stripped, whitespace-free substring match.

    Catches OCR that drops or inserts word separators ("750mL" vs "750 mL").
    """
    needle = collapse_spaces(strip_punctuation(candidate)).lower()
    if not needle:
        return None
    haystack = collapse_spaces(strip_punctuation(text)).lower()
    if needle not in haystack:
        return None
    return MatchAttempt("collapsed", 85)


def with_ampersand_pass(strategy: MatchStrategy) -> MatchStrategy:
    """Retry a strategy with "&" canonicalized to "and" on both sides.

    The retried match keeps the confidence of the wrapped strategy.
    """
    @wraps(strategy)
    def wrapper(text: str, candidate: str) -> Optional[MatchAttempt]:
        attempt = strategy(text, candidate)
        if attempt is not None:
            return attempt
        amp_text = normalize_ampersand(text)
        amp_candidate = normalize_ampersand(candidate)
        if amp_text == text and amp_candidate == candidate:
            return None
        attempt = strategy(amp_text, amp_candidate)
        if attempt is None:
            return None
        return MatchAttempt(
            strategy=attempt.strategy,
            confidence=attempt.confidence,
            matched_text=attempt.matched_text,
            similarity=attempt.similarity,
            detail=f"{attempt.detail} (ampersand normalized)".strip(),
        )
    return wrapper


def _scale(value: float, low: float, high: float, floor: int, ceiling: int) -> int:
    if high <= low:
        return ceiling
    fraction = (value - low) / (high - low)
    score = round(floor + fraction * (ceiling - floor))
    return max(floor, min(ceiling, score))


def fuzzy_window_match(
    text: str,
    candidate: str,
    threshold: Optional[float] = None,
    min_length: Optional[int] = None,
) -> Optional[MatchAttempt]:
    """Slide word windows over the text and score by edit distance.

    Window sizes span the candidate's word count +/- 1. The best window is
    accepted when its normalized Levenshtein similarity reaches the threshold.
    """
    settings = get_settings()
    if threshold is None:
        threshold = settings.fuzzy_match_threshold
    if min_length is None:
        min_length = settings.fuzzy_min_length

    target = normalize_text(candidate)
    if len(target) < min_length:
        return None
    words = normalize_text(text).split()
    if not words:
        return None

    target_len = len(target.split())
    best_score = 0.0
    best_window = None
    for size in range(max(1, target_len - 1), target_len + 2):
        if size > len(words):
            break
        for i in range(len(words) - size + 1):
            window = " ".join(words[i:i + size])
            score = Levenshtein.normalized_similarity(target, window)
            if score > best_score:
                best_score = score
                best_window = window

    if best_window is None or best_score < threshold:
        return None

    confidence = _scale(best_score, threshold, 1.0, 70, 90)
    logger.debug(f"Fuzzy window match '{best_window}' for '{candidate}' ({best_score:.2f})")
    return MatchAttempt(
        "fuzzy",
        confidence,
        best_window,
        similarity=best_score,
        detail=f"similarity {best_score:.0%}",
    )


def significant_tokens(candidate: str, min_length: Optional[int] = None) -> List[str]:
    """Distinct tokens of at least ``min_length`` characters after punctuation stripping."""
    if min_length is None:
        min_length = get_settings().token_min_length
    tokens = []
    for token in normalize_text(candidate).split():
        if len(token) >= min_length and token not in tokens:
            tokens.append(token)
    return tokens


def token_overlap_match(
    text: str,
    candidate: str,
    min_ratio: Optional[float] = None,
    min_tokens: Optional[int] = None,
) -> Optional[MatchAttempt]:
    """Order-independent match on the fraction of significant tokens present.

    Only activates with at least ``min_tokens`` significant tokens, which keeps
    short values from matching on scattered common words.
    """
    settings = get_settings()
    if min_ratio is None:
        min_ratio = settings.token_overlap_min_ratio
    if min_tokens is None:
        min_tokens = settings.token_min_count

    tokens = significant_tokens(candidate)
    if len(tokens) < min_tokens:
        return None

    normalized = normalize_text(text)
    if not normalized:
        return None
    text_words = set(normalized.split())
    found = [t for t in tokens if t in text_words or t in normalized]
    ratio = len(found) / len(tokens)
    if ratio < min_ratio:
        return None

    confidence = _scale(ratio, min_ratio, 1.0, 75, 85)
    return MatchAttempt(
        "token_overlap",
        confidence,
        " ".join(found),
        similarity=ratio,
        detail=f"{len(found)}/{len(tokens)} tokens found",
    )


DEFAULT_CASCADE: Sequence[MatchStrategy] = (
    with_ampersand_pass(exact_match),
    with_ampersand_pass(punctuation_match),
    with_ampersand_pass(collapsed_match),
    fuzzy_window_match,
    token_overlap_match,
)


def run_cascade(
    text: str,
    candidate: str,
    strategies: Optional[Sequence[MatchStrategy]] = None,
) -> Optional[MatchAttempt]:
    """Return the first strategy's match, or None when nothing matches."""
    if not text or not candidate or not candidate.strip():
        return None
    for strategy in strategies if strategies is not None else DEFAULT_CASCADE:
        attempt = strategy(text, candidate)
        if attempt is not None:
            return attempt
    return None
