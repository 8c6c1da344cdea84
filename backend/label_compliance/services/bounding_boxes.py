"""Map classified field values back to OCR word boxes."""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .fields import ExtractedField, OCRResult, OCRWord, Rect
from .normalizer import collapse_spaces, normalize_text

logger = logging.getLogger(__name__)

MAX_RUN_WORDS = 60
MIN_COVERAGE = 0.6


@dataclass(frozen=True)
class IndexedWord:
    """An OCR word with its position in the combined, cross-image word list."""
    global_index: int
    image_index: int
    local_index: int
    word: OCRWord

    @property
    def text(self) -> str:
        return self.word.text


def build_combined_word_list(ocr_results: Sequence[OCRResult]) -> List[IndexedWord]:
    combined = []
    global_index = 0
    for image_index, result in enumerate(ocr_results):
        for local_index, word in enumerate(result.words):
            combined.append(IndexedWord(global_index, image_index, local_index, word))
            global_index += 1
    return combined


def _match_key(s: str) -> str:
    # Spacing is dropped so OCR splits like "75 0mL" still line up
    return collapse_spaces(normalize_text(s))


def find_matching_words(value: str, words: Sequence[IndexedWord]) -> List[IndexedWord]:
    """Best run of consecutive OCR words spelling out ``value``.

    Returns the first exact run, else the run covering the largest share of
    the value (at least 60%), else an empty list.
    """
    target = _match_key(value)
    if not target:
        return []

    best: List[IndexedWord] = []
    best_score = 0.0
    for i in range(len(words)):
        if not _match_key(words[i].text):
            continue  # punctuation-only tokens never start a run
        accumulated = ""
        run: List[IndexedWord] = []
        for j in range(i, min(len(words), i + MAX_RUN_WORDS)):
            accumulated += _match_key(words[j].text)
            run.append(words[j])
            if accumulated == target:
                return run
            if accumulated in target:
                score = len(accumulated) / len(target)
                if score > best_score:
                    best_score, best = score, list(run)
            elif target in accumulated:
                if best_score < 1.0:
                    best_score, best = 1.0, list(run)
                break
            if len(accumulated) > len(target) * 1.5 + 20:
                break

    return best if best_score >= MIN_COVERAGE else []


def union_rect(words: Sequence[IndexedWord]) -> Optional[Rect]:
    """Smallest rectangle covering every word, or None for no words."""
    if not words:
        return None
    return Rect.union(w.word.bounding_box for w in words)


def _words_for_indices(indices: Sequence[int], words: Sequence[IndexedWord]) -> List[IndexedWord]:
    by_index = {w.global_index: w for w in words}
    return [by_index[i] for i in indices if i in by_index]


def merge_bounding_boxes(
    fields: Sequence[ExtractedField],
    ocr_results: Sequence[OCRResult],
) -> List[ExtractedField]:
    """Attach a pixel-space bounding box to every found field.

    Word indices supplied by the classifier are used when present; otherwise
    the field's source text (or value) is matched against every image's word
    list. The box covers the matched words on the image holding most of them.
    """
    words = build_combined_word_list(ocr_results)
    merged = []
    for f in fields:
        if not f.found or not words:
            merged.append(f)
            continue

        matched = _words_for_indices(f.word_indices, words) if f.word_indices else []
        if not matched and f.source_text:
            matched = find_matching_words(f.source_text, words)
        if not matched:
            matched = find_matching_words(f.value, words)
        if not matched:
            merged.append(f)
            continue

        counts: Dict[int, int] = {}
        for w in matched:
            counts[w.image_index] = counts.get(w.image_index, 0) + 1
        image_index = max(counts, key=lambda idx: (counts[idx], -idx))
        on_image = [w for w in matched if w.image_index == image_index]
        box = union_rect(on_image)
        merged.append(f.with_location(box, image_index, [w.global_index for w in matched]))

    located = sum(1 for f in merged if f.bounding_box is not None)
    logger.debug(f"Bounding boxes located for {located}/{sum(1 for f in fields if f.found)} fields")
    return merged
