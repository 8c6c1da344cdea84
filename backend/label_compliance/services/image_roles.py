"""Keyword heuristics over OCR text: beverage type and front/back image roles."""

import re
import logging
from typing import Dict, List, Optional, Sequence

from .catalog import BeverageType, ImageRole
from .fields import ImageClassification, OCRResult

logger = logging.getLogger(__name__)

BEVERAGE_TYPE_KEYWORDS: Dict[BeverageType, List[str]] = {
    BeverageType.DISTILLED_SPIRITS: [
        "whiskey", "whisky", "bourbon", "vodka", "gin", "rum", "tequila",
        "mezcal", "brandy", "cognac", "scotch", "proof", "distilled by",
        "distilled from", "blended whiskey", "straight bourbon", "single malt",
        "rye whiskey", "corn whiskey", "liqueur", "cordial", "absinthe",
        "schnapps", "grappa", "pisco", "soju", "shochu", "baijiu", "aquavit",
        "moonshine",
    ],
    BeverageType.WINE: [
        "wine", "cabernet", "chardonnay", "merlot", "pinot", "sauvignon",
        "riesling", "zinfandel", "syrah", "shiraz", "malbec", "tempranillo",
        "sangiovese", "moscato", "prosecco", "champagne", "vintage",
        "sulfites", "contains sulfites", "appellation", "vineyard",
        "estate bottled", "vinted by", "cellared by", "produced and bottled",
        "viognier", "gewurztraminer", "grenache", "rosé", "rose", "sparkling",
        "varietal", "cuvée", "cuvee", "terroir",
    ],
    BeverageType.MALT_BEVERAGE: [
        "ale", "lager", "beer", "stout", "ipa", "porter", "pilsner",
        "brewed by", "brewed with", "brewing", "brewery", "craft beer",
        "wheat beer", "hefeweizen", "pale ale", "amber ale", "brown ale",
        "sour ale", "session ale", "double ipa", "imperial stout",
        "hard seltzer", "hard cider", "malt liquor", "malt beverage",
        "flavored malt", "hops", "barley", "saison", "gose", "kölsch",
        "kolsch", "bock", "dunkel", "märzen", "marzen",
    ],
}

FRONT_LABEL_KEYWORDS = [
    "reserve", "estate", "vintage", "aged", "barrel", "single malt",
    "small batch", "craft", "limited edition", "special release",
]

BACK_LABEL_KEYWORDS = [
    "government warning", "according to the surgeon general",
    "women should not drink", "contains sulfites", "name and address",
    "produced and bottled by", "produced & bottled by", "bottled by",
    "distilled by", "imported by", "vinted by", "cellared by",
    "net contents", "alc.", "alc ", "% by vol", "by volume",
]


def _keyword_hits(text: str, keywords: Sequence[str]) -> int:
    hits = 0
    for keyword in keywords:
        if re.search(r"(?<![a-z])" + re.escape(keyword) + r"(?![a-z])", text):
            hits += 1
    return hits


def detect_beverage_type(text: str) -> Optional[BeverageType]:
    """Guess the beverage type from keyword hits.

    The winner needs at least one hit and a strict lead over the runner-up;
    otherwise the result is None.
    """
    if not text:
        return None
    lower = text.lower()
    scores = {
        bev_type: _keyword_hits(lower, keywords)
        for bev_type, keywords in BEVERAGE_TYPE_KEYWORDS.items()
    }
    ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    (winner, best), (_, runner_up) = ranked[0], ranked[1]
    if best == 0 or best - runner_up < 1:
        return None
    logger.debug(f"Detected beverage type {winner.value} (scores={scores})")
    return winner


def classify_images_from_ocr(ocr_results: Sequence[OCRResult]) -> List[ImageClassification]:
    """Assign front/back/other roles to label images from their OCR text.

    A single image is always the front. With several images, the one with
    the strongest front-minus-back keyword signal is the front (fewest words
    when no keyword fires); the rest are back labels when they carry at least
    two regulatory keywords.
    """
    if not ocr_results:
        return []
    if len(ocr_results) == 1:
        return [ImageClassification(image_index=0, image_type=ImageRole.FRONT, confidence=90)]

    scores = []
    for result in ocr_results:
        text = result.full_text.lower()
        scores.append((
            sum(1 for kw in FRONT_LABEL_KEYWORDS if kw in text),
            sum(1 for kw in BACK_LABEL_KEYWORDS if kw in text),
            len(result.words),
        ))

    if all(front == 0 and back == 0 for front, back, _ in scores):
        front_index = min(range(len(scores)), key=lambda i: scores[i][2])
    else:
        front_index = max(
            range(len(scores)),
            key=lambda i: (scores[i][0] - scores[i][1] - scores[i][2] / 100, -i),
        )

    classifications = []
    for i, (_, back, _) in enumerate(scores):
        if i == front_index:
            classifications.append(ImageClassification(i, ImageRole.FRONT, 80))
        elif back >= 2:
            classifications.append(ImageClassification(i, ImageRole.BACK, 80))
        else:
            classifications.append(ImageClassification(i, ImageRole.OTHER, 60))
    return classifications
