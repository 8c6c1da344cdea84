"""Result types shared by the classifiers, the bounding-box merge and the pipeline."""

from dataclasses import dataclass, field, replace
from typing import Iterable, List, Optional, Tuple

from .catalog import BeverageType, ImageRole


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in image pixel space."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @classmethod
    def union(cls, rects: Iterable["Rect"]) -> Optional["Rect"]:
        """Smallest rectangle covering every input rectangle."""
        rects = list(rects)
        if not rects:
            return None
        left = min(r.x for r in rects)
        top = min(r.y for r in rects)
        right = max(r.right for r in rects)
        bottom = max(r.bottom for r in rects)
        return cls(x=left, y=top, width=right - left, height=bottom - top)


@dataclass(frozen=True)
class ExtractedField:
    """A classified label field.

    ``value is None`` with ``confidence == 0`` means not found; a value is
    always reported with a positive confidence.
    """
    field_name: str
    value: Optional[str] = None
    confidence: int = 0
    reasoning: Optional[str] = None
    bounding_box: Optional[Rect] = None
    image_index: Optional[int] = None
    word_indices: Tuple[int, ...] = ()
    source_text: Optional[str] = None  # OCR span the value was read from

    def __post_init__(self):
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"confidence {self.confidence} outside [0, 100] for {self.field_name}")
        if self.value is None and self.confidence != 0:
            raise ValueError(f"{self.field_name}: missing value must have confidence 0")
        if self.value is not None and self.confidence == 0:
            raise ValueError(f"{self.field_name}: found value must have confidence > 0")

    @property
    def found(self) -> bool:
        return self.value is not None

    @classmethod
    def not_found(cls, field_name: str, reasoning: Optional[str] = None) -> "ExtractedField":
        return cls(field_name=field_name, value=None, confidence=0, reasoning=reasoning)

    def with_location(
        self,
        bounding_box: Optional[Rect],
        image_index: Optional[int],
        word_indices: Iterable[int],
    ) -> "ExtractedField":
        return replace(
            self,
            bounding_box=bounding_box,
            image_index=image_index,
            word_indices=tuple(word_indices),
        )


@dataclass(frozen=True)
class ImageClassification:
    """Role assigned to one label image."""
    image_index: int
    image_type: ImageRole
    confidence: int


@dataclass(frozen=True)
class ClassificationResult:
    """Output of one classification call."""
    fields: Tuple[ExtractedField, ...]
    detected_beverage_type: Optional[BeverageType] = None
    image_classifications: Tuple[ImageClassification, ...] = ()

    def get(self, field_name: str) -> Optional[ExtractedField]:
        for f in self.fields:
            if f.field_name == field_name:
                return f
        return None

    @property
    def found_fields(self) -> List[ExtractedField]:
        return [f for f in self.fields if f.found]


@dataclass(frozen=True)
class TokenUsage:
    """LLM token usage; zero for the rule-based path."""
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class ClassificationResponse:
    result: ClassificationResult
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass(frozen=True)
class OCRWord:
    """One recognized token."""
    text: str
    bounding_box: Rect
    image_index: int = 0
    confidence: float = 1.0


@dataclass(frozen=True)
class OCRResult:
    """OCR output for a single image."""
    full_text: str
    words: Tuple[OCRWord, ...] = ()
    image_width: int = 0
    image_height: int = 0

    @classmethod
    def empty(cls) -> "OCRResult":
        return cls(full_text="", words=())
