"""Services for field classification, comparison, OCR, and the extraction pipeline."""

from .catalog import BeverageType, ImageRole, FieldCatalog, FieldDefinition, get_catalog
from .errors import (
    LabelEngineError,
    LLMProviderError,
    LLMResponseError,
    OCRError,
    PipelineError,
    PipelineTimeoutError,
)
from .fields import (
    Rect,
    ExtractedField,
    ClassificationResult,
    ClassificationResponse,
    ImageClassification,
    TokenUsage,
    OCRWord,
    OCRResult,
)
from .rule_classifier import rule_classify
from .comparison import ComparisonStatus, ComparisonOutcome, compare_field, compare_fields
from .llm_classifier import (
    LLMProvider,
    OpenAIChatProvider,
    llm_extract_fields,
    classify_fields_for_submission,
    is_llm_available,
)
from .ocr import OCRProvider, OCRService, EasyOCRProvider, validate_image
from .bounding_boxes import merge_bounding_boxes
from .image_roles import classify_images_from_ocr, detect_beverage_type
from .pipeline import (
    PipelineMetrics,
    PipelineResult,
    ApplicantCorrection,
    extract_label_fields_for_submission,
    extract_label_fields_local,
)

__all__ = [
    "BeverageType",
    "ImageRole",
    "FieldCatalog",
    "FieldDefinition",
    "get_catalog",
    "LabelEngineError",
    "LLMProviderError",
    "LLMResponseError",
    "OCRError",
    "PipelineError",
    "PipelineTimeoutError",
    "Rect",
    "ExtractedField",
    "ClassificationResult",
    "ClassificationResponse",
    "ImageClassification",
    "TokenUsage",
    "OCRWord",
    "OCRResult",
    "rule_classify",
    "ComparisonStatus",
    "ComparisonOutcome",
    "compare_field",
    "compare_fields",
    "LLMProvider",
    "OpenAIChatProvider",
    "llm_extract_fields",
    "classify_fields_for_submission",
    "is_llm_available",
    "OCRProvider",
    "OCRService",
    "EasyOCRProvider",
    "validate_image",
    "merge_bounding_boxes",
    "classify_images_from_ocr",
    "detect_beverage_type",
    "PipelineMetrics",
    "PipelineResult",
    "ApplicantCorrection",
    "extract_label_fields_for_submission",
    "extract_label_fields_local",
]
