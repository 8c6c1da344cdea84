"""Pydantic schemas for API requests and responses."""

from pydantic import BaseModel, Field
from typing import Optional

from ..services.catalog import BeverageType, ImageRole
from ..services.comparison import ComparisonStatus


# =============================================================================
# API schemas
# =============================================================================

class RectModel(BaseModel):
    """Bounding box in image pixels."""
    x: float
    y: float
    width: float
    height: float


class FieldResult(BaseModel):
    """A classified label field."""
    field_name: str
    display_name: str
    form_field: Optional[str] = None  # application form key
    value: Optional[str] = None
    confidence: int = Field(0, ge=0, le=100)
    reasoning: Optional[str] = None
    bounding_box: Optional[RectModel] = None
    image_index: Optional[int] = None
    word_indices: list[int] = []

    class Config:
        json_schema_extra = {
            "example": {
                "field_name": "alcohol_content",
                "display_name": "Alcohol Content",
                "form_field": "alcoholContent",
                "value": "45% Alc./Vol.",
                "confidence": 90,
                "reasoning": "Exact match (substring)",
                "bounding_box": {"x": 112, "y": 640, "width": 210, "height": 28},
                "image_index": 0,
                "word_indices": [2, 3],
            }
        }


class ImageClassificationResult(BaseModel):
    image_index: int
    image_type: ImageRole
    confidence: int = Field(ge=0, le=100)


class ComparisonResult(BaseModel):
    """Declared value versus label value."""
    field_name: str
    status: ComparisonStatus
    normalized_declared: str
    normalized_extracted: Optional[str] = None
    confidence: int = Field(ge=0, le=100)
    reasoning: str


class ApplicantCorrectionResult(BaseModel):
    """A field the applicant changed after the pre-fill suggestion."""
    field_name: str
    ai_value: Optional[str] = None
    applicant_value: Optional[str] = None
    minor: bool


class MetricsResult(BaseModel):
    """Timing and usage for one pipeline run."""
    ocr_time_ms: int
    classification_time_ms: int
    merge_time_ms: int
    total_time_ms: int
    input_tokens: int
    output_tokens: int
    total_tokens: int
    image_count: int
    word_count: int


class ClassifyRequest(BaseModel):
    """Rule-based classification of already-recognized text."""
    full_text: str = Field(..., description="Combined OCR text")
    beverage_type: Optional[BeverageType] = None
    declared_values: Optional[dict[str, Optional[str]]] = Field(
        None, description="Application values keyed by field name (verification mode)"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "full_text": "BULLEIT BOURBON\n45% Alc./Vol. (90 Proof)\n750 mL",
                "beverage_type": "distilled_spirits",
                "declared_values": {"brand_name": "BULLEIT", "alcohol_content": "45% Alc./Vol."},
            }
        }


class ClassifyResponse(BaseModel):
    fields: list[FieldResult]
    detected_beverage_type: Optional[BeverageType] = None


class CompareRequest(BaseModel):
    field_name: str = Field(..., min_length=1)
    declared_value: Optional[str] = None
    extracted_value: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "field_name": "net_contents",
                "declared_value": "750 mL",
                "extracted_value": "75 cL",
            }
        }


class ExtractionResponse(BaseModel):
    """Response for image extraction through the pipeline."""
    success: bool
    model_used: Optional[str] = None
    detected_beverage_type: Optional[BeverageType] = None
    fields: list[FieldResult] = []
    image_classifications: list[ImageClassificationResult] = []
    comparisons: list[ComparisonResult] = []
    applicant_corrections: list[ApplicantCorrectionResult] = []
    metrics: Optional[MetricsResult] = None
    error: Optional[str] = None

    class Config:
        protected_namespaces = ()


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": False,
                "error": "Invalid image format",
                "detail": "Allowed formats: PNG, JPG, JPEG, WEBP"
            }
        }


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    ocr_ready: bool
    llm_available: bool
