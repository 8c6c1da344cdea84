"""Pydantic models for request/response schemas."""

from .schemas import (
    RectModel,
    FieldResult,
    ImageClassificationResult,
    ComparisonResult,
    ApplicantCorrectionResult,
    MetricsResult,
    ClassifyRequest,
    ClassifyResponse,
    CompareRequest,
    ExtractionResponse,
    ErrorResponse,
    HealthResponse,
)

__all__ = [
    "RectModel",
    "FieldResult",
    "ImageClassificationResult",
    "ComparisonResult",
    "ApplicantCorrectionResult",
    "MetricsResult",
    "ClassifyRequest",
    "ClassifyResponse",
    "CompareRequest",
    "ExtractionResponse",
    "ErrorResponse",
    "HealthResponse",
]
