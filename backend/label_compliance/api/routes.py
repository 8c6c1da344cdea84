"""API route definitions."""

import json
from fastapi import APIRouter, Depends, UploadFile, File, Form, HTTPException
from typing import Dict, Iterable, List, Optional
import logging

from ..models import (
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
from ..services import (
    EasyOCRProvider,
    ExtractedField,
    LLMProvider,
    OCRProvider,
    OpenAIChatProvider,
    PipelineError,
    compare_field,
    extract_label_fields_for_submission,
    extract_label_fields_local,
    get_catalog,
    is_llm_available,
    rule_classify,
    validate_image,
)
from ..services.catalog import parse_beverage_type
from ..services.comparison import ComparisonOutcome
from ..services.pipeline import LOCAL_MODEL_NAME
from ..config import get_settings
from .. import __version__

logger = logging.getLogger(__name__)
router = APIRouter()

# Initialize services
ocr_provider = EasyOCRProvider()


def get_ocr_provider() -> OCRProvider:
    return ocr_provider


def get_llm_provider() -> Optional[LLMProvider]:
    """OpenAI provider when a key is configured, else None (cloud mode then fails)."""
    if not is_llm_available():
        return None
    return OpenAIChatProvider()


def _field_results(fields: Iterable[ExtractedField]) -> List[FieldResult]:
    catalog = get_catalog()
    results = []
    for f in fields:
        box = f.bounding_box
        results.append(FieldResult(
            field_name=f.field_name,
            display_name=catalog.display_name(f.field_name),
            form_field=catalog.form_key_for(f.field_name),
            value=f.value,
            confidence=f.confidence,
            reasoning=f.reasoning,
            bounding_box=RectModel(x=box.x, y=box.y, width=box.width, height=box.height) if box else None,
            image_index=f.image_index,
            word_indices=list(f.word_indices),
        ))
    return results


def _comparison_result(outcome: ComparisonOutcome) -> ComparisonResult:
    return ComparisonResult(
        field_name=outcome.field_name,
        status=outcome.status,
        normalized_declared=outcome.normalized_declared,
        normalized_extracted=outcome.normalized_extracted,
        confidence=outcome.confidence,
        reasoning=outcome.reasoning,
    )


def _parse_field_map(raw: Optional[str], form_name: str) -> Dict[str, Optional[str]]:
    """Parse a JSON object of field values keyed by field name or form key."""
    if not raw or not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail=f"{form_name} must be a JSON object")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail=f"{form_name} must be a JSON object")

    catalog = get_catalog()
    values = {}
    for key, value in data.items():
        if value is not None and not isinstance(value, str):
            value = str(value)
        field_name = key if key in catalog else catalog.field_name_for_form_key(key)
        if field_name is None:
            logger.warning(f"Ignoring unknown field '{key}' in {form_name}")
            continue
        values[field_name] = value
    return values


@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(provider: OCRProvider = Depends(get_ocr_provider)):
    """Check API health, OCR readiness and LLM availability."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        ocr_ready=bool(getattr(provider, "is_ready", True)),
        llm_available=is_llm_available(),
    )


@router.post("/classify", response_model=ClassifyResponse, tags=["Classification"])
async def classify_text(request: ClassifyRequest):
    """
    Classify label fields in already-recognized text with the rule-based classifier.

    With declared values each declared field is verified against the text;
    remaining fields are extracted.
    """
    result = rule_classify(request.full_text, request.beverage_type, request.declared_values)
    return ClassifyResponse(
        fields=_field_results(result.fields),
        detected_beverage_type=result.detected_beverage_type,
    )


@router.post(
    "/compare",
    response_model=ComparisonResult,
    responses={400: {"model": ErrorResponse, "description": "Unknown field"}},
    tags=["Classification"],
)
async def compare_values(request: CompareRequest):
    """Compare a declared application value with the value read from the label."""
    if request.field_name not in get_catalog():
        raise HTTPException(status_code=400, detail=f"Unknown field '{request.field_name}'")
    outcome = compare_field(request.field_name, request.declared_value, request.extracted_value)
    return _comparison_result(outcome)


@router.post(
    "/extract",
    response_model=ExtractionResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input"},
    },
    tags=["Extraction"],
)
async def extract_fields(
    images: List[UploadFile] = File(..., description="Label image files (front, back, neck...)"),
    beverage_type: Optional[str] = Form(None, description="distilled_spirits, wine or malt_beverage"),
    mode: str = Form("local", description="local (rule-based) or cloud (language model)"),
    declared_values: Optional[str] = Form(None, description="JSON object of application values"),
    prior_fields: Optional[str] = Form(None, description="JSON object of earlier pre-filled values"),
    ocr: OCRProvider = Depends(get_ocr_provider),
    llm: Optional[LLMProvider] = Depends(get_llm_provider),
):
    """
    Run OCR, classification and bounding-box merge over label images.

    Declared values are compared with the classified fields; prior fields
    (the pre-fill suggestion) are diffed against the declared values to
    report applicant corrections.
    """
    settings = get_settings()

    if mode not in ("local", "cloud"):
        raise HTTPException(status_code=400, detail="mode must be 'local' or 'cloud'")
    if len(images) > settings.max_images_per_request:
        raise HTTPException(
            status_code=400,
            detail=f"Too many images. Maximum is {settings.max_images_per_request} per request."
        )

    bev_type = parse_beverage_type(beverage_type)
    if beverage_type and bev_type is None:
        raise HTTPException(status_code=400, detail=f"Unknown beverage type '{beverage_type}'")

    declared = _parse_field_map(declared_values, "declared_values")
    prior = _parse_field_map(prior_fields, "prior_fields")

    buffers = []
    for upload_file in images:
        try:
            image_bytes = await upload_file.read()
        except Exception as e:
            logger.error(f"Failed to read uploaded image: {e}")
            raise HTTPException(status_code=400, detail="Failed to read uploaded image")

        is_valid, error_msg = validate_image(image_bytes, upload_file.filename or "unknown")
        if not is_valid:
            return ExtractionResponse(success=False, error=f"{upload_file.filename}: {error_msg}")
        buffers.append(image_bytes)

    try:
        if mode == "cloud":
            result = await extract_label_fields_for_submission(
                prior, bev_type, declared, buffers, ocr_provider=ocr, llm_provider=llm,
            )
        else:
            result = await extract_label_fields_local(
                prior, bev_type, declared, buffers, ocr_provider=ocr,
            )
    except PipelineError as e:
        logger.error(f"Extraction failed at {e.stage}: {e}")
        metrics = MetricsResult(**vars(e.metrics)) if e.metrics else None
        return ExtractionResponse(
            success=False,
            model_used=settings.llm_model if mode == "cloud" else LOCAL_MODEL_NAME,
            metrics=metrics,
            error=str(e),
        )

    return ExtractionResponse(
        success=True,
        model_used=result.model_used,
        detected_beverage_type=result.detected_beverage_type,
        fields=_field_results(result.fields),
        image_classifications=[
            ImageClassificationResult(
                image_index=c.image_index, image_type=c.image_type, confidence=c.confidence
            )
            for c in result.image_classifications
        ],
        comparisons=[_comparison_result(c) for c in result.comparisons.values()],
        applicant_corrections=[
            ApplicantCorrectionResult(
                field_name=c.field_name,
                ai_value=c.ai_value,
                applicant_value=c.applicant_value,
                minor=c.minor,
            )
            for c in result.applicant_corrections
        ],
        metrics=MetricsResult(**vars(result.metrics)),
    )
