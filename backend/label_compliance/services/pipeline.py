"""Extraction pipeline: OCR -> classification -> bounding-box merge.

Both entry points run the same stages and differ only in the classifier:
the submission pipeline asks the language model, the local pipeline uses
the rule-based classifier and spends no tokens. A run either returns a
complete ``PipelineResult`` or raises ``PipelineError``.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from .bounding_boxes import merge_bounding_boxes
from .catalog import BeverageType, get_catalog
from .comparison import ComparisonOutcome, compare_fields
from .errors import LabelEngineError, OCRError, PipelineError, PipelineTimeoutError
from .fields import ClassificationResult, ExtractedField, ImageClassification, OCRResult
from .image_roles import classify_images_from_ocr
from .llm_classifier import LLMProvider, classify_fields_for_submission
from .ocr import OCRProvider
from ..config import get_settings

logger = logging.getLogger(__name__)

LOCAL_MODEL_NAME = "rule-based"

# A mismatch on these can be fixed within the correction window
MINOR_DISCREPANCY_FIELDS = frozenset({
    "brand_name",
    "fanciful_name",
    "appellation_of_origin",
    "grape_varietal",
})


@dataclass
class PipelineMetrics:
    """Stage timings (ms), token usage and input sizes for one run."""
    ocr_time_ms: int = 0
    classification_time_ms: int = 0
    merge_time_ms: int = 0
    total_time_ms: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    image_count: int = 0
    word_count: int = 0


@dataclass(frozen=True)
class ApplicantCorrection:
    """A pre-filled value the applicant replaced before submitting."""
    field_name: str
    ai_value: str
    applicant_value: str
    minor: bool


@dataclass
class PipelineResult:
    fields: List[ExtractedField]
    model_used: str
    metrics: PipelineMetrics
    detected_beverage_type: Optional[BeverageType] = None
    image_classifications: List[ImageClassification] = field(default_factory=list)
    comparisons: Dict[str, ComparisonOutcome] = field(default_factory=dict)
    applicant_corrections: List[ApplicantCorrection] = field(default_factory=list)


def combine_ocr_text(ocr_results: Sequence[OCRResult]) -> str:
    """Join per-image text, each block headed by a ``--- Image N ---`` marker."""
    return "\n\n".join(
        f"--- Image {i + 1} ---\n{result.full_text}" for i, result in enumerate(ocr_results)
    )


def compute_applicant_corrections(
    prior_fields: Optional[Mapping[str, Optional[str]]],
    declared_values: Optional[Mapping[str, Optional[str]]],
) -> List[ApplicantCorrection]:
    """Fields where the declared value differs from the earlier pre-fill.

    Only fields with both a pre-fill value and a non-blank declared value
    count; comparison is on trimmed text.
    """
    if not prior_fields or not declared_values:
        return []

    corrections = []
    for field_name, ai_value in prior_fields.items():
        if not ai_value or not ai_value.strip():
            continue
        submitted = (declared_values.get(field_name) or "").strip()
        if submitted and submitted != ai_value.strip():
            corrections.append(ApplicantCorrection(
                field_name=field_name,
                ai_value=ai_value.strip(),
                applicant_value=submitted,
                minor=field_name in MINOR_DISCREPANCY_FIELDS,
            ))
    return corrections


def _elapsed_ms(start: float) -> int:
    return int((time.time() - start) * 1000)


class _PipelineRun:
    """State for one pipeline invocation; ``metrics`` survives failures."""

    def __init__(
        self,
        image_buffers: Sequence[bytes],
        beverage_type: Optional[BeverageType],
        declared_values: Optional[Mapping[str, Optional[str]]],
        prior_fields: Optional[Mapping[str, Optional[str]]],
        ocr_provider: OCRProvider,
        llm_provider: Optional[LLMProvider],
        use_llm: bool,
    ):
        self.settings = get_settings()
        self.image_buffers = list(image_buffers)
        self.beverage_type = beverage_type
        self.declared_values = dict(declared_values or {})
        self.prior_fields = dict(prior_fields or {})
        self.ocr_provider = ocr_provider
        self.llm_provider = llm_provider
        self.use_llm = use_llm
        self.model_used = self.settings.llm_model if use_llm else LOCAL_MODEL_NAME
        self.metrics = PipelineMetrics(image_count=len(self.image_buffers))
        self.stage = "start"
        self.start = time.time()

    async def run(self) -> PipelineResult:
        if not self.image_buffers:
            raise PipelineError("No images provided", "ocr", self.metrics)

        timeout = self.settings.pipeline_timeout_seconds
        try:
            return await asyncio.wait_for(self._stages(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise PipelineTimeoutError(
                f"Pipeline exceeded {timeout:g}s during {self.stage}", self.stage, self.metrics
            ) from e
        finally:
            self.metrics.total_time_ms = _elapsed_ms(self.start)

    async def _ocr(self) -> List[OCRResult]:
        self.stage = "ocr"
        timeout = self.settings.ocr_timeout_seconds
        started = time.time()
        try:
            results = await asyncio.wait_for(
                self.ocr_provider.extract_text_multi_image(self.image_buffers), timeout=timeout
            )
        except asyncio.TimeoutError as e:
            raise PipelineTimeoutError(f"OCR exceeded {timeout:g}s", "ocr", self.metrics) from e
        except OCRError as e:
            raise PipelineError(f"OCR failed: {e}", "ocr", self.metrics) from e
        except Exception as e:
            logger.error(f"OCR provider error: {e}")
            raise PipelineError(f"OCR provider error: {e}", "ocr", self.metrics) from e
        finally:
            self.metrics.ocr_time_ms = _elapsed_ms(started)

        if len(results) != len(self.image_buffers):
            raise PipelineError(
                f"OCR returned {len(results)} results for {len(self.image_buffers)} images",
                "ocr",
                self.metrics,
            )
        self.metrics.word_count = sum(len(r.words) for r in results)
        return list(results)

    async def _stages(self) -> PipelineResult:
        ocr_results = await self._ocr()
        combined_text = combine_ocr_text(ocr_results)

        self.stage = "classification"
        started = time.time()
        try:
            response = await classify_fields_for_submission(
                combined_text,
                self.beverage_type,
                self.declared_values,
                use_llm=self.use_llm,
                provider=self.llm_provider,
            )
        except LabelEngineError as e:
            error_cls = PipelineTimeoutError if isinstance(e.__cause__, asyncio.TimeoutError) else PipelineError
            raise error_cls(f"Classification failed: {e}", "classification", self.metrics) from e
        except Exception as e:
            logger.error(f"Classifier error: {e}")
            raise PipelineError(f"Classifier error: {e}", "classification", self.metrics) from e
        finally:
            self.metrics.classification_time_ms = _elapsed_ms(started)

        self.metrics.input_tokens = response.usage.input_tokens
        self.metrics.output_tokens = response.usage.output_tokens
        self.metrics.total_tokens = response.usage.total_tokens

        try:
            return self._assemble(response.result, ocr_results)
        except Exception as e:
            logger.error(f"Pipeline error during {self.stage}: {e}")
            raise PipelineError(f"{self.stage.capitalize()} failed: {e}", self.stage, self.metrics) from e

    def _assemble(self, classification: ClassificationResult, ocr_results: List[OCRResult]) -> PipelineResult:
        self.stage = "merge"
        started = time.time()
        fields = merge_bounding_boxes(classification.fields, ocr_results)
        image_classifications = classify_images_from_ocr(ocr_results)
        self.metrics.merge_time_ms = _elapsed_ms(started)

        self.stage = "comparison"
        catalog = get_catalog()
        comparable = {}
        for field_name, declared in self.declared_values.items():
            if field_name in catalog:
                comparable[field_name] = declared
            else:
                logger.warning(f"Skipping comparison for unknown field '{field_name}'")
        comparisons = compare_fields(comparable, fields)
        corrections = compute_applicant_corrections(self.prior_fields, self.declared_values)

        self.metrics.total_time_ms = _elapsed_ms(self.start)
        m = self.metrics
        logger.info(
            f"Pipeline ({self.model_used}, {self.beverage_type.value if self.beverage_type else 'unknown'}) | "
            f"OCR: {m.ocr_time_ms}ms | Classification: {m.classification_time_ms}ms | "
            f"Merge: {m.merge_time_ms}ms | Total: {m.total_time_ms}ms | "
            f"Words: {m.word_count} | Tokens: {m.input_tokens}in/{m.output_tokens}out"
        )

        return PipelineResult(
            fields=fields,
            model_used=self.model_used,
            metrics=self.metrics,
            detected_beverage_type=self.beverage_type or classification.detected_beverage_type,
            image_classifications=image_classifications,
            comparisons=comparisons,
            applicant_corrections=corrections,
        )


async def extract_label_fields_for_submission(
    prior_fields: Optional[Mapping[str, Optional[str]]],
    beverage_type: Optional[BeverageType],
    declared_values: Optional[Mapping[str, Optional[str]]],
    image_buffers: Sequence[bytes],
    *,
    ocr_provider: OCRProvider,
    llm_provider: Optional[LLMProvider] = None,
) -> PipelineResult:
    """Run the pipeline with language-model classification.

    Raises:
        PipelineError: any stage failed; ``metrics`` holds the timings so far
        PipelineTimeoutError: a stage or the whole run exceeded its budget
    """
    run = _PipelineRun(
        image_buffers, beverage_type, declared_values, prior_fields,
        ocr_provider, llm_provider, use_llm=True,
    )
    return await run.run()


async def extract_label_fields_local(
    prior_fields: Optional[Mapping[str, Optional[str]]],
    beverage_type: Optional[BeverageType],
    declared_values: Optional[Mapping[str, Optional[str]]],
    image_buffers: Sequence[bytes],
    *,
    ocr_provider: OCRProvider,
) -> PipelineResult:
    """Run the pipeline with the rule-based classifier (no tokens spent)."""
    run = _PipelineRun(
        image_buffers, beverage_type, declared_values, prior_fields,
        ocr_provider, None, use_llm=False,
    )
    return await run.run()
