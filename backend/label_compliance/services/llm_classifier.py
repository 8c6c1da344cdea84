"""Label field classification through a language model.

The model receives the OCR text plus the applicable field descriptions and
must answer with a JSON object matching ``LLMResponsePayload``. Anything
else (empty content, invalid JSON, out-of-range confidence, unknown field
names) fails the whole call with ``LLMResponseError``; nothing is clamped or
partially accepted.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol

from openai import AsyncOpenAI
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .catalog import BEVERAGE_LABELS, BeverageType, get_catalog
from .errors import LabelEngineError, LLMProviderError, LLMResponseError
from .fields import ClassificationResponse, ClassificationResult, ExtractedField, TokenUsage
from .rule_classifier import rule_classify
from ..config import get_settings

logger = logging.getLogger(__name__)


class LLMFieldPayload(BaseModel):
    """One field as returned by the language model."""
    field_name: str = Field(..., alias="fieldName", min_length=1)
    value: Optional[str] = None
    confidence: int = Field(..., ge=0, le=100, strict=True)
    reasoning: Optional[str] = None

    @field_validator("value")
    @classmethod
    def blank_value_is_missing(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def confidence_agrees_with_value(self) -> "LLMFieldPayload":
        if self.value is None and self.confidence != 0:
            raise ValueError(f"{self.field_name}: null value must have confidence 0")
        if self.value is not None and self.confidence == 0:
            raise ValueError(f"{self.field_name}: non-null value must have confidence > 0")
        return self


class LLMResponsePayload(BaseModel):
    """Top-level JSON object the language model must return."""
    fields: List[LLMFieldPayload]
    detected_beverage_type: Optional[BeverageType] = Field(None, alias="detectedBeverageType")

    class Config:
        json_schema_extra = {
            "example": {
                "fields": [
                    {
                        "fieldName": "brand_name",
                        "value": "Bulleit",
                        "confidence": 95,
                        "reasoning": "Largest text on the front label",
                    }
                ],
                "detectedBeverageType": "distilled_spirits",
            }
        }


class LLMProvider(Protocol):
    """Chat-completion provider returning the raw completion as a dict."""

    async def complete(
        self,
        messages: List[Dict[str, str]],
        *,
        model: str,
        temperature: float,
        max_tokens: int,
        response_format: Dict[str, str],
    ) -> Dict[str, Any]:
        ...


class OpenAIChatProvider:
    """``LLMProvider`` backed by the OpenAI chat completions API."""

    def __init__(self, api_key: Optional[str] = None, client: Optional[AsyncOpenAI] = None):
        settings = get_settings()
        # Retries are left to the caller
        self._client = client or AsyncOpenAI(
            api_key=api_key or settings.openai_api_key,
            timeout=settings.llm_timeout_seconds,
            max_retries=0,
        )

    async def complete(self, messages, *, model, temperature, max_tokens, response_format):
        response = await self._client.chat.completions.create(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            response_format=response_format,
            messages=messages,
        )
        return response.model_dump()


def is_llm_available() -> bool:
    """True when an OpenAI API key is configured."""
    return bool(get_settings().openai_api_key)


def get_default_provider() -> LLMProvider:
    if not is_llm_available():
        raise LLMProviderError("OpenAI API key not configured")
    return OpenAIChatProvider()


SYSTEM_PROMPT = """You are a TTB (Alcohol and Tobacco Tax and Trade Bureau) label analysis expert.

Your task is to extract structured field values from OCR text of alcohol beverage labels.

Key rules:
- brand_name is the primary trademarked name consumers know the product by. It is usually the largest, most prominent text on the front label.
- fanciful_name is an optional secondary name for a specific product variant. It is not the brand name and not the class/type. Return null if there is none.
- A grape varietal name (like "Cabernet Sauvignon") is not a fanciful name; it belongs in grape_varietal.
- class_type is the legal product category (e.g. "Bourbon Whiskey", "Table Wine", "India Pale Ale"), not a marketing name.
- health_warning must start with "GOVERNMENT WARNING:" in all caps.
- qualifying_phrase is the phrase before the producer name and address (e.g. "Bottled by", "Produced and Bottled by"). Normalize "&" to "and".
- Return null with confidence 0 for fields not present on the label. Do not guess or fabricate values.
- confidence is an integer from 0 to 100: 90-100 for clear matches, 70-89 for likely matches, below 70 for uncertain.

Respond with valid JSON matching this exact structure:
{
  "fields": [
    {"fieldName": "<field_name>", "value": "<extracted value or null>", "confidence": <0-100>, "reasoning": "<brief explanation>"}
  ],
  "detectedBeverageType": "<distilled_spirits|wine|malt_beverage|null>"
}"""


def build_messages(full_text: str, beverage_type: Optional[BeverageType]) -> List[Dict[str, str]]:
    """System and user messages listing only the applicable fields."""
    catalog = get_catalog()
    lines = []
    for definition in catalog.fields_for(beverage_type):
        requirement = "mandatory" if definition.is_mandatory(beverage_type) else "optional"
        lines.append(f"- **{definition.field_name}** ({requirement}): {definition.description}")

    if beverage_type is not None:
        type_hint = f"Beverage type: {BEVERAGE_LABELS[beverage_type]}"
    else:
        type_hint = "Beverage type: Unknown (detect from label text)"

    user_prompt = (
        "Extract the following fields from this alcohol label OCR text.\n"
        f"{type_hint}\n\n"
        "## Fields to extract:\n"
        + "\n".join(lines)
        + "\n\n## OCR Text:\n"
        + full_text
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def _token_count(usage: Mapping[str, Any], key: str) -> int:
    value = usage.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return max(0, value)


def _usage_from(raw: Mapping[str, Any]) -> TokenUsage:
    usage = raw.get("usage")
    if not isinstance(usage, Mapping):
        usage = {}
    return TokenUsage(
        input_tokens=_token_count(usage, "prompt_tokens"),
        output_tokens=_token_count(usage, "completion_tokens"),
        total_tokens=_token_count(usage, "total_tokens"),
    )


def parse_completion(
    raw: Mapping[str, Any],
    beverage_type: Optional[BeverageType],
) -> ClassificationResponse:
    """Validate a raw chat completion and map it to a classification result.

    Raises:
        LLMResponseError: for any schema or invariant violation
    """
    choices = raw.get("choices") if isinstance(raw, Mapping) else None
    if not isinstance(choices, list) or not choices:
        raise LLMResponseError("LLM response has no choices")
    message = choices[0].get("message") if isinstance(choices[0], Mapping) else None
    if not isinstance(message, Mapping):
        raise LLMResponseError("LLM response choice has no message")
    content = message.get("content")
    if not isinstance(content, str) or not content.strip():
        raise LLMResponseError("LLM returned empty or non-text content")

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise LLMResponseError(f"LLM response is not valid JSON: {e}") from e

    try:
        payload = LLMResponsePayload.model_validate(data)
    except ValidationError as e:
        raise LLMResponseError(f"LLM response failed schema validation: {e}") from e

    requested = get_catalog().field_names_for(beverage_type)
    by_name: Dict[str, ExtractedField] = {}
    for item in payload.fields:
        if item.field_name not in requested:
            raise LLMResponseError(f"LLM returned unknown or inapplicable field '{item.field_name}'")
        if item.field_name in by_name:
            raise LLMResponseError(f"LLM returned field '{item.field_name}' more than once")
        by_name[item.field_name] = ExtractedField(
            field_name=item.field_name,
            value=item.value.strip() if item.value is not None else None,
            confidence=item.confidence,
            reasoning=item.reasoning,
        )

    missing = [name for name in requested if name not in by_name]
    if missing:
        logger.debug(f"LLM omitted {len(missing)} fields: {', '.join(missing)}")

    fields = tuple(
        by_name.get(name) or ExtractedField.not_found(name, "Not returned by model")
        for name in requested
    )
    detected = payload.detected_beverage_type or beverage_type
    return ClassificationResponse(
        result=ClassificationResult(fields=fields, detected_beverage_type=detected),
        usage=_usage_from(raw),
    )


async def llm_extract_fields(
    full_text: str,
    beverage_type: Optional[BeverageType] = None,
    provider: Optional[LLMProvider] = None,
) -> ClassificationResponse:
    """Classify OCR text with one language model call.

    Raises:
        LLMProviderError: provider missing, failing or exceeding the timeout
        LLMResponseError: malformed or invalid response
    """
    settings = get_settings()
    provider = provider or get_default_provider()
    messages = build_messages(full_text, beverage_type)

    try:
        raw = await asyncio.wait_for(
            provider.complete(
                messages,
                model=settings.llm_model,
                temperature=0,
                max_tokens=settings.llm_max_tokens,
                response_format={"type": "json_object"},
            ),
            timeout=settings.llm_timeout_seconds,
        )
    except asyncio.TimeoutError as e:
        raise LLMProviderError(f"LLM call timed out after {settings.llm_timeout_seconds:g}s") from e
    except LabelEngineError:
        raise
    except Exception as e:
        logger.error(f"LLM provider error: {e}")
        raise LLMProviderError(f"LLM provider error: {e}") from e

    response = parse_completion(raw, beverage_type)
    logger.info(
        f"LLM classification: {len(response.result.found_fields)} fields found, "
        f"tokens={response.usage.total_tokens}"
    )
    return response


async def classify_fields_for_submission(
    full_text: str,
    beverage_type: Optional[BeverageType] = None,
    declared_values: Optional[Mapping[str, Optional[str]]] = None,
    *,
    use_llm: bool,
    provider: Optional[LLMProvider] = None,
) -> ClassificationResponse:
    """Route to the language model or the rule-based classifier.

    There is no automatic fallback; an LLM failure propagates to the caller.
    """
    if use_llm:
        return await llm_extract_fields(full_text, beverage_type, provider)
    return ClassificationResponse(result=rule_classify(full_text, beverage_type, declared_values))
