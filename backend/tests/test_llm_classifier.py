"""Tests for language model classification."""

import asyncio
import json

import pytest
from conftest import FakeLLMProvider, llm_fields_payload
from label_compliance.services.catalog import BeverageType
from label_compliance.services.errors import LLMProviderError, LLMResponseError
from label_compliance.services.llm_classifier import (
    build_messages,
    classify_fields_for_submission,
    get_default_provider,
    llm_extract_fields,
    parse_completion,
)


def _run(coro):
    return asyncio.run(coro)


def _completion(content, usage=None):
    raw = {"choices": [{"message": {"content": content}}]}
    if usage is not None:
        raw["usage"] = usage
    return raw


class TestPrompt:
    """Test prompt construction."""

    def test_only_applicable_fields(self):
        """Test spirits prompts omit the wine-only fields."""
        user = build_messages("OLD TOM", BeverageType.DISTILLED_SPIRITS)[1]["content"]
        assert "**age_statement** (optional)" in user
        assert "**brand_name** (mandatory)" in user
        assert "vintage_year" not in user
        assert "Distilled Spirits" in user

    def test_unknown_type(self):
        """Test every field is listed when the type is unknown."""
        user = build_messages("OLD TOM", None)[1]["content"]
        assert "vintage_year" in user
        assert "detect from label text" in user

    def test_ocr_text_included(self):
        """Test the OCR text is at the end of the user message."""
        messages = build_messages("OLD TOM\n750 mL", None)
        assert messages[0]["role"] == "system"
        assert messages[1]["content"].endswith("OLD TOM\n750 mL")


class TestParseCompletion:
    """Test response validation."""

    def test_valid_response(self):
        """Test a well-formed response maps onto every applicable field."""
        content = llm_fields_payload(
            {"brand_name": ("OLD TOM", 95), "net_contents": ("750 mL", 90)},
            detected="distilled_spirits",
        )

        response = parse_completion(
            _completion(json.dumps(content), {"prompt_tokens": 120, "completion_tokens": 30,
                                              "total_tokens": 150}),
            BeverageType.DISTILLED_SPIRITS,
        )
        result = response.result
        assert result.get("brand_name").value == "OLD TOM"
        assert result.get("age_statement").value is None
        assert result.get("age_statement").reasoning == "Not returned by model"
        assert len(result.fields) == 11
        assert result.detected_beverage_type == BeverageType.DISTILLED_SPIRITS
        assert response.usage.total_tokens == 150
        assert response.usage.input_tokens == 120

    def test_usage_defaults_to_zero(self):
        """Test missing usage counts are reported as zero."""
        response = parse_completion(_completion('{"fields": []}'), None)
        assert response.usage.total_tokens == 0
        assert response.usage.output_tokens == 0

    @pytest.mark.parametrize("usage", ["n/a", {"prompt_tokens": "many", "total_tokens": None}])
    def test_malformed_usage_is_zero(self, usage):
        """Test usage blocks that are not token counts are reported as zero."""
        response = parse_completion(_completion('{"fields": []}', usage=usage), None)
        assert response.usage.input_tokens == 0
        assert response.usage.total_tokens == 0

    def test_detected_type_falls_back_to_given(self):
        """Test the given type is reported when the model omits one."""
        response = parse_completion(_completion('{"fields": []}'), BeverageType.WINE)
        assert response.result.detected_beverage_type == BeverageType.WINE

    def test_blank_value_is_missing(self):
        """Test an empty string value with zero confidence is not found."""
        content = json.dumps(llm_fields_payload({"brand_name": ("  ", 0)}))
        result = parse_completion(_completion(content), None).result
        assert result.get("brand_name").value is None

    @pytest.mark.parametrize("raw", [
        {},
        {"choices": []},
        _completion(""),
        _completion("   "),
        _completion("not json"),
        _completion('{"no_fields": true}'),
        {"choices": ["oops"]},
        {"choices": {"message": {"content": "{}"}}},
        {"choices": [{"message": "{}"}]},
        _completion({"fields": []}),
    ])
    def test_malformed(self, raw):
        """Test malformed completions are rejected."""
        with pytest.raises(LLMResponseError):
            parse_completion(raw, None)

    @pytest.mark.parametrize("values", [
        {"brand_name": ("OLD TOM", 150)},
        {"brand_name": ("OLD TOM", -1)},
        {"brand_name": ("OLD TOM", 0)},
        {"brand_name": (None, 40)},
    ])
    def test_invalid_confidence_rejected(self, values):
        """Test out-of-range or inconsistent confidences are not clamped."""
        with pytest.raises(LLMResponseError):
            parse_completion(_completion(json.dumps(llm_fields_payload(values))), None)

    def test_float_confidence_rejected(self):
        """Test a non-integer confidence is rejected."""
        content = '{"fields": [{"fieldName": "brand_name", "value": "X", "confidence": 90.5}]}'
        with pytest.raises(LLMResponseError):
            parse_completion(_completion(content), None)

    def test_unknown_field_rejected(self):
        """Test a field outside the catalog is rejected."""
        content = json.dumps(llm_fields_payload({"bottle_color": ("green", 80)}))
        with pytest.raises(LLMResponseError):
            parse_completion(_completion(content), None)

    def test_inapplicable_field_rejected(self):
        """Test a wine-only field is rejected for spirits."""
        content = json.dumps(llm_fields_payload({"vintage_year": ("2019", 80)}))
        with pytest.raises(LLMResponseError):
            parse_completion(_completion(content), BeverageType.DISTILLED_SPIRITS)

    def test_duplicate_field_rejected(self):
        """Test a field returned twice is rejected."""
        content = (
            '{"fields": ['
            '{"fieldName": "brand_name", "value": "A", "confidence": 90},'
            '{"fieldName": "brand_name", "value": "B", "confidence": 80}]}'
        )
        with pytest.raises(LLMResponseError):
            parse_completion(_completion(content), None)


class TestLLMExtractFields:
    """Test the provider call."""

    def test_request_parameters(self, settings):
        """Test deterministic JSON-mode requests."""
        provider = FakeLLMProvider(llm_fields_payload({"brand_name": ("OLD TOM", 95)}))
        response = _run(llm_extract_fields("OLD TOM", BeverageType.DISTILLED_SPIRITS, provider))

        request = provider.requests[0]
        assert request["temperature"] == 0
        assert request["response_format"] == {"type": "json_object"}
        assert request["model"] == settings.llm_model
        assert request["max_tokens"] == settings.llm_max_tokens
        assert response.result.get("brand_name").confidence == 95

    def test_timeout(self, settings, monkeypatch):
        """Test a slow provider raises a provider error."""
        monkeypatch.setattr(settings, "llm_timeout_seconds", 0.05)
        provider = FakeLLMProvider(llm_fields_payload({}), delay=1.0)
        with pytest.raises(LLMProviderError) as exc_info:
            _run(llm_extract_fields("OLD TOM", None, provider))
        assert "timed out" in str(exc_info.value)

    def test_provider_exception(self):
        """Test provider failures are wrapped."""
        provider = FakeLLMProvider(error=RuntimeError("connection reset"))
        with pytest.raises(LLMProviderError):
            _run(llm_extract_fields("OLD TOM", None, provider))

    def test_invalid_response_propagates(self):
        """Test response errors are not wrapped as provider errors."""
        provider = FakeLLMProvider("not json")
        with pytest.raises(LLMResponseError):
            _run(llm_extract_fields("OLD TOM", None, provider))

    def test_no_api_key(self, settings, monkeypatch):
        """Test the default provider requires an API key."""
        monkeypatch.setattr(settings, "openai_api_key", None)
        with pytest.raises(LLMProviderError):
            get_default_provider()


class TestRouting:
    """Test choosing between the language model and the rules."""

    def test_rule_based(self, spirits_label):
        """Test the rule-based path uses no tokens."""
        response = _run(classify_fields_for_submission(
            spirits_label, BeverageType.DISTILLED_SPIRITS, use_llm=False
        ))
        assert response.usage.total_tokens == 0
        assert response.result.get("brand_name").value == "OLD TOM DISTILLERY"

    def test_llm(self):
        """Test the LLM path calls the provider."""
        provider = FakeLLMProvider(llm_fields_payload({"brand_name": ("OLD TOM", 95)}),
                                   usage={"prompt_tokens": 10, "completion_tokens": 5,
                                          "total_tokens": 15})
        response = _run(classify_fields_for_submission(
            "OLD TOM", None, use_llm=True, provider=provider
        ))
        assert len(provider.requests) == 1
        assert response.usage.total_tokens == 15

    def test_no_fallback(self):
        """Test an LLM failure is not replaced by rule-based output."""
        provider = FakeLLMProvider(error=RuntimeError("down"))
        with pytest.raises(LLMProviderError):
            _run(classify_fields_for_submission("OLD TOM", None, use_llm=True, provider=provider))
