"""Shared fixtures: OCR results with word boxes and fake providers."""

import asyncio
import io
import json

import pytest
from PIL import Image

from label_compliance.config import get_settings
from label_compliance.services.fields import OCRResult, OCRWord, Rect

CHAR_WIDTH = 10
LINE_HEIGHT = 30
LINE_SPACING = 40


def build_ocr_result(text: str, image_index: int = 0) -> OCRResult:
    """Lay out text on a grid: one row per line, 10px per character."""
    words = []
    for row, line in enumerate(text.split("\n")):
        offset = 0
        for token in line.split(" "):
            if token:
                box = Rect(
                    x=10 + offset * CHAR_WIDTH,
                    y=20 + row * LINE_SPACING,
                    width=len(token) * CHAR_WIDTH,
                    height=LINE_HEIGHT,
                )
                words.append(OCRWord(token, box, image_index))
            offset += len(token) + 1
    return OCRResult(full_text=text, words=tuple(words), image_width=800, image_height=600)


class FakeOCRProvider:
    """Returns canned OCR results, one per buffer, in order."""

    def __init__(self, texts, delay: float = 0.0, error: Exception = None):
        self.texts = list(texts)
        self.delay = delay
        self.error = error
        self.calls = 0
        self.is_ready = True

    async def extract_text_multi_image(self, buffers):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return [build_ocr_result(text, i) for i, text in enumerate(self.texts[:len(buffers)])]


class FakeLLMProvider:
    """Returns a canned chat completion and records the request."""

    def __init__(self, content=None, usage=None, delay: float = 0.0, error: Exception = None, raw=None):
        self.content = content
        self.usage = usage
        self.delay = delay
        self.error = error
        self.raw = raw
        self.requests = []

    async def complete(self, messages, *, model, temperature, max_tokens, response_format):
        self.requests.append({
            "messages": messages,
            "model": model,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "response_format": response_format,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.raw is not None:
            return self.raw
        content = self.content if isinstance(self.content, str) else json.dumps(self.content)
        completion = {"choices": [{"message": {"role": "assistant", "content": content}}]}
        if self.usage is not None:
            completion["usage"] = self.usage
        return completion


def llm_fields_payload(values, detected=None):
    """LLM JSON body from ``{field_name: (value, confidence)}``."""
    return {
        "fields": [
            {"fieldName": name, "value": value, "confidence": confidence, "reasoning": "test"}
            for name, (value, confidence) in values.items()
        ],
        "detectedBeverageType": detected,
    }


SPIRITS_LABEL = (
    "OLD TOM DISTILLERY\n"
    "Kentucky Straight Bourbon Whiskey\n"
    "45% Alc./Vol. (90 Proof)\n"
    "750 mL\n"
    "Distilled and Bottled by Old Tom Distillery, Bardstown, KY\n"
    "GOVERNMENT WARNING: (1) According to the Surgeon General, women should not "
    "drink alcoholic beverages during pregnancy because of the risk of birth defects. "
    "(2) Consumption of alcoholic beverages impairs your ability to drive a car or "
    "operate machinery, and may cause health problems."
)

WINE_LABEL = (
    "CHATEAU EXAMPLE\n"
    "2019 Cabernet Sauvignon\n"
    "Napa Valley\n"
    "13.5% Alc./Vol.\n"
    "750 mL\n"
    "Produced & Bottled by Example Winery, Napa, CA\n"
    "CONTAINS SULFITES"
)


@pytest.fixture
def settings():
    """The cached settings object; monkeypatch attributes to override."""
    return get_settings()


@pytest.fixture
def spirits_label():
    return SPIRITS_LABEL


@pytest.fixture
def wine_label():
    return WINE_LABEL


@pytest.fixture
def sample_image_bytes():
    """A blank PNG large enough to pass upload validation."""
    img = Image.new("RGB", (200, 200), color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()
