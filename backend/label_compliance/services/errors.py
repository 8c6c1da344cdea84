"""Exception hierarchy for the classification engine.

A field that simply is not on the label is never an exception; it comes
back with value None and confidence 0.
"""

from typing import Optional


class LabelEngineError(Exception):
    """Base class for engine failures."""


class OCRError(LabelEngineError):
    """OCR failed for an image."""

    def __init__(self, message: str, image_index: Optional[int] = None):
        super().__init__(message)
        self.image_index = image_index


class LLMProviderError(LabelEngineError):
    """The language model provider was unavailable, failed, or timed out."""


class LLMResponseError(LabelEngineError):
    """The language model response was empty, unparsable or broke the schema.

    Invalid values are rejected, never clamped.
    """


class PipelineError(LabelEngineError):
    """A pipeline stage failed; carries the metrics recorded up to the failure."""

    def __init__(self, message: str, stage: str, metrics=None):
        super().__init__(message)
        self.stage = stage
        self.metrics = metrics


class PipelineTimeoutError(PipelineError):
    """A pipeline stage exceeded its time budget."""
