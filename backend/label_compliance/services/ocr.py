"""OCR provider backed by EasyOCR (PyTorch-based).

- Text normalization (Unicode NFKC, whitespace collapse)
- Concurrency control via semaphore
- Detected segments split into word tokens with proportional boxes
- Lines rebuilt from box positions for the combined full text
"""

import asyncio
import io
import logging
import os
import re
import threading
import time
import unicodedata
from typing import List, Optional, Protocol, Sequence, Tuple

import cv2
import numpy as np
from PIL import Image

from .errors import OCRError
from .fields import OCRResult, OCRWord, Rect
from ..config import get_settings

logger = logging.getLogger(__name__)


class OCRProvider(Protocol):
    """Anything that turns image bytes into per-image OCR results."""

    async def extract_text_multi_image(self, buffers: Sequence[bytes]) -> List[OCRResult]:
        ...


def load_image(image_bytes: bytes) -> np.ndarray:
    """Load image bytes into a BGR array."""
    # Use PIL to handle various formats, then convert to OpenCV
    pil_image = Image.open(io.BytesIO(image_bytes))

    if pil_image.mode != "RGB":
        pil_image = pil_image.convert("RGB")

    image = np.array(pil_image)
    return cv2.cvtColor(image, cv2.COLOR_RGB2BGR)


def validate_image(image_bytes: bytes, filename: str) -> Tuple[bool, str]:
    """
    Validate an uploaded label image.

    Returns:
        Tuple of (is_valid, error_message)
    """
    settings = get_settings()

    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext not in settings.allowed_extensions:
        allowed = ", ".join(sorted(settings.allowed_extensions)).upper()
        return False, f"Invalid file type. Allowed formats: {allowed}"

    size_mb = len(image_bytes) / (1024 * 1024)
    if size_mb > settings.max_upload_size_mb:
        return False, f"Image exceeds {settings.max_upload_size_mb}MB upload limit. Please resize or compress."

    try:
        pil_image = Image.open(io.BytesIO(image_bytes))
        width, height = pil_image.size
    except Exception as e:
        return False, f"Unable to read image: {str(e)}"

    minimum = settings.min_image_dimension
    if width < minimum or height < minimum:
        return False, f"Image too small. Minimum dimensions: {minimum}x{minimum} pixels."

    return True, ""


def normalize_ocr_text(text: str) -> str:
    """NFKC-normalize OCR output and collapse whitespace."""
    normalized = unicodedata.normalize("NFKC", text)
    return re.sub(r"\s+", " ", normalized).strip()


def split_segment(text: str, box: Rect, image_index: int, confidence: float) -> List[OCRWord]:
    """Split a detected text segment into word tokens.

    Word boxes share the segment's vertical extent; horizontal extents are
    proportional to character offsets within the segment.
    """
    tokens = list(re.finditer(r"\S+", text))
    if not tokens:
        return []
    if len(tokens) == 1:
        return [OCRWord(tokens[0].group(0), box, image_index, confidence)]

    char_width = box.width / max(len(text), 1)
    words = []
    for token in tokens:
        x = box.x + token.start() * char_width
        width = (token.end() - token.start()) * char_width
        words.append(OCRWord(
            text=token.group(0),
            bounding_box=Rect(x=round(x, 1), y=box.y, width=round(width, 1), height=box.height),
            image_index=image_index,
            confidence=confidence,
        ))
    return words


def build_full_text(words: Sequence[OCRWord]) -> str:
    """Rebuild reading-order text: rows by median line height, left to right."""
    if not words:
        return ""
    line_h = int(np.median([w.bounding_box.height for w in words]))
    line_h = max(12, min(line_h, 60))

    rows = {}
    for word in words:
        center = word.bounding_box.y + word.bounding_box.height / 2
        rows.setdefault(int(center // line_h), []).append(word)

    lines = []
    for key in sorted(rows):
        row = sorted(rows[key], key=lambda w: w.bounding_box.x)
        lines.append(" ".join(w.text for w in row))
    return "\n".join(lines)


class OCRService:
    """EasyOCR wrapper; one reader shared by every request."""

    _instance: Optional["OCRService"] = None
    _reader = None
    _initialized = False
    _lock = threading.Lock()
    _semaphore: Optional[threading.Semaphore] = None

    def __new__(cls):
        """Singleton pattern to reuse OCR engine."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        self.settings = get_settings()
        if OCRService._semaphore is None:
            OCRService._semaphore = threading.Semaphore(self.settings.ocr_max_concurrent)

    def initialize(self) -> bool:
        """
        Initialize OCR engine. Call on app startup.
        Thread-safe initialization.

        Returns:
            True if initialization successful
        """
        with self._lock:
            if OCRService._initialized:
                return True

            try:
                import easyocr
                import torch

                num_threads = int(os.environ.get("TORCH_NUM_THREADS", min(4, os.cpu_count() or 2)))
                torch.set_num_threads(num_threads)

                logger.info(f"Initializing EasyOCR engine with {num_threads} threads...")

                model_dir = os.environ.get("EASYOCR_MODULE_PATH")
                kwargs = {"gpu": False, "verbose": False}
                if model_dir:
                    kwargs["model_storage_directory"] = model_dir

                OCRService._reader = easyocr.Reader([self.settings.ocr_lang], **kwargs)
                OCRService._initialized = True
                logger.info("EasyOCR initialized successfully")
                return True

            except Exception as e:
                logger.error(f"Failed to initialize EasyOCR: {e}")
                return False

    @property
    def is_ready(self) -> bool:
        """Check if OCR engine is ready."""
        return OCRService._initialized and OCRService._reader is not None

    def process(self, image_bytes: bytes, image_index: int = 0) -> OCRResult:
        """Run detection + recognition once over a whole image.

        Raises:
            OCRError: if the engine is unavailable, the image cannot be
                decoded, or recognition fails
        """
        if not self.is_ready and not self.initialize():
            raise OCRError("OCR engine not initialized", image_index)

        try:
            image = load_image(image_bytes)
        except Exception as e:
            raise OCRError(f"Unable to decode image {image_index}: {e}", image_index) from e

        start = time.time()
        h, w = image.shape[:2]
        scale = min(1.0, self.settings.max_image_dimension / max(h, w))
        if scale < 1.0:
            image = cv2.resize(image, (int(w * scale), int(h * scale)), interpolation=cv2.INTER_AREA)
            logger.debug(f"Downscaled image {image_index} from {w}x{h} by {scale:.2f}")

        with OCRService._semaphore:
            try:
                detections = OCRService._reader.readtext(
                    image,
                    decoder="greedy",
                    batch_size=1,
                    paragraph=False,
                    detail=1,
                )
            except Exception as e:
                raise OCRError(f"OCR failed on image {image_index}: {e}", image_index) from e

        words: List[OCRWord] = []
        for points, text, conf in detections or []:
            text = normalize_ocr_text(text)
            if not text:
                continue
            # Report boxes in original image pixels
            xs = [p[0] / scale for p in points]
            ys = [p[1] / scale for p in points]
            box = Rect(x=min(xs), y=min(ys), width=max(xs) - min(xs), height=max(ys) - min(ys))
            words.extend(split_segment(text, box, image_index, float(conf)))

        full_text = build_full_text(words)
        logger.info(
            f"OCR image {image_index}: {len(words)} words, "
            f"time={(time.time() - start) * 1000:.0f}ms"
        )
        return OCRResult(full_text=full_text, words=tuple(words), image_width=w, image_height=h)


class EasyOCRProvider:
    """Async multi-image facade over ``OCRService``.

    Images are recognized concurrently in worker threads; the service's
    semaphore bounds how many run at once.
    """

    def __init__(self, service: Optional[OCRService] = None):
        self.service = service or OCRService()

    @property
    def is_ready(self) -> bool:
        return self.service.is_ready

    async def extract_text_multi_image(self, buffers: Sequence[bytes]) -> List[OCRResult]:
        tasks = [
            asyncio.to_thread(self.service.process, buffer, index)
            for index, buffer in enumerate(buffers)
        ]
        return list(await asyncio.gather(*tasks))
