"""
Data models for receipt recognition.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import numpy as np
from PIL import Image


class EngineState(str, Enum):
    """Lifecycle of the shared recognition engine."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    RECOGNIZING = "recognizing"
    ERROR = "error"


class OcrStage(str, Enum):
    """Stage labels delivered with progress events."""
    INITIALIZING = "initializing"
    LOADING_LANGUAGE = "loading_language"
    INITIALIZING_TESSERACT = "initializing_tesseract"
    PREPROCESSING = "preprocessing"
    DETECTING_BOUNDARY = "detecting_boundary"
    PROCESSING_IMAGE = "processing_image"
    EXTRACTING_TEXT = "extracting_text"
    DETECTING_ROIS = "detecting_rois"
    RECOGNIZING_ROIS = "recognizing_rois"
    POST_PROCESSING = "post_processing"
    COMPLETED = "completed"
    ERROR = "error"


class RoiType(str, Enum):
    AMOUNT = "amount"
    DATE = "date"


class Canvas:
    """Mutable grayscale pixel buffer (uint8, height x width)."""

    def __init__(self, pixels: np.ndarray):
        if pixels.ndim != 2:
            raise ValueError(f"Canvas expects a 2-D array, got shape {pixels.shape}")
        self.pixels = np.ascontiguousarray(pixels, dtype=np.uint8)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    def copy(self) -> "Canvas":
        return Canvas(self.pixels.copy())

    def crop(self, x: int, y: int, width: int, height: int) -> "Canvas":
        """Cut out a rectangle, clipped to the canvas."""
        x0 = max(0, int(x))
        y0 = max(0, int(y))
        x1 = min(self.width, int(x) + int(width))
        y1 = min(self.height, int(y) + int(height))
        if x1 <= x0 or y1 <= y0:
            raise ValueError(f"Crop ({x}, {y}, {width}, {height}) is outside the {self.width}x{self.height} canvas")
        return Canvas(self.pixels[y0:y1, x0:x1].copy())

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels)

    @classmethod
    def from_image(cls, img: Image.Image) -> "Canvas":
        if img.mode != "L":
            img = img.convert("L")
        return cls(np.asarray(img, dtype=np.uint8).copy())

    def __repr__(self):
        return f"Canvas({self.width}x{self.height})"


@dataclass(frozen=True)
class ReceiptBounds:
    """Receipt rectangle in source-image pixel coordinates."""
    x: int
    y: int
    width: int
    height: int

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Bounds must have a positive size, got {self.width}x{self.height}")


@dataclass(frozen=True)
class OcrWord:
    """A word box from the engine; confidence is 0.0-1.0."""
    text: str
    x: int
    y: int
    width: int
    height: int
    confidence: float = 0.0


@dataclass
class OcrPage:
    """Output of one recognition call."""
    text: str
    words: List[OcrWord] = field(default_factory=list)
    confidence: float = 0.0


@dataclass(frozen=True)
class RegionOfInterest:
    x: int
    y: int
    width: int
    height: int
    type: RoiType
    confidence: float

    @property
    def area(self) -> int:
        return self.width * self.height


@dataclass(frozen=True)
class RoiText:
    """Text read from one region in the second pass."""
    text: str
    type: RoiType
    confidence: float


@dataclass(frozen=True)
class AmountCandidate:
    value: int
    priority: int
    span: tuple


@dataclass(frozen=True)
class DateCandidate:
    value: str
    score: float


@dataclass(frozen=True)
class ProgressEvent:
    percent: int
    stage: str


@dataclass
class RecognitionResult:
    """Structured fields read from one receipt."""
    raw_text: str
    date: Optional[str]
    amount: Optional[int]
    confidence: float
    processing_time_ms: int

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "rawText": self.raw_text,
            "date": self.date,
            "amount": self.amount,
            "confidence": self.confidence,
            "processingTimeMs": self.processing_time_ms,
        }
