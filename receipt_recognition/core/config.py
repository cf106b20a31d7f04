"""
Options for the recognition pipeline and the engine, with environment overrides.

Environment variables:
    RECEIPT_OCR_LANG            Tesseract language string (default: jpn+eng)
    RECEIPT_OCR_MAX_DIMENSION   Longest image side after resizing (default: 1800)
    RECEIPT_OCR_MAX_ROIS        Regions read in the second pass (default: 5)
    RECEIPT_OCR_TWO_PASS        Enable the region pass, 1/0 (default: 1)
    RECEIPT_OCR_PERSPECTIVE     Straighten the receipt outline, 1/0 (default: 0)
    RECEIPT_OCR_ENHANCE         Binarize the page before recognition, 1/0 (default: 0)
    RECEIPT_OCR_TIMEOUT         Tesseract timeout in seconds, 0 = none (default: 0)
    TESSERACT_CMD               Path to the tesseract binary
"""

import os
from dataclasses import dataclass
from typing import Optional

from .logger import get_logger

logger = get_logger("config")

DEFAULT_LANG = "jpn+eng"
DEFAULT_MAX_DIMENSION = 1800
DEFAULT_MAX_ROIS = 5

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r (not an integer); using %d", name, raw, default)
        return default
    if value < minimum:
        logger.warning("Ignoring %s=%d (must be >= %d); using %d", name, value, minimum, default)
        return default
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    logger.warning("Ignoring %s=%r (not a boolean); using %s", name, raw, default)
    return default


@dataclass
class PreprocessOptions:
    """Options for image normalization."""
    enable_tilt_correction: bool = True
    enable_noise_reduction: bool = True
    max_dimension: int = DEFAULT_MAX_DIMENSION


@dataclass
class PipelineOptions(PreprocessOptions):
    """Options for a full recognition run."""
    enable_boundary_detection: bool = True
    boundary_min_score: float = 0.8
    enable_perspective_correction: bool = False
    enable_enhancement: bool = False
    enable_two_pass: bool = True
    max_rois: int = DEFAULT_MAX_ROIS
    pdf_page: int = 1

    @classmethod
    def from_env(cls, **overrides) -> "PipelineOptions":
        """Build options from environment variables; keyword overrides win."""
        opts = cls(
            max_dimension=_env_int("RECEIPT_OCR_MAX_DIMENSION", DEFAULT_MAX_DIMENSION, minimum=1),
            max_rois=_env_int("RECEIPT_OCR_MAX_ROIS", DEFAULT_MAX_ROIS),
            enable_two_pass=_env_bool("RECEIPT_OCR_TWO_PASS", True),
            enable_perspective_correction=_env_bool("RECEIPT_OCR_PERSPECTIVE", False),
            enable_enhancement=_env_bool("RECEIPT_OCR_ENHANCE", False),
        )
        for key, value in overrides.items():
            if not hasattr(opts, key):
                raise TypeError(f"Unknown pipeline option: {key}")
            if value is not None:
                setattr(opts, key, value)
        return opts


@dataclass
class EngineSettings:
    """How the shared Tesseract engine is loaded."""
    lang: str = DEFAULT_LANG
    timeout: int = 0
    tesseract_cmd: Optional[str] = None

    @classmethod
    def from_env(cls) -> "EngineSettings":
        return cls(
            lang=os.getenv("RECEIPT_OCR_LANG") or DEFAULT_LANG,
            timeout=_env_int("RECEIPT_OCR_TIMEOUT", 0),
            tesseract_cmd=os.getenv("TESSERACT_CMD") or None,
        )

    @property
    def languages(self):
        return [part for part in self.lang.split("+") if part]
