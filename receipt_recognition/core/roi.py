"""
Region-of-interest detection for the second, focused recognition pass.
"""

import math
import re
from dataclasses import replace
from typing import Iterable, List, Optional

from .logger import get_logger
from .models import Canvas, OcrWord, RegionOfInterest, RoiType
from .postprocess import normalize_text
from .utils import (AMOUNT_CUES, DATE_CUES, KEYWORD_CONFIDENCE, ROI_AMOUNT_PATTERNS,
                    ROI_DATE_PATTERNS, ROI_EXPANSION)

logger = get_logger("roi")

IDEAL_AREA = 10000.0
AMOUNT_WEIGHT = 1.2

_AMOUNT_PATTERNS = [(re.compile(p, re.IGNORECASE), conf) for p, conf in ROI_AMOUNT_PATTERNS]
_DATE_PATTERNS = [(re.compile(p), conf) for p, conf in ROI_DATE_PATTERNS]


def _match_confidence(text: str, cues: Iterable[str], patterns) -> Optional[float]:
    """Pattern confidence if a pattern matches, keyword confidence for a cue, else None."""
    for pattern, confidence in patterns:
        if pattern.search(text):
            return confidence
    lowered = text.lower()
    if any(cue.lower() in lowered for cue in cues):
        return KEYWORD_CONFIDENCE
    return None


def expand_region(word: OcrWord, canvas_width: int, canvas_height: int,
                  roi_type: RoiType, confidence: float) -> RegionOfInterest:
    """Grow a word box about its center and clip it to the canvas."""
    factor = ROI_EXPANSION[roi_type.value]
    expanded_w = word.width * factor
    expanded_h = word.height * factor
    center_x = word.x + word.width / 2.0
    center_y = word.y + word.height / 2.0

    x = min(max(0.0, center_x - expanded_w / 2.0), max(0, canvas_width - 1))
    y = min(max(0.0, center_y - expanded_h / 2.0), max(0, canvas_height - 1))
    width = min(canvas_width - x, expanded_w)
    height = min(canvas_height - y, expanded_h)

    return RegionOfInterest(
        x=int(math.floor(x)),
        y=int(math.floor(y)),
        width=max(1, int(math.floor(width))),
        height=max(1, int(math.floor(height))),
        type=roi_type,
        confidence=confidence,
    )


def rois_overlap(a: RegionOfInterest, b: RegionOfInterest) -> bool:
    """Rectangles overlap or touch."""
    return not (
        a.x + a.width < b.x
        or b.x + b.width < a.x
        or a.y + a.height < b.y
        or b.y + b.height < a.y
    )


def union_rois(a: RegionOfInterest, b: RegionOfInterest) -> RegionOfInterest:
    x = min(a.x, b.x)
    y = min(a.y, b.y)
    return replace(
        a,
        x=x,
        y=y,
        width=max(a.x + a.width, b.x + b.width) - x,
        height=max(a.y + a.height, b.y + b.height) - y,
        confidence=max(a.confidence, b.confidence),
    )


def merge_overlapping_rois(rois: List[RegionOfInterest]) -> List[RegionOfInterest]:
    """
    Merge overlapping regions of the same type into their union.

    Repeats until no two same-type regions overlap; regions of different types
    are never merged.
    """
    merged = list(rois)
    changed = True
    while changed:
        changed = False
        result: List[RegionOfInterest] = []
        for roi in merged:
            for i, existing in enumerate(result):
                if existing.type == roi.type and rois_overlap(existing, roi):
                    result[i] = union_rois(existing, roi)
                    changed = True
                    break
            else:
                result.append(roi)
        merged = result
    return merged


def extract_rois(words: List[OcrWord], canvas_width: int, canvas_height: int) -> List[RegionOfInterest]:
    """
    Derive amount and date regions from first-pass word boxes.

    A word yields at most one region per type: pattern matches get the
    pattern's confidence, keyword cues get the lower keyword confidence.
    """
    rois = []
    for word in words:
        if word.width <= 0 or word.height <= 0:
            continue
        text = normalize_text(word.text)
        if not text:
            continue

        amount_conf = _match_confidence(text, AMOUNT_CUES, _AMOUNT_PATTERNS)
        if amount_conf is not None:
            rois.append(expand_region(word, canvas_width, canvas_height, RoiType.AMOUNT, amount_conf))

        date_conf = _match_confidence(text, DATE_CUES, _DATE_PATTERNS)
        if date_conf is not None:
            rois.append(expand_region(word, canvas_width, canvas_height, RoiType.DATE, date_conf))

    merged = merge_overlapping_rois(rois)
    logger.debug("%d candidate regions from %d words (%d after merging)", len(rois), len(words), len(merged))
    return merged


def roi_priority(roi: RegionOfInterest) -> float:
    """0.6 * normalized confidence + 0.4 * size score, weighted x1.2 for amounts."""
    confidence_score = min(1.0, max(0.0, (roi.confidence - KEYWORD_CONFIDENCE) / (1.0 - KEYWORD_CONFIDENCE)))
    size_score = math.exp(-abs(roi.area - IDEAL_AREA) / IDEAL_AREA)
    type_weight = AMOUNT_WEIGHT if roi.type == RoiType.AMOUNT else 1.0
    return (confidence_score * 0.6 + size_score * 0.4) * type_weight


def select_rois(rois: List[RegionOfInterest], max_rois: int = 5) -> List[RegionOfInterest]:
    """Highest-priority regions first, at most max_rois of them."""
    if max_rois <= 0:
        return []
    return sorted(rois, key=roi_priority, reverse=True)[:max_rois]


def crop_roi(canvas: Canvas, roi: RegionOfInterest) -> Canvas:
    return canvas.crop(roi.x, roi.y, roi.width, roi.height)
