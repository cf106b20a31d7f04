"""
Perspective correction for photographed receipts, and a binarized variant
of the page for hard-to-read prints.
"""

from typing import Optional

import cv2
import numpy as np

from .logger import get_logger
from .models import Canvas

logger = get_logger("perspective")

MIN_AREA_FRACTION = 0.1
MIN_WARP_SIDE = 50


def find_receipt_quad(gray: np.ndarray, min_area_fraction: float = MIN_AREA_FRACTION) -> Optional[np.ndarray]:
    """
    Largest four-corner outline in the image (4x1x2 int array), or None.

    Outlines covering less than min_area_fraction of the image are ignored.
    """
    h, w = gray.shape[:2]
    blurred = cv2.GaussianBlur(gray, (5, 5), 0)
    edges = cv2.Canny(blurred, 50, 150)
    edges = cv2.dilate(edges, np.ones((3, 3), np.uint8), iterations=1)

    contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    best = None
    best_area = (h * w) * min_area_fraction
    for c in contours:
        peri = cv2.arcLength(c, True)
        approx = cv2.approxPolyDP(c, 0.02 * peri, True)
        if len(approx) != 4:
            continue
        area = cv2.contourArea(approx)
        if area > best_area:
            best_area = area
            best = approx
    return best


def order_points(pts: np.ndarray) -> np.ndarray:
    """Order 4 points as [top-left, top-right, bottom-right, bottom-left]."""
    pts = pts.reshape(4, 2).astype("float32")
    rect = np.zeros((4, 2), dtype="float32")

    s = pts.sum(axis=1)
    rect[0] = pts[np.argmin(s)]
    rect[2] = pts[np.argmax(s)]

    diff = np.diff(pts, axis=1)
    rect[1] = pts[np.argmin(diff)]
    rect[3] = pts[np.argmax(diff)]
    return rect


def four_point_warp(image: np.ndarray, quad: np.ndarray) -> np.ndarray:
    """Fronto-parallel view of the quadrilateral, sized by its longest sides."""
    rect = order_points(quad)
    (tl, tr, br, bl) = rect

    max_width = int(max(np.linalg.norm(br - bl), np.linalg.norm(tr - tl)))
    max_height = int(max(np.linalg.norm(tr - br), np.linalg.norm(tl - bl)))
    max_width = max(MIN_WARP_SIDE, max_width)
    max_height = max(MIN_WARP_SIDE, max_height)

    dst = np.array(
        [
            [0, 0],
            [max_width - 1, 0],
            [max_width - 1, max_height - 1],
            [0, max_height - 1],
        ],
        dtype="float32",
    )
    M = cv2.getPerspectiveTransform(rect, dst)
    return cv2.warpPerspective(image, M, (max_width, max_height))


def correct_perspective(canvas: Canvas, min_area_fraction: float = MIN_AREA_FRACTION) -> Optional[Canvas]:
    """
    Straighten the receipt outline found in the canvas.

    Returns None when no four-corner outline is found, in which case callers
    keep the canvas (or fall back to the rectangular crop).
    """
    quad = find_receipt_quad(canvas.pixels, min_area_fraction)
    if quad is None:
        logger.debug("No four-corner receipt outline found")
        return None
    warped = four_point_warp(canvas.pixels, quad)
    logger.debug("Perspective-corrected %s to %dx%d", quad.reshape(4, 2).tolist(),
                 warped.shape[1], warped.shape[0])
    return Canvas(np.ascontiguousarray(warped, dtype=np.uint8))


def enhance_for_ocr(canvas: Canvas) -> Canvas:
    """Median blur, contrast boost, then Gaussian adaptive threshold (black on white)."""
    denoised = cv2.medianBlur(canvas.pixels, 3)
    enhanced = cv2.convertScaleAbs(denoised, alpha=1.2, beta=10)
    binary = cv2.adaptiveThreshold(
        enhanced, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 11, 2
    )
    return Canvas(binary)
