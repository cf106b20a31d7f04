"""
Receipt boundary detection: Sobel edges, contour tracing, contour scoring.
"""

import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
from PIL import Image

from .logger import get_logger
from .models import Canvas, ReceiptBounds

logger = get_logger("boundary")

EDGE_THRESHOLD = 100.0
MIN_CONTOUR_LENGTH = 20
WORK_DIMENSION = 600

ASPECT_RANGE = (0.5, 3.0)
AREA_RANGE = (0.1, 0.9)
SCORE_WEIGHTS = {"aspect": 0.4, "area": 0.4, "position": 0.2}

# 8-connected neighbour offsets (dx, dy), clockwise starting east
DIRECTIONS = ((1, 0), (1, 1), (0, 1), (-1, 1), (-1, 0), (-1, -1), (0, -1), (1, -1))


@dataclass
class Contour:
    """A traced border: flat pixel indices into an image of the given width."""
    points: List[int]
    image_width: int

    def __len__(self):
        return len(self.points)

    def bounding_box(self) -> ReceiptBounds:
        idx = np.asarray(self.points)
        ys, xs = np.divmod(idx, self.image_width)
        x0, y0 = int(xs.min()), int(ys.min())
        return ReceiptBounds(x0, y0, int(xs.max()) - x0 + 1, int(ys.max()) - y0 + 1)


def sobel_edges(gray: np.ndarray, threshold: float = EDGE_THRESHOLD) -> np.ndarray:
    """Boolean edge mask from the Sobel gradient magnitude (interior pixels only)."""
    g = gray.astype(np.float64)
    edges = np.zeros(g.shape, dtype=bool)
    if g.shape[0] < 3 or g.shape[1] < 3:
        return edges
    gx = (g[:-2, 2:] + 2 * g[1:-1, 2:] + g[2:, 2:]) - (g[:-2, :-2] + 2 * g[1:-1, :-2] + g[2:, :-2])
    gy = (g[2:, :-2] + 2 * g[2:, 1:-1] + g[2:, 2:]) - (g[:-2, :-2] + 2 * g[:-2, 1:-1] + g[:-2, 2:])
    edges[1:-1, 1:-1] = np.hypot(gx, gy) > threshold
    return edges


def trace_contours(edges: np.ndarray, min_length: int = MIN_CONTOUR_LENGTH) -> List[Contour]:
    """
    Follow 8-connected edge borders.

    Every unvisited edge pixel (in scan order) starts a walk. At each step the
    neighbours are tried clockwise, starting 90 degrees left of the current
    heading; the walk ends when no unvisited neighbour remains or it returns to
    its start. Walks shorter than min_length are dropped.
    """
    height, width = edges.shape
    is_edge = edges.ravel().tolist()
    visited = bytearray(height * width)
    contours = []

    for start in np.flatnonzero(edges).tolist():
        if visited[start]:
            continue
        visited[start] = 1
        points = [start]
        current = start
        heading = 0

        while True:
            cy, cx = divmod(current, width)
            step = None
            for k in range(8):
                d = (heading + 6 + k) % 8
                nx = cx + DIRECTIONS[d][0]
                ny = cy + DIRECTIONS[d][1]
                if nx < 0 or ny < 0 or nx >= width or ny >= height:
                    continue
                n = ny * width + nx
                if n == start and len(points) > 2:
                    step = None
                    break
                if is_edge[n] and not visited[n]:
                    step = (n, d)
                    break
            if step is None:
                break
            current, heading = step
            visited[current] = 1
            points.append(current)

        if len(points) >= min_length:
            contours.append(Contour(points, width))

    return contours


def score_box(box: ReceiptBounds, image_width: int, image_height: int) -> float:
    """
    Plausibility of a box being the receipt outline, 0.0-1.0.

    0.4 * aspect (height/width within 0.5-3.0) + 0.4 * area (10-90% of the
    image) + 0.2 * closeness of the box center to the image center.
    """
    aspect = box.height / box.width
    aspect_score = 1.0 if ASPECT_RANGE[0] <= aspect <= ASPECT_RANGE[1] else 0.0

    area_fraction = (box.width * box.height) / float(image_width * image_height)
    area_score = 1.0 if AREA_RANGE[0] <= area_fraction <= AREA_RANGE[1] else 0.0

    cx = box.x + box.width / 2.0
    cy = box.y + box.height / 2.0
    max_distance = math.hypot(image_width / 2.0, image_height / 2.0)
    distance = math.hypot(cx - image_width / 2.0, cy - image_height / 2.0)
    position_score = max(0.0, 1.0 - distance / max_distance) if max_distance else 0.0

    return (SCORE_WEIGHTS["aspect"] * aspect_score
            + SCORE_WEIGHTS["area"] * area_score
            + SCORE_WEIGHTS["position"] * position_score)


def locate_receipt(canvas: Canvas, min_score: float = 0.0,
                   work_dimension: int = WORK_DIMENSION) -> Optional[ReceiptBounds]:
    """
    Find the receipt rectangle within a photo.

    Detection runs on a copy scaled down to work_dimension; the returned
    bounds are in the canvas's own coordinates. Returns None when no contour
    scores above min_score (and above zero), in which case callers fall back to
    the full image.
    """
    scale = 1.0
    gray = canvas.pixels
    if max(canvas.width, canvas.height) > work_dimension:
        scale = work_dimension / float(max(canvas.width, canvas.height))
        small = canvas.to_image().resize(
            (max(1, int(round(canvas.width * scale))), max(1, int(round(canvas.height * scale)))),
            Image.Resampling.BILINEAR,
        )
        gray = np.asarray(small, dtype=np.uint8)

    work_h, work_w = gray.shape
    contours = trace_contours(sobel_edges(gray))
    if not contours:
        logger.debug("No contours found")
        return None

    best_box = None
    best_score = max(0.0, min_score)
    for contour in contours:
        box = contour.bounding_box()
        score = score_box(box, work_w, work_h)
        if score > best_score:
            best_score = score
            best_box = box

    if best_box is None:
        logger.debug("No contour scored above %.2f among %d", min_score, len(contours))
        return None

    x0 = max(0, int(math.floor(best_box.x / scale)))
    y0 = max(0, int(math.floor(best_box.y / scale)))
    x1 = min(canvas.width, int(math.ceil((best_box.x + best_box.width) / scale)))
    y1 = min(canvas.height, int(math.ceil((best_box.y + best_box.height) / scale)))
    if x1 <= x0 or y1 <= y0:
        return None
    bounds = ReceiptBounds(x0, y0, x1 - x0, y1 - y0)
    logger.debug("Receipt bounds %s (score %.2f)", bounds, best_score)
    return bounds
