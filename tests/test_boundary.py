import unittest

import numpy as np

from receipt_recognition.core.boundary import (locate_receipt, score_box, sobel_edges,
                                               trace_contours)
from receipt_recognition.core.models import Canvas, ReceiptBounds


def _receipt_on_table(size: int = 200, scale: int = 1) -> Canvas:
    """Dark background with a bright upright rectangle around the center."""
    pixels = np.zeros((size * scale, size * scale), dtype=np.uint8)
    pixels[30 * scale:170 * scale, 60 * scale:140 * scale] = 255
    return Canvas(pixels)


class TestScoreBox(unittest.TestCase):
    def test_centered_box_scores_one(self) -> None:
        self.assertAlmostEqual(score_box(ReceiptBounds(0, 50, 100, 100), 100, 200), 1.0)

    def test_full_image_box_loses_area_score(self) -> None:
        self.assertAlmostEqual(score_box(ReceiptBounds(0, 0, 100, 200), 100, 200), 0.6)

    def test_wide_small_box(self) -> None:
        score = score_box(ReceiptBounds(0, 0, 50, 5), 100, 200)
        self.assertLess(score, 0.2)
        self.assertGreaterEqual(score, 0.0)


class TestEdgesAndContours(unittest.TestCase):
    def test_edges_follow_intensity_steps(self) -> None:
        edges = sobel_edges(_receipt_on_table().pixels)
        self.assertTrue(edges[100, 59])
        self.assertTrue(edges[100, 60])
        self.assertFalse(edges[100, 100])
        self.assertFalse(edges[0, :].any())

    def test_short_contours_dropped(self) -> None:
        edges = np.zeros((10, 10), dtype=bool)
        edges[5, 2:7] = True
        self.assertEqual(trace_contours(edges), [])
        self.assertEqual(len(trace_contours(edges, min_length=5)), 1)

    def test_outer_ring_traced_first(self) -> None:
        contours = trace_contours(sobel_edges(_receipt_on_table().pixels))
        self.assertGreaterEqual(len(contours), 1)
        self.assertEqual(contours[0].bounding_box(), ReceiptBounds(59, 29, 82, 142))


class TestLocateReceipt(unittest.TestCase):
    def test_finds_rectangle(self) -> None:
        self.assertEqual(locate_receipt(_receipt_on_table()), ReceiptBounds(59, 29, 82, 142))

    def test_large_images_are_scaled_back(self) -> None:
        bounds = locate_receipt(_receipt_on_table(scale=6))
        self.assertIsNotNone(bounds)
        self.assertAlmostEqual(bounds.x, 360, delta=12)
        self.assertAlmostEqual(bounds.y, 180, delta=12)
        self.assertAlmostEqual(bounds.x + bounds.width, 840, delta=12)
        self.assertAlmostEqual(bounds.y + bounds.height, 1020, delta=12)

    def test_uniform_image_has_no_boundary(self) -> None:
        self.assertIsNone(locate_receipt(Canvas(np.full((120, 80), 255, dtype=np.uint8))))

    def test_min_score_not_reached(self) -> None:
        self.assertIsNone(locate_receipt(_receipt_on_table(), min_score=1.5))


if __name__ == "__main__":
    unittest.main()
