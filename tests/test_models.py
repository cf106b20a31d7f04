import unittest

import numpy as np
from PIL import Image

from receipt_recognition.core.models import Canvas, ReceiptBounds, RecognitionResult


class TestCanvas(unittest.TestCase):
    def test_crop_is_clipped_and_copied(self) -> None:
        canvas = Canvas(np.zeros((10, 20), dtype=np.uint8))
        cropped = canvas.crop(15, 5, 10, 10)
        self.assertEqual((cropped.width, cropped.height), (5, 5))
        cropped.pixels[:] = 255
        self.assertEqual(int(canvas.pixels.max()), 0)

    def test_crop_outside_raises(self) -> None:
        canvas = Canvas(np.zeros((10, 20), dtype=np.uint8))
        with self.assertRaises(ValueError):
            canvas.crop(30, 0, 5, 5)

    def test_image_round_trip(self) -> None:
        img = Image.new("RGB", (7, 3), (255, 255, 255))
        canvas = Canvas.from_image(img)
        self.assertEqual((canvas.width, canvas.height), (7, 3))
        self.assertEqual(canvas.to_image().mode, "L")

    def test_rejects_color_arrays(self) -> None:
        with self.assertRaises(ValueError):
            Canvas(np.zeros((3, 3, 3), dtype=np.uint8))


class TestValueTypes(unittest.TestCase):
    def test_bounds_need_positive_size(self) -> None:
        with self.assertRaises(ValueError):
            ReceiptBounds(0, 0, 0, 10)

    def test_result_dict_keys(self) -> None:
        result = RecognitionResult("text", None, 500, 0.8, 12)
        self.assertEqual(result.to_dict(), {
            "rawText": "text",
            "date": None,
            "amount": 500,
            "confidence": 0.8,
            "processingTimeMs": 12,
        })


if __name__ == "__main__":
    unittest.main()
