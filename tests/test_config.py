import os
import unittest
from unittest.mock import patch

from receipt_recognition.core.config import EngineSettings, PipelineOptions


class TestPipelineOptions(unittest.TestCase):
    def test_defaults(self) -> None:
        opts = PipelineOptions()
        self.assertTrue(opts.enable_tilt_correction)
        self.assertTrue(opts.enable_noise_reduction)
        self.assertTrue(opts.enable_boundary_detection)
        self.assertTrue(opts.enable_two_pass)
        self.assertEqual(opts.max_dimension, 1800)
        self.assertFalse(opts.enable_perspective_correction)
        self.assertFalse(opts.enable_enhancement)
        self.assertEqual(opts.max_rois, 5)

    @patch.dict(os.environ, {"RECEIPT_OCR_MAX_ROIS": "3", "RECEIPT_OCR_TWO_PASS": "off",
                             "RECEIPT_OCR_MAX_DIMENSION": "1200", "RECEIPT_OCR_PERSPECTIVE": "yes"})
    def test_environment(self) -> None:
        opts = PipelineOptions.from_env()
        self.assertEqual(opts.max_rois, 3)
        self.assertFalse(opts.enable_two_pass)
        self.assertEqual(opts.max_dimension, 1200)
        self.assertTrue(opts.enable_perspective_correction)

    @patch.dict(os.environ, {"RECEIPT_OCR_MAX_ROIS": "many", "RECEIPT_OCR_TWO_PASS": "maybe"})
    def test_invalid_values_fall_back(self) -> None:
        with self.assertLogs("receipt_recognition.config", level="WARNING") as logs:
            opts = PipelineOptions.from_env()
        self.assertEqual(opts.max_rois, 5)
        self.assertTrue(opts.enable_two_pass)
        self.assertEqual(len(logs.records), 2)

    @patch.dict(os.environ, {"RECEIPT_OCR_MAX_ROIS": "3"})
    def test_overrides_win_and_none_is_ignored(self) -> None:
        opts = PipelineOptions.from_env(max_rois=1, enable_two_pass=None, pdf_page=2)
        self.assertEqual(opts.max_rois, 1)
        self.assertTrue(opts.enable_two_pass)
        self.assertEqual(opts.pdf_page, 2)

    def test_unknown_override(self) -> None:
        with self.assertRaises(TypeError):
            PipelineOptions.from_env(colour=True)


class TestEngineSettings(unittest.TestCase):
    @patch.dict(os.environ, {"RECEIPT_OCR_LANG": "eng", "RECEIPT_OCR_TIMEOUT": "30",
                             "TESSERACT_CMD": "/opt/tesseract/bin/tesseract"})
    def test_environment(self) -> None:
        settings = EngineSettings.from_env()
        self.assertEqual(settings.languages, ["eng"])
        self.assertEqual(settings.timeout, 30)
        self.assertEqual(settings.tesseract_cmd, "/opt/tesseract/bin/tesseract")

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self) -> None:
        settings = EngineSettings.from_env()
        self.assertEqual(settings.lang, "jpn+eng")
        self.assertEqual(settings.languages, ["jpn", "eng"])
        self.assertIsNone(settings.tesseract_cmd)


if __name__ == "__main__":
    unittest.main()
