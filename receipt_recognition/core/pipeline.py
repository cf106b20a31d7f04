"""
Receipt recognition orchestration.

preprocess -> locate (or straighten) receipt -> whole-image pass -> region pass -> postprocess
"""

import datetime as dt
import time
from typing import Callable, List, Optional

from .boundary import locate_receipt
from .config import PipelineOptions
from .engine import EngineManager, get_engine_manager
from .errors import ReceiptOcrError, RecognitionError
from .logger import get_logger
from .models import Canvas, OcrStage, RecognitionResult, RegionOfInterest, RoiText
from .perspective import correct_perspective, enhance_for_ocr
from .postprocess import postprocess
from .preprocess import ImageSource, preprocess
from .progress import ProgressCallback, ProgressReporter
from .roi import crop_roi, extract_rois, select_rois
from .utils import PSM_SINGLE_BLOCK, PSM_SINGLE_LINE, ROI_WHITELISTS

logger = get_logger("pipeline")


class ReceiptRecognizer:
    """Runs the full recognition pipeline with fixed options against one engine manager."""

    def __init__(self, options: Optional[PipelineOptions] = None,
                 manager: Optional[EngineManager] = None,
                 today: Optional[Callable[[], dt.date]] = None):
        """
        Args:
            options: Pipeline switches (defaults come from the environment)
            manager: Engine manager to use (defaults to the shared one)
            today: Reference-date provider for date scoring (defaults to date.today)
        """
        self.options = options or PipelineOptions.from_env()
        self.manager = manager or get_engine_manager()
        self.today = today or dt.date.today

    def recognize(self, source: ImageSource,
                  on_progress: Optional[ProgressCallback] = None,
                  reporter: Optional[ProgressReporter] = None) -> RecognitionResult:
        """
        Recognize one receipt.

        Progress goes to on_progress (or an existing reporter); the last event
        is always at 100, with stage "error" when the run fails.

        Raises:
            DecodeError: if the input cannot be read
            EngineInitError: if the engine cannot be loaded
            RecognitionError: if the whole-image pass fails
        """
        progress = reporter or ProgressReporter(on_progress)
        started = time.perf_counter()
        try:
            result = self._run(source, progress)
        except ReceiptOcrError as e:
            logger.error("Recognition failed: %s", e)
            progress.report(100, OcrStage.ERROR)
            raise
        except Exception as e:
            logger.exception("Unexpected failure during recognition")
            progress.report(100, OcrStage.ERROR)
            raise ReceiptOcrError(f"Unexpected failure during recognition: {e}") from e

        result.processing_time_ms = int(round((time.perf_counter() - started) * 1000))
        progress.report(100, OcrStage.COMPLETED)
        logger.info("Recognized receipt in %d ms (date=%s, amount=%s, confidence=%.2f)",
                    result.processing_time_ms, result.date, result.amount, result.confidence)
        return result

    def _run(self, source: ImageSource, progress: ProgressReporter) -> RecognitionResult:
        opts = self.options

        progress.report(10, OcrStage.PREPROCESSING)
        stage_start = time.perf_counter()
        canvas = preprocess(source, opts, pdf_page=opts.pdf_page)
        logger.debug("Preprocessed to %dx%d in %.0f ms", canvas.width, canvas.height,
                     (time.perf_counter() - stage_start) * 1000)
        progress.report(20, OcrStage.PREPROCESSING)

        if opts.enable_boundary_detection:
            progress.report(25, OcrStage.DETECTING_BOUNDARY)
            canvas = self._crop_to_receipt(canvas)

        if opts.enable_enhancement:
            canvas = enhance_for_ocr(canvas)

        progress.report(30, OcrStage.EXTRACTING_TEXT)
        with self.manager.acquire(progress.span(30, 45)) as engine:
            stage_start = time.perf_counter()
            page = engine.recognize(canvas, psm=PSM_SINGLE_BLOCK, progress=progress.span(45, 60))
            logger.debug("Whole-image pass: %d words in %.0f ms", len(page.words),
                         (time.perf_counter() - stage_start) * 1000)
            progress.report(60, OcrStage.EXTRACTING_TEXT)

            roi_results: List[RoiText] = []
            if opts.enable_two_pass and opts.max_rois > 0:
                progress.report(65, OcrStage.DETECTING_ROIS)
                rois = select_rois(extract_rois(page.words, canvas.width, canvas.height), opts.max_rois)
                progress.report(70, OcrStage.DETECTING_ROIS)
                progress.report(75, OcrStage.RECOGNIZING_ROIS)
                roi_results = self._read_rois(engine, canvas, rois, progress)

        progress.report(95, OcrStage.POST_PROCESSING)
        fields = postprocess(page.text, roi_results, today=self.today())
        return RecognitionResult(
            raw_text=fields["rawText"],
            date=fields["date"],
            amount=fields["amount"],
            confidence=fields["confidence"],
            processing_time_ms=0,
        )

    def _crop_to_receipt(self, canvas: Canvas) -> Canvas:
        if self.options.enable_perspective_correction:
            corrected = correct_perspective(canvas)
            if corrected is not None:
                return corrected
        bounds = locate_receipt(canvas, min_score=self.options.boundary_min_score)
        if bounds is None:
            logger.debug("No receipt boundary found; using the full image")
            return canvas
        if bounds.width == canvas.width and bounds.height == canvas.height:
            return canvas
        logger.debug("Cropping to receipt bounds %s", bounds)
        return canvas.crop(bounds.x, bounds.y, bounds.width, bounds.height)

    def _read_rois(self, engine, canvas: Canvas, rois: List[RegionOfInterest],
                   progress: ProgressReporter) -> List[RoiText]:
        """Read each region on its own; a failed region is skipped."""
        results = []
        total = len(rois)
        for i, roi in enumerate(rois):
            start = 75 + 20 * i / total
            end = 75 + 20 * (i + 1) / total
            try:
                page = engine.recognize(
                    crop_roi(canvas, roi),
                    psm=PSM_SINGLE_LINE,
                    whitelist=ROI_WHITELISTS[roi.type.value],
                    progress=progress.span(start, end),
                )
            except (RecognitionError, ValueError) as e:
                logger.warning("Skipping %s region at (%d, %d): %s", roi.type.value, roi.x, roi.y, e)
                progress.report(end, OcrStage.RECOGNIZING_ROIS)
                continue
            results.append(RoiText(text=page.text, type=roi.type, confidence=roi.confidence))
        return results


def recognize_receipt(source: ImageSource, options: Optional[PipelineOptions] = None,
                      on_progress: Optional[ProgressCallback] = None,
                      manager: Optional[EngineManager] = None) -> RecognitionResult:
    """Recognize one receipt image (or PDF) and return its date, amount and confidence."""
    return ReceiptRecognizer(options, manager).recognize(source, on_progress)
