"""
Shared Tesseract engine with a guarded lifecycle.

One EngineManager per process owns the engine. Initialization is staged and
reported through the caller's ProgressReporter; concurrent initializers wait
for the first one instead of loading twice, and recognition calls are
serialized so only one Tesseract job runs against the engine at a time.
"""

import threading
from collections import OrderedDict
from typing import Dict, List, Optional

import pytesseract
from pytesseract import Output, TesseractError, TesseractNotFoundError

from .config import EngineSettings
from .errors import EngineInitError, RecognitionError
from .logger import get_logger
from .models import Canvas, EngineState, OcrPage, OcrStage, OcrWord
from .progress import ProgressReporter
from .utils import ENGINE_WHITELIST, PSM_SINGLE_BLOCK

logger = get_logger("engine")

BASE_PARAMETERS = {
    "preserve_interword_spaces": "1",
    "tessedit_do_invert": "0",
}


class TesseractEngine:
    """A configured Tesseract: language, base parameters and default whitelist."""

    def __init__(self, lang: str, version: str, whitelist: Optional[str] = ENGINE_WHITELIST,
                 parameters: Optional[Dict[str, str]] = None, timeout: int = 0):
        self.lang = lang
        self.version = version
        self.whitelist = whitelist
        self.parameters = dict(parameters or BASE_PARAMETERS)
        self.timeout = timeout

    def build_config(self, psm: int, whitelist: Optional[str] = None) -> str:
        parts = [f"--psm {int(psm)}"]
        for key, value in self.parameters.items():
            parts.append(f"-c {key}={value}")
        chars = whitelist if whitelist is not None else self.whitelist
        if chars:
            parts.append(f"-c tessedit_char_whitelist={chars}")
        return " ".join(parts)

    def recognize(self, canvas: Canvas, psm: int = PSM_SINGLE_BLOCK,
                  whitelist: Optional[str] = None) -> OcrPage:
        data = pytesseract.image_to_data(
            canvas.to_image(),
            lang=self.lang,
            config=self.build_config(psm, whitelist),
            output_type=Output.DICT,
            timeout=self.timeout,
        )
        return page_from_data(data)


def _parse_confidence(raw) -> Optional[float]:
    try:
        conf = float(raw)
    except (TypeError, ValueError):
        return None
    if conf < 0:
        return None
    return max(0.0, min(1.0, conf / 100.0))


def page_from_data(data: Dict[str, List]) -> OcrPage:
    """
    Build text lines and word boxes from Tesseract's image_to_data dict.

    Only word-level rows (level 5) with text are kept; words are grouped into
    lines by (page, block, paragraph, line) in the order Tesseract emits them.
    """
    lines: "OrderedDict[tuple, List[str]]" = OrderedDict()
    words = []
    count = len(data.get("text", []))
    for i in range(count):
        try:
            level = int(data["level"][i])
        except (KeyError, TypeError, ValueError):
            continue
        if level != 5:
            continue
        text = str(data["text"][i] or "").strip()
        if not text:
            continue
        try:
            key = (int(data["page_num"][i]), int(data["block_num"][i]),
                   int(data["par_num"][i]), int(data["line_num"][i]))
            left, top = int(data["left"][i]), int(data["top"][i])
            width, height = int(data["width"][i]), int(data["height"][i])
        except (KeyError, TypeError, ValueError):
            continue
        conf = _parse_confidence(data.get("conf", [None] * count)[i])
        lines.setdefault(key, []).append(text)
        words.append(OcrWord(text, left, top, width, height, conf if conf is not None else 0.0))

    text = "\n".join(" ".join(parts) for parts in lines.values())
    confidence = sum(w.confidence for w in words) / len(words) if words else 0.0
    return OcrPage(text=text, words=words, confidence=confidence)


class EngineHandle:
    """Explicit access to the shared engine; release() when done."""

    def __init__(self, manager: "EngineManager"):
        self._manager = manager
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def recognize(self, canvas: Canvas, psm: int = PSM_SINGLE_BLOCK,
                  whitelist: Optional[str] = None,
                  progress: Optional[ProgressReporter] = None) -> OcrPage:
        if self._released:
            raise RecognitionError("Engine handle has already been released")
        return self._manager.recognize(canvas, psm=psm, whitelist=whitelist, progress=progress)

    def release(self):
        if not self._released:
            self._released = True
            self._manager._release()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


class EngineManager:
    """
    Owner of the process-wide recognition engine.

    States: UNINITIALIZED -> INITIALIZING -> READY <-> RECOGNIZING. A failed
    initialization returns to UNINITIALIZED; losing the Tesseract binary during
    recognition moves to ERROR, which only reset() clears.
    """

    _instance: Optional["EngineManager"] = None
    _instance_lock = threading.Lock()

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings.from_env()
        self._engine: Optional[TesseractEngine] = None
        self._state = EngineState.UNINITIALIZED
        self._cond = threading.Condition()
        self._recognize_lock = threading.Lock()
        self._handles = 0
        self._progress = 0
        self._stage = OcrStage.INITIALIZING.value

    @classmethod
    def instance(cls) -> "EngineManager":
        """The shared manager, created on first use."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def _reset_instance(cls):
        with cls._instance_lock:
            if cls._instance is not None:
                cls._instance.terminate()
            cls._instance = None

    @property
    def state(self) -> EngineState:
        with self._cond:
            return self._state

    @property
    def active_handles(self) -> int:
        with self._cond:
            return self._handles

    def snapshot(self) -> Dict[str, object]:
        with self._cond:
            return {"state": self._state.value, "progress": self._progress, "stage": self._stage}

    def _report(self, progress: Optional[ProgressReporter], percent: int, stage: OcrStage):
        with self._cond:
            self._progress = percent
            self._stage = stage.value
        if progress is not None:
            progress.report(percent, stage)

    def initialize(self, progress: Optional[ProgressReporter] = None) -> TesseractEngine:
        """
        Load the engine once.

        Returns immediately when already READY. If another thread is loading,
        waits for it and shares the result rather than loading a second time.

        Raises:
            EngineInitError: if loading fails (state returns to UNINITIALIZED so
                a later call can retry) or the manager is in the ERROR state
        """
        with self._cond:
            if self._state == EngineState.ERROR:
                raise EngineInitError("Recognition engine is in an error state; reset() is required")
            if self._state in (EngineState.READY, EngineState.RECOGNIZING):
                return self._engine
            if self._state == EngineState.INITIALIZING:
                while self._state == EngineState.INITIALIZING:
                    self._cond.wait()
                if self._state in (EngineState.READY, EngineState.RECOGNIZING):
                    return self._engine
                raise EngineInitError("Recognition engine initialization failed in another thread")
            self._state = EngineState.INITIALIZING

        try:
            engine = self._load(progress)
        except Exception as e:
            with self._cond:
                self._engine = None
                self._state = EngineState.UNINITIALIZED
                self._cond.notify_all()
            logger.error("Recognition engine initialization failed: %s", e)
            if isinstance(e, EngineInitError):
                raise
            raise EngineInitError(f"Recognition engine initialization failed: {e}") from e

        with self._cond:
            self._engine = engine
            self._state = EngineState.READY
            self._cond.notify_all()
        self._report(progress, 100, OcrStage.COMPLETED)
        logger.info("Tesseract %s ready (lang=%s)", engine.version, engine.lang)
        return engine

    def _load(self, progress: Optional[ProgressReporter]) -> TesseractEngine:
        settings = self.settings
        self._report(progress, 0, OcrStage.INITIALIZING)
        if settings.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = settings.tesseract_cmd

        try:
            version = str(pytesseract.get_tesseract_version())
        except TesseractNotFoundError as e:
            raise EngineInitError("tesseract binary not found; install Tesseract or set TESSERACT_CMD") from e
        self._report(progress, 10, OcrStage.INITIALIZING)

        self._report(progress, 20, OcrStage.LOADING_LANGUAGE)
        try:
            installed = set(pytesseract.get_languages(config=""))
        except (TesseractError, TesseractNotFoundError, OSError) as e:
            raise EngineInitError(f"Could not list Tesseract languages: {e}") from e
        missing = [lang for lang in settings.languages if lang not in installed]
        if missing:
            raise EngineInitError(
                f"Tesseract language data not installed: {', '.join(missing)} "
                f"(available: {', '.join(sorted(installed)) or 'none'})"
            )
        self._report(progress, 40, OcrStage.LOADING_LANGUAGE)

        self._report(progress, 70, OcrStage.INITIALIZING_TESSERACT)
        return TesseractEngine(
            lang=settings.lang,
            version=version,
            whitelist=ENGINE_WHITELIST,
            parameters=BASE_PARAMETERS,
            timeout=settings.timeout,
        )

    def recognize(self, canvas: Canvas, psm: int = PSM_SINGLE_BLOCK,
                  whitelist: Optional[str] = None,
                  progress: Optional[ProgressReporter] = None) -> OcrPage:
        """
        Run one recognition job, initializing the engine first if needed.

        Args:
            canvas: Image to read
            psm: Tesseract page segmentation mode
            whitelist: Character whitelist overriding the engine default
            progress: Reporter for this call's progress

        Raises:
            EngineInitError: if the engine cannot be loaded
            RecognitionError: if Tesseract fails on this image
        """
        if self.state == EngineState.ERROR:
            raise RecognitionError("Recognition engine is in an error state; reset() is required")
        self.initialize(progress)

        with self._recognize_lock:
            while True:
                with self._cond:
                    if self._state == EngineState.ERROR:
                        raise RecognitionError("Recognition engine is in an error state; reset() is required")
                    if self._state == EngineState.READY and self._engine is not None:
                        engine = self._engine
                        self._state = EngineState.RECOGNIZING
                        break
                # terminated since the call above; terminate() cannot run while the lock is held
                self.initialize(progress)
            self._report(progress, 0, OcrStage.PROCESSING_IMAGE)

            next_state = EngineState.READY
            try:
                self._report(progress, 10, OcrStage.EXTRACTING_TEXT)
                page = engine.recognize(canvas, psm=psm, whitelist=whitelist)
            except TesseractNotFoundError as e:
                next_state = EngineState.ERROR
                raise RecognitionError("tesseract binary disappeared during recognition") from e
            except (TesseractError, RuntimeError, OSError, ValueError) as e:
                raise RecognitionError(f"Recognition failed: {e}") from e
            finally:
                with self._cond:
                    self._state = next_state
                    self._cond.notify_all()

        self._report(progress, 100, OcrStage.COMPLETED)
        logger.debug("Recognized %d words (psm=%d, %dx%d)", len(page.words), psm, canvas.width, canvas.height)
        return page

    def acquire(self, progress: Optional[ProgressReporter] = None) -> EngineHandle:
        """Initialize if needed and hand out a handle to the engine."""
        self.initialize(progress)
        with self._cond:
            self._handles += 1
        return EngineHandle(self)

    def _release(self):
        with self._cond:
            self._handles = max(0, self._handles - 1)

    def terminate(self):
        """Drop the engine; the next call loads it again."""
        with self._recognize_lock:
            with self._cond:
                while self._state == EngineState.INITIALIZING:
                    self._cond.wait()
                self._engine = None
                if self._state != EngineState.ERROR:
                    self._state = EngineState.UNINITIALIZED
                self._cond.notify_all()

    def reset(self):
        """Terminate and clear any ERROR state."""
        self.terminate()
        with self._cond:
            self._state = EngineState.UNINITIALIZED
            self._progress = 0
            self._stage = OcrStage.INITIALIZING.value
            self._cond.notify_all()


def get_engine_manager() -> EngineManager:
    return EngineManager.instance()
