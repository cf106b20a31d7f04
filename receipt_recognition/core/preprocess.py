"""
Image preprocessing: decode, resize, grayscale, binarize, denoise, deskew.
"""

import io
from pathlib import Path
from typing import Optional, Union

import numpy as np
from PIL import Image, ImageOps

from .config import PreprocessOptions
from .errors import DecodeError
from .logger import get_logger
from .models import Canvas
from .pdf import is_pdf_bytes, limit_dimensions, render_pdf_page
from .utils import PDF_EXTS

logger = get_logger("preprocess")

ImageSource = Union[bytes, bytearray, str, Path, Image.Image, np.ndarray, Canvas]

DEFAULT_THRESHOLD = 180
TILT_RANGE = 5.0
TILT_STEP = 0.5
MIN_TILT = 0.5

LUMA_WEIGHTS = (0.299, 0.587, 0.114)


def load_image(source: ImageSource, pdf_page: int = 1, max_dimension: int = 1800) -> Image.Image:
    """
    Decode any supported input into an RGB Pillow image.

    PDFs (detected by header or suffix) are rendered page by page; EXIF
    orientation is applied to photos.
    """
    if isinstance(source, Canvas):
        return source.to_image().convert("RGB")

    try:
        if isinstance(source, Image.Image):
            img = source
        elif isinstance(source, np.ndarray):
            img = Image.fromarray(np.clip(source, 0, 255).astype(np.uint8))
        elif isinstance(source, (bytes, bytearray)):
            data = bytes(source)
            if is_pdf_bytes(data):
                return render_pdf_page(data, pdf_page, max_dimension=max_dimension)
            img = Image.open(io.BytesIO(data))
        elif isinstance(source, (str, Path)):
            path = Path(source)
            if path.suffix.lower() in PDF_EXTS:
                return render_pdf_page(path, pdf_page, max_dimension=max_dimension)
            img = Image.open(io.BytesIO(path.read_bytes()))
        else:
            raise DecodeError(f"Unsupported input type: {type(source).__name__}")
        img.load()
        img = ImageOps.exif_transpose(img)
        return img.convert("RGB")
    except DecodeError:
        raise
    except (OSError, ValueError, TypeError) as e:
        raise DecodeError(f"Could not decode image: {e}") from e


def to_grayscale(img: Image.Image) -> np.ndarray:
    """Luma grayscale (0.299R + 0.587G + 0.114B), rounded to uint8."""
    rgb = np.asarray(img.convert("RGB"), dtype=np.float64)
    r, g, b = LUMA_WEIGHTS
    gray = rgb[..., 0] * r + rgb[..., 1] * g + rgb[..., 2] * b
    return np.clip(np.rint(gray), 0, 255).astype(np.uint8)


def intensity_histogram(gray: np.ndarray) -> np.ndarray:
    return np.bincount(gray.ravel(), minlength=256)[:256]


def otsu_threshold(histogram, default: int = DEFAULT_THRESHOLD) -> int:
    """
    Otsu's threshold for a 256-bin histogram.

    Maximizes the between-class variance w_b * w_f * (mu_b - mu_f)^2. When a
    range of thresholds ties for the maximum (well separated peaks), the middle
    of that range is returned.
    """
    hist = np.asarray(histogram, dtype=np.float64)
    total = hist.sum()
    if total <= 0:
        return default

    levels = np.arange(hist.size, dtype=np.float64)
    weight_b = np.cumsum(hist)
    weight_f = total - weight_b
    sum_b = np.cumsum(hist * levels)
    sum_total = sum_b[-1]

    valid = (weight_b > 0) & (weight_f > 0)
    if not valid.any():
        return default

    variance = np.full(hist.size, -1.0)
    wb = weight_b[valid]
    wf = weight_f[valid]
    mean_b = sum_b[valid] / wb
    mean_f = (sum_total - sum_b[valid]) / wf
    variance[valid] = wb * wf * (mean_b - mean_f) ** 2

    best = variance.max()
    ties = np.flatnonzero(variance >= best - best * 1e-12)
    return int((ties[0] + ties[-1]) // 2)


def binarize(gray: np.ndarray, threshold: Optional[int] = None) -> np.ndarray:
    """Pixels above the threshold become white (255), the rest black (0)."""
    if threshold is None:
        threshold = otsu_threshold(intensity_histogram(gray))
    return np.where(gray > threshold, 255, 0).astype(np.uint8)


def remove_noise(binary: np.ndarray) -> np.ndarray:
    """3x3 majority vote on interior pixels; border pixels are kept."""
    out = binary.copy()
    height, width = binary.shape
    if height < 3 or width < 3:
        return out
    white = (binary > 127).astype(np.uint8)
    counts = np.zeros((height - 2, width - 2), dtype=np.uint8)
    for dy in range(3):
        for dx in range(3):
            counts += white[dy:dy + height - 2, dx:dx + width - 2]
    out[1:-1, 1:-1] = np.where(counts > 4, 255, 0)
    return out


def projection_variance(binary: np.ndarray) -> float:
    """Variance of the per-row black pixel counts."""
    if binary.size == 0:
        return 0.0
    profile = (binary < 128).sum(axis=1)
    return float(np.var(profile))


def estimate_skew_angle(canvas: Canvas, max_angle: float = TILT_RANGE,
                        step: float = TILT_STEP) -> float:
    """
    Find the rotation (degrees, counter-clockwise) that makes text rows horizontal.

    Each trial rotation keeps the canvas size so profiles are comparable.
    Ties go to the smaller rotation.
    """
    img = canvas.to_image()
    count = int(round(max_angle / step))
    angles = sorted((i * step for i in range(-count, count + 1)), key=abs)

    best_angle = 0.0
    best_variance = projection_variance(canvas.pixels)
    for angle in angles:
        if angle == 0:
            continue
        trial = img.rotate(angle, resample=Image.Resampling.NEAREST, expand=False, fillcolor=255)
        variance = projection_variance(np.asarray(trial))
        if variance > best_variance:
            best_variance = variance
            best_angle = angle
    return best_angle


def rotate(canvas: Canvas, angle: float) -> Canvas:
    """Rotate about the center onto a white-padded canvas large enough to hold it."""
    rotated = canvas.to_image().rotate(
        angle, resample=Image.Resampling.NEAREST, expand=True, fillcolor=255
    )
    return Canvas.from_image(rotated)


def correct_tilt(canvas: Canvas, max_angle: float = TILT_RANGE, step: float = TILT_STEP,
                 min_angle: float = MIN_TILT) -> Canvas:
    angle = estimate_skew_angle(canvas, max_angle=max_angle, step=step)
    if abs(angle) < min_angle:
        return canvas
    logger.debug("Deskewing by %.1f degrees", angle)
    return rotate(canvas, angle)


def preprocess(source: ImageSource, options: Optional[PreprocessOptions] = None,
               pdf_page: int = 1) -> Canvas:
    """
    Normalize an input image into a binarized canvas ready for recognition.

    Args:
        source: Image bytes, path, Pillow image, numpy array, Canvas or PDF
        options: Resize / denoise / deskew switches
        pdf_page: Page to render when the input is a PDF

    Returns:
        Binarized grayscale Canvas

    Raises:
        DecodeError: if the input cannot be rendered to pixels
    """
    options = options or PreprocessOptions()
    img = load_image(source, pdf_page=pdf_page, max_dimension=options.max_dimension)
    img = limit_dimensions(img, options.max_dimension)

    gray = to_grayscale(img)
    threshold = otsu_threshold(intensity_histogram(gray))
    logger.debug("Otsu threshold %d for %dx%d image", threshold, img.width, img.height)
    pixels = binarize(gray, threshold)

    if options.enable_noise_reduction:
        pixels = remove_noise(pixels)

    canvas = Canvas(pixels)
    if options.enable_tilt_correction:
        canvas = correct_tilt(canvas)
    return canvas
