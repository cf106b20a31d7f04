"""
PDF page rendering for receipts delivered as PDF files.
"""

import io
from pathlib import Path
from typing import Dict, List, Optional, Union

from PIL import Image

from .errors import DecodeError
from .logger import get_logger

logger = get_logger("pdf")

PdfSource = Union[bytes, bytearray, str, Path]


def is_pdf_bytes(data: bytes) -> bool:
    """Check for the PDF magic header."""
    return data[:1024].lstrip().startswith(b"%PDF")


def _open_document(source: PdfSource):
    import fitz  # pymupdf

    try:
        if isinstance(source, (bytes, bytearray)):
            return fitz.open(stream=bytes(source), filetype="pdf")
        return fitz.open(Path(source).as_posix())
    except Exception as e:
        raise DecodeError(f"Could not open PDF: {e}") from e


def limit_dimensions(img: Image.Image, max_dimension: int) -> Image.Image:
    """Shrink an image so its longer side is at most max_dimension."""
    width, height = img.size
    max_side = max(width, height)
    if max_side <= max_dimension:
        return img
    scale = max_dimension / max_side
    new_size = (max(1, int(round(width * scale))), max(1, int(round(height * scale))))
    return img.resize(new_size, Image.Resampling.LANCZOS)


def render_pdf_page(source: PdfSource, page: int = 1, scale: float = 1.5,
                    max_dimension: int = 1800) -> Image.Image:
    """
    Render one PDF page to an RGB image.

    Args:
        source: PDF bytes or a path to a PDF file
        page: 1-based page number; clamped to the document's page count
        scale: Render zoom factor (1.0 = 72 DPI)
        max_dimension: Longest side of the returned image

    Returns:
        Rendered page as a Pillow image
    """
    import fitz

    doc = _open_document(source)
    try:
        if doc.page_count == 0:
            raise DecodeError("PDF has no pages")
        target = min(max(1, page), doc.page_count)
        try:
            pix = doc[target - 1].get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
            img = Image.open(io.BytesIO(pix.tobytes("png")))
            img.load()
        except DecodeError:
            raise
        except Exception as e:
            raise DecodeError(f"Could not render PDF page {target}: {e}") from e
    finally:
        doc.close()

    logger.debug("Rendered PDF page %d at %dx%d", target, img.width, img.height)
    return limit_dimensions(img.convert("RGB"), max_dimension)


def render_pdf_pages(source: PdfSource, pages: List[int], scale: float = 1.5,
                     max_dimension: int = 1800) -> List[Image.Image]:
    """Render several pages, skipping the ones that fail."""
    if isinstance(source, (str, Path)):
        source = Path(source).read_bytes()
    results = []
    for page_num in pages:
        try:
            results.append(render_pdf_page(source, page_num, scale=scale, max_dimension=max_dimension))
        except DecodeError as e:
            logger.warning("Skipping PDF page %d: %s", page_num, e)
    return results


def get_pdf_info(source: PdfSource) -> Dict[str, Optional[object]]:
    """Page count and document metadata."""
    doc = _open_document(source)
    try:
        meta = doc.metadata or {}
        return {
            "num_pages": doc.page_count,
            "title": meta.get("title") or None,
            "author": meta.get("author") or None,
            "subject": meta.get("subject") or None,
            "creation_date": meta.get("creationDate") or None,
        }
    finally:
        doc.close()
