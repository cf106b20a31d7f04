#!/usr/bin/env python3
"""
Main CLI entrypoint for receipt recognition.
"""

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path

from receipt_recognition.core.config import EngineSettings, PipelineOptions
from receipt_recognition.core.engine import EngineManager
from receipt_recognition.core.errors import ReceiptOcrError
from receipt_recognition.core.logger import set_verbose
from receipt_recognition.core.pipeline import ReceiptRecognizer
from receipt_recognition.core.utils import IMAGE_EXTS, PDF_EXTS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Recognize the date and total amount of receipt images and PDFs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Recognize a photo with all defaults
  receipt-recognize receipt.jpg

  # Second page of a scanned PDF, JSON output
  receipt-recognize --pdf-page 2 --json scan.pdf

  # Flat scans: skip deskew and boundary detection
  receipt-recognize --no-tilt --no-boundary scans/*.png

  # Photo taken at an angle
  receipt-recognize --perspective photo.jpg
        """
    )
    parser.add_argument("files", nargs="+",
                        help="Receipt images or PDFs")
    parser.add_argument("--no-tilt", action="store_true",
                        help="Disable tilt correction")
    parser.add_argument("--no-denoise", action="store_true",
                        help="Disable noise reduction")
    parser.add_argument("--no-boundary", action="store_true",
                        help="Disable receipt boundary detection (use the full image)")
    parser.add_argument("--perspective", action="store_true",
                        help="Straighten a photographed receipt before reading it")
    parser.add_argument("--enhance", action="store_true",
                        help="Binarize the page before reading it (faded or low-contrast prints)")
    parser.add_argument("--no-two-pass", action="store_true",
                        help="Skip the second, region-focused recognition pass")
    parser.add_argument("--max-rois", type=int,
                        help="Regions read in the second pass (default: 5, or RECEIPT_OCR_MAX_ROIS env var)")
    parser.add_argument("--max-dimension", type=int,
                        help="Longest image side after resizing (default: 1800, or RECEIPT_OCR_MAX_DIMENSION env var)")
    parser.add_argument("--lang",
                        help="Tesseract languages (default: jpn+eng, or RECEIPT_OCR_LANG env var)")
    parser.add_argument("--pdf-page", type=int, default=1,
                        help="Page to read from PDF inputs (default: 1)")
    parser.add_argument("--json", action="store_true",
                        help="Print one JSON object per file instead of a summary")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Show debug logging")
    return parser


def build_options(args) -> PipelineOptions:
    return PipelineOptions.from_env(
        enable_tilt_correction=False if args.no_tilt else None,
        enable_noise_reduction=False if args.no_denoise else None,
        enable_boundary_detection=False if args.no_boundary else None,
        enable_perspective_correction=True if args.perspective else None,
        enable_enhancement=True if args.enhance else None,
        enable_two_pass=False if args.no_two_pass else None,
        max_rois=args.max_rois,
        max_dimension=args.max_dimension,
        pdf_page=args.pdf_page,
    )


def build_manager(args) -> EngineManager:
    settings = EngineSettings.from_env()
    if args.lang:
        settings = replace(settings, lang=args.lang)
    return EngineManager(settings)


def main(argv=None):
    """Main CLI entrypoint."""
    args = build_parser().parse_args(argv)
    set_verbose(args.verbose)

    if args.max_rois is not None and args.max_rois < 0:
        print("[ERROR] --max-rois must be >= 0")
        return 1
    if args.max_dimension is not None and args.max_dimension < 1:
        print("[ERROR] --max-dimension must be >= 1")
        return 1

    options = build_options(args)
    manager = build_manager(args)
    recognizer = ReceiptRecognizer(options, manager)
    if not args.json:
        print(f"[INFO] Tesseract languages: {manager.settings.lang}")

    failed = 0
    try:
        for name in args.files:
            path = Path(name)
            if not path.is_file():
                print(f"[ERROR] Not a file: {path}")
                failed += 1
                continue
            if path.suffix.lower() not in IMAGE_EXTS | PDF_EXTS:
                print(f"[WARN] Unrecognized extension {path.suffix or '(none)'}, trying anyway: {path.name}")

            on_progress = None
            if not args.json:
                print(f"[INFO] Processing {path.name}")

                def on_progress(percent, stage):
                    print(f"  [INFO] {percent:3d}% {stage}")

            try:
                result = recognizer.recognize(path, on_progress=on_progress)
            except ReceiptOcrError as e:
                failed += 1
                if args.json:
                    print(json.dumps({"file": str(path), "error": str(e)}, ensure_ascii=False))
                else:
                    print(f"[ERROR] Failed {path.name}: {e}")
                continue

            if args.json:
                print(json.dumps({"file": str(path), **result.to_dict()}, ensure_ascii=False))
            else:
                amount = f"{result.amount:,}" if result.amount is not None else "(none)"
                print(f"[OK] {path.name}: date={result.date or '(none)'} | amount={amount} | "
                      f"confidence={result.confidence:.2f} | {result.processing_time_ms} ms")
    finally:
        manager.terminate()

    if failed:
        if not args.json:
            print(f"[WARN] {failed} of {len(args.files)} file(s) failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
