"""
Package-wide logger setup.
"""

import logging
import sys
from typing import Optional

_logger = logging.getLogger("receipt_recognition")
if not _logger.handlers:
    _logger.setLevel(logging.INFO)
    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(
        "[%(asctime)s] [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)
    _logger.addHandler(handler)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if name:
        return _logger.getChild(name)
    return _logger


def set_verbose(verbose: bool):
    """Switch the package logger between INFO and DEBUG."""
    _logger.setLevel(logging.DEBUG if verbose else logging.INFO)
