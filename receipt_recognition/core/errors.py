"""
Error types raised by the recognition pipeline.
"""


class ReceiptOcrError(Exception):
    """Base class for all pipeline failures."""


class DecodeError(ReceiptOcrError):
    """The input image or PDF could not be rendered to pixels."""


class EngineInitError(ReceiptOcrError):
    """The text-recognition engine failed to load."""


class RecognitionError(ReceiptOcrError):
    """A single recognition call failed."""
