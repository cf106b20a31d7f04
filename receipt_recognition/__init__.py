"""
Receipt Recognition

Local recognition of photographed or scanned receipts into a transaction
date, a total amount and a confidence score, using Tesseract.
"""

__version__ = "1.0.0"
__author__ = "Receipt Recognition Contributors"

from receipt_recognition.core.models import RecognitionResult
from receipt_recognition.core.pipeline import ReceiptRecognizer, recognize_receipt

__all__ = ["RecognitionResult", "ReceiptRecognizer", "recognize_receipt"]
