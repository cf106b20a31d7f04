"""
Utility functions and pattern tables for receipt recognition.

The tables below are plain data so that locales can be extended without
touching the extraction code.
"""

import math
import re
from typing import Optional

# File type constants
IMAGE_EXTS = {".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp", ".webp", ".gif"}
PDF_EXTS = {".pdf"}

# Upper bound (exclusive) for a plausible receipt total
MAX_AMOUNT = 10_000_000

# Tesseract page segmentation modes used by the pipeline
PSM_SINGLE_BLOCK = 6
PSM_SINGLE_LINE = 7

# Glyphs expected on a receipt; applied when the engine is configured
ENGINE_WHITELIST = (
    "0123456789./:-¥$,"
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
    + "".join(chr(c) for c in range(0x3041, 0x3094))  # hiragana
    + "".join(chr(c) for c in range(0x30A1, 0x30F7))  # katakana
    + "年月日時分秒合計小計税抜税込円令和平成昭和"
)

# Narrower whitelists for the region pass
ROI_WHITELISTS = {
    "amount": "0123456789,./:-¥$",
    "date": "0123456789年月日時分秒-/.RHS令和平成昭和元",
}

# Region expansion factor per region type
ROI_EXPANSION = {"amount": 2.0, "date": 1.5}

KEYWORD_CONFIDENCE = 0.7

AMOUNT_CUES = (
    "¥", "円", "合計", "小計", "税込", "税抜", "支払", "請求", "金額",
    "total", "subtotal", "amount", "sum", "due",
)

DATE_CUES = (
    "日付", "date", "発行", "購入", "取引", "transaction", "issued", "purchase",
    "年", "月", "日", "時", "分",
)

# Word-level patterns for region detection: (pattern, confidence)
ROI_AMOUNT_PATTERNS = [
    (r"[¥$\\]\s*\d", 0.8),                                  # ¥1,234
    (r"\d[\d,]*(?:\.\d{1,2})?円", 0.8),                     # 1,234円
    (r"(?:total|合計|小計|税込|税抜)\s*:?\s*\d", 0.8),       # TOTAL:1234
    (r"(?<!\d)\d{1,3}(?:,\d{3})+(?!\d)", 0.8),              # 1,234
    (r"(?<!\d)\d{3,12}(?!\d)", 0.8),                        # 1234
]

ROI_DATE_PATTERNS = [
    (r"(?:19|20)\d{2}[-/.]\d{1,2}[-/.]\d{1,2}", 0.9),        # 2024-07-24
    (r"(?<![A-Za-z])(?:[RHS]|令和|平成|昭和)\d{1,2}[./\-年]", 0.9),  # R6.07.24
    (r"\d{4}年", 0.9),                                       # 2024年
    (r"\d{1,2}月\d{1,2}日", 0.9),                            # 7月24日
    (r"(?<!\d)\d{1,2}[-/]\d{1,2}(?!\d)", 0.9),              # 07/24
]

# Number as printed on receipts: comma-grouped or a plain run, optional decimals
_NUM = r"(\d{1,3}(?:,\d{3})+|\d{1,12})(?:\.\d{1,2})?(?![\d,])"
_CURRENCY = r"(?:[¥$\\]|JPY|USD)"
_TOTAL_KEYWORDS = r"(?:総合計|合計|お会計|お買上計?|税込|(?<![a-z])(?:grand\s*total|total|amount\s*due))"
_AMOUNT_KEYWORDS = r"(?:小計|税抜|subtotal|amount|sum|due)"
_KEYWORD_TAIL = r"[\s:.\-]*" + _CURRENCY + r"?\s*" + _NUM

# Amount patterns on normalized text: (name, pattern, priority)
AMOUNT_PATTERNS = [
    ("total_keyword", _TOTAL_KEYWORDS + _KEYWORD_TAIL, 110),
    ("currency_prefix", _CURRENCY + r"\s*(?<![\d,.])" + _NUM, 100),
    ("currency_suffix", r"(?<![\d,.])" + _NUM + r"\s*円", 100),
    ("keyword", _AMOUNT_KEYWORDS + _KEYWORD_TAIL, 90),
    ("comma_grouped", r"(?<![\d,.])(\d{1,3}(?:,\d{3})+)(?:\.\d{1,2})?(?![\d,])", 70),
    ("digit_run", r"(?<![\d.,/\-:])(\d{3,12})(?![\d,]|[-/.:]\d|\s*[年月日])", 50),
]

# Lines carrying cash tendered or change given back; never the total
TENDER_MARKERS = ("預", "釣", "change", "cash", "tendered")

# Date patterns on normalized text: (name, pattern, priority)
DATE_PATTERNS = [
    ("iso", r"(?<!\d)(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})(?!\d)", 100),
    ("japanese", r"(?<!\d)(\d{4})\s*年\s*(\d{1,2})\s*月\s*(\d{1,2})(?!\d)\s*日?", 95),
    ("era", r"(?<![A-Za-z])(令和|平成|昭和|[RHS])\s*(\d{1,2}|元)\s*[./\-年]\s*(\d{1,2})\s*[./\-月]\s*(\d{1,2})(?!\d)", 90),
    ("kanji", r"(?:(令和|平成|昭和)?([〇一二三四五六七八九十百千]+|元)年)?([一二三四五六七八九十]+)月([一二三四五六七八九十]+)日", 80),
    ("japanese_month_day", r"(?<!\d)(\d{1,2})\s*月\s*(\d{1,2})\s*日", 70),
    ("month_day", r"(?<![\d./\-])(\d{1,2})[-/.](\d{1,2})(?![\d./\-])", 60),
]

# First Gregorian year of each Japanese era
ERA_START_YEARS = {
    "令和": 2019, "R": 2019,
    "平成": 1989, "H": 1989,
    "昭和": 1926, "S": 1926,
}

KANJI_DIGITS = {
    "〇": 0, "零": 0, "一": 1, "二": 2, "三": 3, "四": 4,
    "五": 5, "六": 6, "七": 7, "八": 8, "九": 9,
}
KANJI_UNITS = {"十": 10, "百": 100, "千": 1000}
KANJI_LARGE_UNITS = {"万": 10_000, "億": 100_000_000}


def compile_table(table, flags=0):
    """Compile the pattern column of a (name, pattern, priority) table."""
    return [(name, re.compile(pattern, flags), priority) for name, pattern, priority in table]


def normalize_amount(s: str) -> Optional[int]:
    """Normalize an amount string to an integer (decimals are floored)."""
    if not s:
        return None
    s = s.replace(",", "").replace(" ", "")
    try:
        value = float(s)
    except ValueError:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return int(math.floor(value))


def is_valid_amount(value: Optional[int]) -> bool:
    return value is not None and 0 < value < MAX_AMOUNT
