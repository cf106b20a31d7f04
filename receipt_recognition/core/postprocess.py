"""
Text normalization and date/amount extraction from recognized receipt text.

Everything here is a pure function of its inputs; the reference date used for
year-less dates and for ranking candidates is passed in as `today`.
"""

import datetime as dt
import math
import re
import unicodedata
from typing import Iterable, List, Optional, Sequence

from .logger import get_logger
from .models import AmountCandidate, DateCandidate, RoiText, RoiType
from .utils import (AMOUNT_PATTERNS, DATE_PATTERNS, ERA_START_YEARS, KANJI_DIGITS,
                    KANJI_LARGE_UNITS, KANJI_UNITS, TENDER_MARKERS, compile_table,
                    is_valid_amount, normalize_amount)

logger = get_logger("postprocess")

FIELD_BONUS = 0.8

_AMOUNT_TABLE = compile_table(AMOUNT_PATTERNS, flags=re.IGNORECASE)
_DATE_TABLE = compile_table(DATE_PATTERNS)

# Recognition confusions, applied until nothing changes
_CONFUSIONS = [
    (re.compile(r"(?<=\d)[Oo]+|[Oo]+(?=\d)"), lambda m: "0" * len(m.group(0))),
    (re.compile(r"(?<![A-Za-z])[lI|](?=\d)"), lambda m: "1"),
]
_REPEATED_SEPARATORS = [
    (re.compile(r",{2,}"), ","),
    (re.compile(r"\.{2,}"), "."),
]
_HORIZONTAL_SPACE = re.compile(r"[^\S\n]+")


def _fix_confusions(text: str) -> str:
    while True:
        fixed = text
        for pattern, repl in _CONFUSIONS:
            fixed = pattern.sub(repl, fixed)
        if fixed == text:
            return fixed
        text = fixed


def normalize_text(text: str) -> str:
    """
    Normalize recognized text.

    Full-width characters become half-width (NFKC), letters misread next to
    digits are corrected, repeated separators and whitespace collapse, and
    blank lines are dropped. normalize_text(normalize_text(s)) == normalize_text(s).
    """
    if not text:
        return ""
    normalized = unicodedata.normalize("NFKC", text)
    normalized = _fix_confusions(normalized)
    for pattern, repl in _REPEATED_SEPARATORS:
        normalized = pattern.sub(repl, normalized)
    lines = (_HORIZONTAL_SPACE.sub(" ", line).strip() for line in normalized.splitlines())
    return "\n".join(line for line in lines if line)


def is_leap_year(year: int) -> bool:
    return (year % 4 == 0 and year % 100 != 0) or year % 400 == 0


_DAYS_IN_MONTH = [31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31]


def is_valid_date(year: int, month: int, day: int) -> bool:
    """Year 1900-2100, month 1-12, day within the month (leap years included)."""
    if year < 1900 or year > 2100:
        return False
    if month < 1 or month > 12:
        return False
    days = _DAYS_IN_MONTH[month - 1]
    if month == 2 and is_leap_year(year):
        days = 29
    return 1 <= day <= days


def format_date(year: int, month: int, day: int) -> str:
    return f"{year:04d}-{month:02d}-{day:02d}"


def parse_kanji_number(kanji: str) -> int:
    """
    Convert kanji numerals to an integer.

    Handles positional digits (二〇二四 -> 2024) and place values
    (二十四 -> 24, 千二百 -> 1200, 三万五千 -> 35000).
    """
    if not kanji:
        raise ValueError("empty kanji number")
    if all(ch in KANJI_DIGITS for ch in kanji):
        value = 0
        for ch in kanji:
            value = value * 10 + KANJI_DIGITS[ch]
        return value

    total = 0
    section = 0
    current = 0
    for ch in kanji:
        if ch in KANJI_DIGITS:
            current = KANJI_DIGITS[ch]
        elif ch in KANJI_UNITS:
            section += (current or 1) * KANJI_UNITS[ch]
            current = 0
        elif ch in KANJI_LARGE_UNITS:
            total += ((section + current) or 1) * KANJI_LARGE_UNITS[ch]
            section = 0
            current = 0
        else:
            raise ValueError(f"not a kanji numeral: {ch!r}")
    return total + section + current


def _era_year(era: str, year_text: str) -> int:
    offset = 1 if year_text == "元" else int(year_text)
    if offset < 1:
        raise ValueError("era year must be positive")
    return ERA_START_YEARS[era] + offset - 1


def _date_from_match(name: str, groups: Sequence[Optional[str]], today: dt.date):
    """(year, month, day) for a match of the named pattern."""
    if name in ("iso", "japanese"):
        return int(groups[0]), int(groups[1]), int(groups[2])
    if name == "era":
        return _era_year(groups[0], groups[1]), int(groups[2]), int(groups[3])
    if name == "kanji":
        era, year_text, month_text, day_text = groups
        if year_text is None:
            year = today.year
        elif era:
            year = _era_year(era, "元" if year_text == "元" else str(parse_kanji_number(year_text)))
        elif year_text == "元":
            raise ValueError("元年 without an era")
        else:
            year = parse_kanji_number(year_text)
        return year, parse_kanji_number(month_text), parse_kanji_number(day_text)
    # month/day only: current year
    return today.year, int(groups[0]), int(groups[1])


def date_candidates(text: str, today: Optional[dt.date] = None) -> List[DateCandidate]:
    """
    All valid dates in the text, highest-priority pattern first.

    The candidate score is the priority of the pattern that produced it.
    """
    today = today or dt.date.today()
    normalized = normalize_text(text)
    found = []
    seen = set()
    for name, pattern, priority in _DATE_TABLE:
        for m in pattern.finditer(normalized):
            try:
                year, month, day = _date_from_match(name, m.groups(), today)
            except (ValueError, KeyError):
                continue
            if not is_valid_date(year, month, day):
                continue
            value = format_date(year, month, day)
            if value in seen:
                continue
            seen.add(value)
            found.append(DateCandidate(value=value, score=float(priority)))
    return found


def extract_date(text: str, today: Optional[dt.date] = None) -> Optional[str]:
    """First valid date found by the highest-priority matching pattern."""
    if not text:
        return None
    candidates = date_candidates(text, today)
    return candidates[0].value if candidates else None


def _tender_lines(normalized: str) -> List[tuple]:
    """(start, end) offsets of lines that carry cash tendered or change."""
    spans = []
    start = 0
    for line in normalized.split("\n"):
        end = start + len(line)
        lowered = line.lower()
        if any(marker in lowered for marker in TENDER_MARKERS):
            spans.append((start, end))
        start = end + 1
    return spans


def amount_candidates(text: str) -> List[AmountCandidate]:
    """
    Every plausible amount in the text with its pattern priority and span.

    Amounts on lines for cash tendered or change are skipped.
    """
    normalized = normalize_text(text)
    skipped = _tender_lines(normalized)
    found = []
    for name, pattern, priority in _AMOUNT_TABLE:
        for m in pattern.finditer(normalized):
            pos = m.start(1)
            if any(start <= pos <= end for start, end in skipped):
                continue
            value = normalize_amount(m.group(1))
            if not is_valid_amount(value):
                continue
            found.append(AmountCandidate(value=value, priority=priority, span=m.span(1)))
    return found


def extract_amount(text: str) -> Optional[int]:
    """
    Best amount in the text.

    The highest-priority pattern wins, so amounts labeled as the total beat
    bare currency figures; among its matches the largest value is taken.
    """
    if not text:
        return None
    candidates = amount_candidates(text)
    if not candidates:
        return None
    best = max(candidates, key=lambda c: (c.priority, c.value))
    return best.value


def score_date(value: str, today: dt.date) -> float:
    """Closeness of a YYYY-MM-DD date to today (year, month and day separately)."""
    year, month, day = (int(part) for part in value.split("-"))
    score = max(0, 10 - abs(year - today.year))
    score += max(0, 5 - abs(month - today.month))
    score += max(0, 3 - abs(day - today.day))
    return float(score)


def select_best_date(candidates: Iterable[str], today: Optional[dt.date] = None) -> Optional[str]:
    """Candidate closest to today; the first one wins ties."""
    today = today or dt.date.today()
    best = None
    best_score = -1.0
    for candidate in candidates:
        try:
            score = score_date(candidate, today)
        except ValueError:
            logger.debug("Skipping malformed date candidate %r", candidate)
            continue
        if score > best_score:
            best_score = score
            best = candidate
    return best


def select_best_amount(candidates: Iterable[int]) -> Optional[int]:
    """Median of the valid candidates (mean of the middle two, rounded half up)."""
    valid = sorted(v for v in candidates if is_valid_amount(v))
    if not valid:
        return None
    mid = len(valid) // 2
    if len(valid) % 2:
        return valid[mid]
    return int(math.floor((valid[mid - 1] + valid[mid]) / 2.0 + 0.5))


def compute_confidence(contributing: Sequence[float], has_date: bool, has_amount: bool) -> float:
    """
    Average of the contributing region confidences plus a bonus input per field.

    Clamped to [0, 1]; 0 when nothing contributed.
    """
    total = sum(contributing)
    count = len(contributing)
    for present in (has_date, has_amount):
        if present:
            total += FIELD_BONUS
            count += 1
    if count == 0:
        return 0.0
    return min(1.0, max(0.0, total / count))


def postprocess(raw_text: str, roi_results: Optional[Sequence[RoiText]] = None,
                today: Optional[dt.date] = None):
    """
    Merge the whole-image text and the region texts into final fields.

    Args:
        raw_text: Text from the whole-image pass
        roi_results: Texts read from individual regions
        today: Reference date (defaults to the current date)

    Returns:
        Dict with keys: rawText, date, amount, confidence
    """
    today = today or dt.date.today()
    normalized = normalize_text(raw_text)

    dates = []
    amounts = []
    main_date = extract_date(normalized, today)
    if main_date:
        dates.append(main_date)
    main_amount = extract_amount(normalized)
    if main_amount is not None:
        amounts.append(main_amount)

    contributing = []
    for roi in roi_results or []:
        roi_text = normalize_text(roi.text)
        if roi.type == RoiType.DATE:
            value = extract_date(roi_text, today)
            if value:
                dates.append(value)
                contributing.append(roi.confidence)
        elif roi.type == RoiType.AMOUNT:
            amount = extract_amount(roi_text)
            if amount is not None:
                amounts.append(amount)
                contributing.append(roi.confidence)

    date = select_best_date(dates, today)
    amount = select_best_amount(amounts)
    confidence = compute_confidence(contributing, date is not None, amount is not None)
    logger.debug("Date candidates %s -> %s; amount candidates %s -> %s", dates, date, amounts, amount)

    return {
        "rawText": normalized,
        "date": date,
        "amount": amount,
        "confidence": confidence,
    }
