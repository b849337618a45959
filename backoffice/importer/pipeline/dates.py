"""
Travel-date normalization to ``DD-MON-YYYY`` (e.g. ``14-DEC-2025``).

Registration forms collected dates as free text, spreadsheet serials and
locale-dependent ``P1/P2/YYYY`` strings. Ambiguous slash dates fail instead of
guessing so they can be followed up by hand.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from dateutil import parser as dt

MONTHS = ("JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC")
MIN_YEAR = 1900
MAX_YEAR = 2100

# Spreadsheet serial 1 is 1900-01-01 but serial 60 is the phantom 1900-02-29,
# so real dates count from 1899-12-30.
SPREADSHEET_EPOCH = date(1899, 12, 30)

_NORMALIZED_RE = re.compile(r"^(\d{2})-(JAN|FEB|MAR|APR|MAY|JUN|JUL|AUG|SEP|OCT|NOV|DEC)-(\d{4})$", re.IGNORECASE)
_SERIAL_RE = re.compile(r"^\d+(\.\d+)?$")
_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_SLASH_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
# The free-form fallback only sees text that names a month or has two separated numbers.
_MONTH_NAME_RE = re.compile(r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\b", re.IGNORECASE)
_NUMBER_PAIR_RE = re.compile(r"\d+\s*[-/.,\s]\s*\d+")
_FALLBACK_DEFAULT = datetime(MIN_YEAR, 1, 1)


@dataclass(frozen=True)
class DateNormalization:
    """``normalized`` holds the original text when ``success`` is False."""

    success: bool
    normalized: str

    @classmethod
    def ok(cls, value: date) -> "DateNormalization":
        return cls(success=True, normalized=format_date(value))

    @classmethod
    def failed(cls, original: str) -> "DateNormalization":
        return cls(success=False, normalized=original)


def format_date(value: date) -> str:
    return f"{value.day:02d}-{MONTHS[value.month - 1]}-{value.year}"


def _in_range(year: int) -> bool:
    return MIN_YEAR <= year <= MAX_YEAR


def _looks_like_date(text: str) -> bool:
    if not any(char.isdigit() for char in text):
        return False
    return bool(_MONTH_NAME_RE.search(text) or _NUMBER_PAIR_RE.search(text))


def _calendar_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def from_spreadsheet_serial(serial: float) -> date | None:
    try:
        return SPREADSHEET_EPOCH + timedelta(days=int(serial))
    except OverflowError:
        return None


def _resolve_slash_date(part1: int, part2: int, year: int) -> date | None:
    """Month-first and day-first readings; fail when both are valid and disagree."""
    month_first = _calendar_date(year, part1, part2) if 1 <= part1 <= 12 else None
    day_first = _calendar_date(year, part2, part1) if 1 <= part2 <= 12 else None

    if month_first and day_first and month_first != day_first:
        return None
    return month_first or day_first


def normalize_date(value: Any) -> DateNormalization:
    """
    Normalize a raw date value.

    Empty input succeeds with an empty string. Native ``date``/``datetime``
    values (spreadsheet date cells) and numeric serials are converted directly.
    """

    if value is None:
        return DateNormalization(success=True, normalized="")
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        if not _in_range(value.year):
            return DateNormalization.failed(value.isoformat())
        return DateNormalization.ok(value)

    text = str(value).strip()
    if not text:
        return DateNormalization(success=True, normalized="")

    match = _NORMALIZED_RE.match(text)
    if match:
        day, year = int(match.group(1)), int(match.group(3))
        if 1 <= day <= 31 and _in_range(year):
            return DateNormalization(success=True, normalized=f"{day:02d}-{match.group(2).upper()}-{year}")

    if not isinstance(value, bool) and _SERIAL_RE.match(text):
        converted = from_spreadsheet_serial(float(text))
        if converted is not None and _in_range(converted.year):
            return DateNormalization.ok(converted)
        return DateNormalization.failed(text)

    match = _ISO_RE.match(text)
    if match:
        converted = _calendar_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        if converted is not None and _in_range(converted.year):
            return DateNormalization.ok(converted)
        return DateNormalization.failed(text)

    match = _SLASH_RE.match(text)
    if match:
        part1, part2, year = int(match.group(1)), int(match.group(2)), int(match.group(3))
        if not _in_range(year):
            return DateNormalization.failed(text)
        converted = _resolve_slash_date(part1, part2, year)
        if converted is None:
            return DateNormalization.failed(text)
        return DateNormalization.ok(converted)

    if not _looks_like_date(text):
        return DateNormalization.failed(text)
    try:
        parsed = dt.parse(text, default=_FALLBACK_DEFAULT)
    except (ValueError, OverflowError):
        return DateNormalization.failed(text)
    if not _in_range(parsed.year):
        return DateNormalization.failed(text)
    return DateNormalization.ok(parsed.date())
