from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

# MM/DD/YYYY (or MM/DD/YY) optionally followed by HH:MM AM|PM.
US_DATETIME_RE = re.compile(
    r"\b(\d{1,2}/\d{1,2}/\d{2,4})\s+(\d{1,2}:\d{2})\s*(AM|PM)\b", re.IGNORECASE
)
US_DATE_RE = re.compile(r"\b(\d{1,2}/\d{1,2}/\d{2,4})\b")
LONG_DATE_RE = re.compile(
    r"\b((?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?\s+\d{1,2},?\s+\d{4})\b",
    re.IGNORECASE,
)
ISO_DATE_RE = re.compile(r"(?<!\d)(\d{4}-\d{2}-\d{2})(?!\d)")

_MONTHS = {
    name: index
    for index, name in enumerate(
        (
            "january",
            "february",
            "march",
            "april",
            "may",
            "june",
            "july",
            "august",
            "september",
            "october",
            "november",
            "december",
        ),
        start=1,
    )
}


def expand_year(year: int) -> int:
    """Map two-digit years onto 1950-2049; four-digit years pass through."""

    if year < 100:
        return year + (2000 if year < 50 else 1900)
    return year


def _build(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> Optional[datetime]:
    # datetime() rejects impossible dates such as 02/30, which is our validation.
    try:
        return datetime(year, month, day, hour, minute)
    except ValueError:
        return None


def parse_us_date(value: str) -> Optional[datetime]:
    """Parse ``MM/DD/YYYY`` or ``MM/DD/YY``; return ``None`` when invalid."""

    parts = value.strip().split("/")
    if len(parts) != 3 or not all(part.isdigit() for part in parts):
        return None
    month, day, year = (int(part) for part in parts)
    return _build(expand_year(year), month, day)


def parse_us_datetime(date_value: str, time_value: str, meridiem: str) -> Optional[datetime]:
    """Parse a ``MM/DD/YYYY`` date with an ``HH:MM`` 12-hour clock time."""

    date = parse_us_date(date_value)
    if date is None:
        return None

    hour_text, _, minute_text = time_value.partition(":")
    if not hour_text.isdigit() or not minute_text.isdigit():
        return None
    hour, minute = int(hour_text), int(minute_text)
    if not 1 <= hour <= 12:
        return None

    marker = meridiem.upper()
    if marker == "PM" and hour != 12:
        hour += 12
    elif marker == "AM" and hour == 12:
        hour = 0

    return _build(date.year, date.month, date.day, hour, minute)


def parse_long_date(value: str) -> Optional[datetime]:
    """Parse ``Month DD, YYYY`` (full or abbreviated month names)."""

    match = re.fullmatch(r"([A-Za-z]+)\.?\s+(\d{1,2}),?\s+(\d{4})", value.strip())
    if not match:
        return None
    word = match.group(1).lower()
    month = _MONTHS.get(word)
    if month is None:
        candidates = [index for name, index in _MONTHS.items() if name.startswith(word)]
        # "Sept" and three-letter forms are accepted; anything else is noise.
        if len(word) < 3 or len(candidates) != 1:
            return None
        month = candidates[0]
    return _build(int(match.group(3)), month, int(match.group(2)))


def parse_iso_date(value: str) -> Optional[datetime]:
    """Parse ``YYYY-MM-DD``."""

    match = re.fullmatch(r"(\d{4})-(\d{2})-(\d{2})", value.strip())
    if not match:
        return None
    return _build(int(match.group(1)), int(match.group(2)), int(match.group(3)))


def parse_cell_datetime(text: str) -> Optional[datetime]:
    """Parse the first date (optionally with time) in a table cell.

    Formats are tried in a fixed order and the first format whose pattern
    appears in the cell decides the outcome, even when that candidate turns
    out to be invalid.
    """

    match = US_DATETIME_RE.search(text)
    if match:
        return parse_us_datetime(match.group(1), match.group(2), match.group(3))

    match = US_DATE_RE.search(text)
    if match:
        return parse_us_date(match.group(1))

    match = LONG_DATE_RE.search(text)
    if match:
        return parse_long_date(match.group(1))

    match = ISO_DATE_RE.search(text)
    if match:
        return parse_iso_date(match.group(1))

    return None


def find_text_dates(text: str) -> list[datetime]:
    """Return every valid date found anywhere in free ``text``."""

    found: list[datetime] = []
    for pattern, parser in (
        (US_DATE_RE, parse_us_date),
        (LONG_DATE_RE, parse_long_date),
        (ISO_DATE_RE, parse_iso_date),
    ):
        for match in pattern.finditer(text):
            parsed = parser(match.group(1))
            if parsed is not None:
                found.append(parsed)
    return found


__all__ = [
    "expand_year",
    "parse_us_date",
    "parse_us_datetime",
    "parse_long_date",
    "parse_iso_date",
    "parse_cell_datetime",
    "find_text_dates",
]
