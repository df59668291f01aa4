"""Heuristic extraction of hearing dates and party names from case pages.

The detail page markup is not under our control and changes without
notice, so extraction is a cascade of progressively looser strategies.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional, Union

from bs4 import BeautifulSoup, Tag

from .date_utils import find_text_dates, parse_cell_datetime
from .errors import ExtractionFailure
from .pages import find_error_banner, search_root
from .states import ScrapeData
from .utils import log_line

HEADING_SELECTOR = "h1, h2, h3, h4, h5, h6, .sectionHeader, legend, th, caption"
HEADING_KEYWORDS_RE = re.compile(r"event|hearing|calendar|schedule", re.IGNORECASE)
MAX_SIBLING_DEPTH = 5

DEFENDANT_RE = re.compile(r"(.+?)\s*-\s*Defendant\s*", re.IGNORECASE)
PROSECUTION_RE = re.compile(r"(.+?)\s*-\s*Prosecution\s*", re.IGNORECASE)

AsOf = Union[date, datetime]
HearingStrategy = Callable[[BeautifulSoup, date], list[datetime]]


@dataclass(frozen=True)
class Parties:
    prosecutor: Optional[str] = None
    defendant: Optional[str] = None

    @property
    def complete(self) -> bool:
        return bool(self.prosecutor and self.defendant)


def _as_date(value: AsOf) -> date:
    return value.date() if isinstance(value, datetime) else value


def find_nearest_table(element: Tag) -> Optional[Tag]:
    """Walk forward from a heading to the closest table.

    Looks at up to ``MAX_SIBLING_DEPTH`` following siblings (or tables nested
    in them), then inside the parent container, then the table the heading
    itself sits in (``th``/``caption`` headings).
    """

    sibling = element.find_next_sibling()
    depth = 0
    while sibling is not None and depth < MAX_SIBLING_DEPTH:
        if sibling.name == "table":
            return sibling
        nested = sibling.find("table")
        if nested is not None:
            return nested
        sibling = sibling.find_next_sibling()
        depth += 1

    parent = element.parent
    if parent is not None:
        table = parent.find("table")
        if table is not None:
            return table

    return element.find_parent("table")


def dates_from_table(table: Tag, as_of: date) -> list[datetime]:
    """Return the dates on or after ``as_of`` found in ``table``'s cells."""

    found: list[datetime] = []
    for cell in table.select("td, th"):
        parsed = parse_cell_datetime(cell.get_text().strip())
        if parsed is not None and parsed.date() >= as_of:
            found.append(parsed)
    return found


def _heading_tables(document: BeautifulSoup, as_of: date) -> list[datetime]:
    found: list[datetime] = []
    for heading in document.select(HEADING_SELECTOR):
        if not HEADING_KEYWORDS_RE.search(heading.get_text()):
            continue
        table = find_nearest_table(heading)
        if table is not None:
            found.extend(dates_from_table(table, as_of))
    return found


def _all_tables(document: BeautifulSoup, as_of: date) -> list[datetime]:
    found: list[datetime] = []
    for table in search_root(document).find_all("table"):
        found.extend(dates_from_table(table, as_of))
    return found


def _free_text(document: BeautifulSoup, as_of: date) -> list[datetime]:
    text = search_root(document).get_text(" ")
    return [value for value in find_text_dates(text) if value.date() >= as_of]


# Ordered loosest-last; the first strategy returning anything wins.
HEARING_STRATEGIES: tuple[tuple[str, HearingStrategy], ...] = (
    ("heading_tables", _heading_tables),
    ("all_tables", _all_tables),
    ("free_text", _free_text),
)


def extract_next_hearing(
    document: BeautifulSoup, as_of: Optional[AsOf] = None
) -> Optional[datetime]:
    """Return the earliest hearing date/time on or after ``as_of``.

    ``as_of`` defaults to today; the comparison is by calendar day so a
    hearing earlier today still counts. Returns ``None`` when no strategy
    finds a usable date.
    """

    cutoff = _as_date(as_of if as_of is not None else datetime.now())
    for name, strategy in HEARING_STRATEGIES:
        candidates = strategy(document, cutoff)
        log_line(f"[EXTRACT] strategy={name} future_dates={len(candidates)}")
        if candidates:
            return min(candidates)
    log_line("[EXTRACT] No future court dates found on page.")
    return None


def _labelled_name(element: Tag, pattern: re.Pattern[str]) -> Optional[str]:
    """Return the name in ``element`` if it is the innermost element labelled by ``pattern``."""

    match = pattern.fullmatch(element.get_text().strip())
    if match is None:
        return None
    for child in element.find_all(True, recursive=False):
        if pattern.fullmatch(child.get_text().strip()):
            return None
    return match.group(1).strip()


def find_parties(document: BeautifulSoup) -> Parties:
    """Scan elements for "<name> - Defendant" / "<name> - Prosecution" text.

    Only the innermost labelled element counts, so a container whose text
    happens to end with a label does not swallow neighbouring rows.
    """

    prosecutor: Optional[str] = None
    defendant: Optional[str] = None

    for element in document.find_all(True):
        if element.name in {"script", "style"}:
            continue

        if defendant is None:
            defendant = _labelled_name(element, DEFENDANT_RE)
        if prosecutor is None:
            prosecutor = _labelled_name(element, PROSECUTION_RE)

        if prosecutor and defendant:
            break

    return Parties(prosecutor=prosecutor, defendant=defendant)


def extract_parties(document: BeautifulSoup) -> Parties:
    """Like :func:`find_parties` but both parties are required."""

    parties = find_parties(document)
    if not parties.complete:
        raise ExtractionFailure(
            "Failed to extract case parties: "
            f"prosecutor={parties.prosecutor!r}, defendant={parties.defendant!r}"
        )
    return parties


def extract_case_data(document: BeautifulSoup, as_of: Optional[AsOf] = None) -> ScrapeData:
    """Extract everything a succeeded scrape reports from a case detail page."""

    banner = find_error_banner(document)
    if banner is not None:
        raise ExtractionFailure(f"Error element found: {banner}")

    parties = extract_parties(document)
    next_hearing = extract_next_hearing(document, as_of)
    log_line(
        f"[EXTRACT] next_court_datetime={next_hearing} "
        f"prosecutor={parties.prosecutor!r} defendant={parties.defendant!r}"
    )
    return ScrapeData(
        next_court_datetime=next_hearing,
        prosecutor=parties.prosecutor,
        defendant=parties.defendant,
    )


__all__ = [
    "Parties",
    "HEARING_STRATEGIES",
    "extract_next_hearing",
    "find_parties",
    "extract_parties",
    "extract_case_data",
    "find_nearest_table",
]
