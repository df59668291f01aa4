"""Page classification and DOM locators for the court records portal.

Everything here is pure: functions take a parsed document and return values
or :mod:`navigation` actions without touching the browser.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from bs4 import BeautifulSoup, Tag

from . import config
from .navigation import Click

SEARCH_CASES_RE = re.compile(r"search\s*cases", re.IGNORECASE)
SEARCH_PAGE_HREF_RE = re.compile(r"search\.page", re.IGNORECASE)
BUTTON_SELECTOR = 'input[type="submit"], input[type="button"], button'


class PageCategory(str, Enum):
    WELCOME = "welcome"
    SEARCH_FORM = "searchForm"
    RESULTS_LISTING = "resultsListing"
    CASE_DETAIL = "caseDetail"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class DetailLink:
    case_id: str
    href: str

    @property
    def action(self) -> Click:
        return Click(
            selector=f"a[href={css_string(self.href)}]",
            description=f"case detail link {self.case_id}",
        )


def parse_document(html: str) -> BeautifulSoup:
    """Parse page HTML the way a browser would."""

    return BeautifulSoup(html or "", "html5lib")


def css_string(value: str) -> str:
    """Quote ``value`` for use inside a CSS attribute selector."""

    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def page_text(document: BeautifulSoup) -> str:
    root = document.body or document
    return root.get_text()


def search_root(document: BeautifulSoup) -> Tag:
    """Return the main content container, falling back to the body."""

    return document.select_one(config.RESULTS_ROOT_SELECTOR) or document.body or document


def classify(document: BeautifulSoup) -> PageCategory:
    """Map ``document`` onto the step of the search workflow it shows.

    Detection order matters: the search form also carries navigation links
    that look like the welcome page, and the case detail page repeats
    listing text, so the more specific checks run first. ``UNRECOGNIZED``
    usually means the page is mid-transition.
    """

    if document.select_one(config.CASE_INPUT_SELECTOR) is not None:
        return PageCategory.SEARCH_FORM

    text = page_text(document)
    if config.CASE_DETAIL_MARKER in text:
        return PageCategory.CASE_DETAIL
    if config.RESULTS_MARKER in text:
        return PageCategory.RESULTS_LISTING
    if find_search_cases_control(document) is not None:
        return PageCategory.WELCOME
    return PageCategory.UNRECOGNIZED


def _button_text(button: Tag) -> str:
    return str(button.get("value") or "") or button.get_text()


def find_search_cases_control(document: BeautifulSoup) -> Optional[Click]:
    """Return a click on the "Search Cases" entry point, if the page has one.

    Tries, in order: an anchor labelled "Search Cases", an anchor pointing at
    ``search.page``, then a button or submit input labelled "Search Cases".
    """

    anchors = document.find_all("a")
    for anchor in anchors:
        if SEARCH_CASES_RE.search(anchor.get_text()):
            return Click(
                selector="a",
                text_pattern=SEARCH_CASES_RE.pattern,
                description="'Search Cases' anchor",
            )

    for anchor in anchors:
        href = anchor.get("href") or ""
        if href and SEARCH_PAGE_HREF_RE.search(href):
            return Click(
                selector=f"a[href={css_string(href)}]",
                description="anchor with search.page href",
            )

    for button in document.select(BUTTON_SELECTOR):
        if not SEARCH_CASES_RE.search(_button_text(button)):
            continue
        if button.name == "input":
            return Click(
                selector=f"input[value={css_string(str(button.get('value')))}]",
                description="'Search Cases' input button",
            )
        return Click(
            selector="button",
            text_pattern=SEARCH_CASES_RE.pattern,
            description="'Search Cases' button",
        )

    return None


def find_submit_selector(document: BeautifulSoup) -> Optional[str]:
    """Return the first configured submit selector present on the search form."""

    for selector in config.SUBMIT_SELECTORS:
        if document.select_one(selector) is not None:
            return selector
    return None


def has_no_records_marker(document: BeautifulSoup) -> bool:
    return config.NO_RECORDS_MARKER in page_text(document)


def find_case_detail_links(document: BeautifulSoup) -> list[DetailLink]:
    """Return links to case detail pages on a results listing.

    An empty list means the listing has no cases, either because the site
    says "No Records Found" or because no link looks like a case number.
    """

    if has_no_records_marker(document):
        return []

    links: list[DetailLink] = []
    for anchor in search_root(document).find_all("a"):
        link_text = re.sub(r"\s+", "", anchor.get_text())
        if not config.CASE_ID_PATTERN.search(link_text):
            continue
        href = str(anchor.get("href") or "")
        if not href or href.endswith("#"):
            continue
        if anchor.css.closest(config.RESULT_CONTAINER_SELECTOR) is None:
            continue
        links.append(DetailLink(case_id=link_text, href=href))
    return links


def normalize_case_id(value: str) -> str:
    return re.sub(r"\s+", "", value).upper()


def find_error_banner(document: BeautifulSoup) -> Optional[str]:
    """Return the text of an error/warning banner rendered by the site."""

    banner = document.select_one(config.ERROR_BANNER_SELECTOR)
    if banner is None:
        return None
    return banner.get_text(" ", strip=True) or "Unknown error from court site."


__all__ = [
    "PageCategory",
    "DetailLink",
    "parse_document",
    "classify",
    "find_search_cases_control",
    "find_submit_selector",
    "find_case_detail_links",
    "find_error_banner",
    "normalize_case_id",
]
