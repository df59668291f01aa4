from __future__ import annotations

"""Centralised error code taxonomy for scrape failures.

These codes are persisted in the cases.last_scrape_error_code column and
included in structured logs so that we can explain why a scrape failed.
``noCaseFound`` is a terminal outcome rather than an error and has no code.
"""


class ErrorCode:
    NAVIGATION_FAILURE = "navigation_failure"
    UNRECOGNIZED_PAGE_TIMEOUT = "unrecognized_page_timeout"
    AMBIGUOUS_OR_MISSING_LINK = "ambiguous_or_missing_link"
    EXTRACTION_FAILURE = "extraction_failure"
    JOB_TIMEOUT = "job_timeout"
    INTERNAL = "internal_error"


__all__ = ["ErrorCode"]
