from __future__ import annotations

from .error_codes import ErrorCode


class ScrapeError(Exception):
    """Failure inside a navigation context, tagged with an :class:`ErrorCode`."""

    error_code = ErrorCode.INTERNAL

    def __init__(self, message: str, *, error_code: str | None = None) -> None:
        super().__init__(message)
        if error_code is not None:
            self.error_code = error_code

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class NavigationFailure(ScrapeError):
    """The context could not be opened, navigated, or reached with a command."""

    error_code = ErrorCode.NAVIGATION_FAILURE


class UnrecognizedPageTimeout(ScrapeError):
    error_code = ErrorCode.UNRECOGNIZED_PAGE_TIMEOUT


class AmbiguousOrMissingLink(ScrapeError):
    error_code = ErrorCode.AMBIGUOUS_OR_MISSING_LINK


class ExtractionFailure(ScrapeError):
    """Required case fields are missing or the site rendered an error banner."""

    error_code = ErrorCode.EXTRACTION_FAILURE


def error_code_for(exc: BaseException) -> str:
    """Return the taxonomy code for ``exc``; unknown exceptions are internal."""

    if isinstance(exc, ScrapeError):
        return exc.error_code
    return ErrorCode.INTERNAL


__all__ = [
    "ScrapeError",
    "NavigationFailure",
    "UnrecognizedPageTimeout",
    "AmbiguousOrMissingLink",
    "ExtractionFailure",
    "error_code_for",
]
