from __future__ import annotations

import re
from typing import Literal

from . import config
from .logging_utils import _scraper_event
from .utils import log_line

Entrypoint = Literal["ui", "cli", "replay", "tests"]

# Sample taken from the portal; a case pattern that rejects it is a typo.
SAMPLE_CASE_ID = "3AN-25-08095CR"


def _raise_config_error(message: str, *, entrypoint: Entrypoint, error: str) -> None:
    _scraper_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint})")
    raise ValueError(message)


def _clamp(field_name: str, minimum: int, *, entrypoint: Entrypoint) -> None:
    value = getattr(config, field_name)
    if value >= minimum:
        return
    _scraper_event(
        "state",
        phase="config",
        context="runtime_validation",
        kind="config_adjustment",
        field=field_name,
        value=value,
        adjusted=minimum,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {field_name} < {minimum}; clamping to {minimum}.")
    setattr(config, field_name, minimum)


def validate_runtime_config(entrypoint: Entrypoint) -> None:
    """Validate runtime configuration for the given entrypoint.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    Soft knobs (the concurrency ceiling) are clamped and logged instead.
    """

    _clamp("MAX_CONCURRENT_JOBS", 1, entrypoint=entrypoint)

    if config.MIN_FREE_MB < 0:
        _raise_config_error(
            "MIN_FREE_MB must be non-negative.",
            entrypoint=entrypoint,
            error="min_free_mb_invalid",
        )

    timeout_fields = [
        ("JOB_TIMEOUT_SECONDS", config.JOB_TIMEOUT_SECONDS),
        ("UNRECOGNIZED_PAGE_BUDGET_SECONDS", config.UNRECOGNIZED_PAGE_BUDGET_SECONDS),
        ("UNRECOGNIZED_POLL_SECONDS", config.UNRECOGNIZED_POLL_SECONDS),
        ("PLAYWRIGHT_NAV_TIMEOUT_SECONDS", config.PLAYWRIGHT_NAV_TIMEOUT_SECONDS),
        ("PLAYWRIGHT_CLICK_TIMEOUT_MS", config.PLAYWRIGHT_CLICK_TIMEOUT_MS),
    ]
    for field_name, value in timeout_fields:
        if value <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
            )

    if config.UNRECOGNIZED_PAGE_BUDGET_SECONDS >= config.JOB_TIMEOUT_SECONDS:
        log_line(
            "[CONFIG] UNRECOGNIZED_PAGE_BUDGET_SECONDS >= JOB_TIMEOUT_SECONDS; "
            "stalled pages will surface as job timeouts."
        )

    if config.STAGGER_DELAY_SECONDS < 0:
        _raise_config_error(
            "STAGGER_DELAY_SECONDS must be non-negative.",
            entrypoint=entrypoint,
            error="invalid_stagger",
        )

    if not isinstance(config.CASE_ID_PATTERN, re.Pattern) or not config.CASE_ID_PATTERN.fullmatch(
        SAMPLE_CASE_ID
    ):
        _raise_config_error(
            f"CASE_ID_PATTERN does not match a sample case number ({SAMPLE_CASE_ID}).",
            entrypoint=entrypoint,
            error="invalid_case_pattern",
        )

    if entrypoint != "replay" and not config.COURT_URL.startswith(("http://", "https://")):
        _raise_config_error(
            "COURT_URL must be an http(s) URL.",
            entrypoint=entrypoint,
            error="invalid_court_url",
        )


__all__ = ["validate_runtime_config", "Entrypoint"]
