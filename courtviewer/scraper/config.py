"""Configuration constants for the court records scraper."""
from __future__ import annotations

import os
import re
from pathlib import Path

DATA_DIR: Path = Path(os.getenv("COURTVIEWER_DATA_DIR", "/app/data"))
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"
SNAPSHOT_DIR: Path = DATA_DIR / "snapshots"
EXPORTS_DIR: Path = DATA_DIR / "exports"
DB_PATH: Path = DATA_DIR / "courtviewer.db"
LOG_MAX_BYTES: int = int(os.getenv("COURTVIEWER_LOG_MAX_BYTES", str(5 * 1024 * 1024)))
LOG_BACKUP_COUNT: int = int(os.getenv("COURTVIEWER_LOG_BACKUP_COUNT", "3"))

# Entry page of the court records portal. The landing page links to the
# case search form; the search form posts to a results listing which links
# to the case detail page.
COURT_URL: str = os.getenv(
    "COURTVIEWER_COURT_URL",
    "https://records.courts.alaska.gov/eaccess/search.page",
)

# Selectors and text markers consumed by the page classifier and locators.
CASE_INPUT_SELECTOR: str = 'input[name="caseDscr"]'
SUBMIT_SELECTORS: tuple[str, ...] = (
    'input[name="submitLink"][value="Search"]',
    'div.formButtons input[type="submit"]',
)
ERROR_BANNER_SELECTOR: str = (
    ".feedback .feedbackPanelERROR, .feedbackPanelERROR, .feedbackPanelWARNING"
)
RESULTS_ROOT_SELECTOR: str = "#mainContent"
RESULT_CONTAINER_SELECTOR: str = "table, .searchResults, .results"
CASE_DETAIL_MARKER: str = "Case Type:"
RESULTS_MARKER: str = "Search Results"
NO_RECORDS_MARKER: str = "No Records Found"

# e.g. 3AN-25-08095CR, 3PA-24-00277CR, 3KO-25-00060CR
CASE_ID_PATTERN: re.Pattern[str] = re.compile(
    os.getenv("COURTVIEWER_CASE_ID_PATTERN", r"[0-9A-Z]{3}-\d{2}-\d{5}[A-Z]{2}"),
    re.IGNORECASE,
)

# Key of the session-storage slot holding the active scrape of a context.
SESSION_STATE_KEY: str = "courtviewer_active_case"


def _parse_timeout_seconds(env_var: str, default: float, *, minimum: float = 0.0) -> float:
    """Parse a duration in seconds from the environment with a lower bound."""

    try:
        value = float(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


# Orchestrator controls
MAX_CONCURRENT_JOBS: int = int(os.getenv("COURTVIEWER_MAX_CONCURRENT_JOBS", "3"))
JOB_TIMEOUT_SECONDS: float = _parse_timeout_seconds("COURTVIEWER_JOB_TIMEOUT_SECONDS", 60)
# Pause between successive admissions of a scrape-all sweep.
STAGGER_DELAY_SECONDS: float = _parse_timeout_seconds("COURTVIEWER_STAGGER_DELAY_SECONDS", 0.1)

# Step machine controls
UNRECOGNIZED_PAGE_BUDGET_SECONDS: float = _parse_timeout_seconds(
    "COURTVIEWER_UNRECOGNIZED_PAGE_BUDGET_SECONDS", 30
)
UNRECOGNIZED_POLL_SECONDS: float = _parse_timeout_seconds(
    "COURTVIEWER_UNRECOGNIZED_POLL_SECONDS", 0.5
)
UNRECOGNIZED_POLL_MAX_SECONDS: float = _parse_timeout_seconds(
    "COURTVIEWER_UNRECOGNIZED_POLL_MAX_SECONDS", 2.0
)

# Playwright timeouts
PLAYWRIGHT_NAV_TIMEOUT_SECONDS: float = _parse_timeout_seconds(
    "COURTVIEWER_NAV_TIMEOUT_SECONDS", 25, minimum=1
)
# Click-level timeout remains in milliseconds to match Playwright API expectations.
PLAYWRIGHT_CLICK_TIMEOUT_MS: int = int(os.getenv("PLAYWRIGHT_CLICK_TIMEOUT_MS", "5000"))
HEADLESS: bool = os.getenv("COURTVIEWER_HEADLESS", "1").strip().lower() not in {"0", "false"}

# Blocking wait applied by synchronous callers of the background service.
SERVICE_REQUEST_TIMEOUT_SECONDS: float = _parse_timeout_seconds(
    "COURTVIEWER_SERVICE_REQUEST_TIMEOUT_SECONDS", 10, minimum=1
)

SAVE_DETAIL_SNAPSHOTS: bool = os.getenv(
    "COURTVIEWER_SAVE_DETAIL_SNAPSHOTS", "1"
).strip().lower() not in {"0", "false"}

USER_AGENT: str = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

COMMON_HEADERS: dict[str, str] = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Connection": "keep-alive",
}

MIN_FREE_MB: int = int(os.getenv("MIN_FREE_MB", "50"))
HEALTHCHECK_PROBE_SITE: bool = os.getenv(
    "COURTVIEWER_HEALTHCHECK_PROBE_SITE", "0"
).strip().lower() not in {"0", "false"}
