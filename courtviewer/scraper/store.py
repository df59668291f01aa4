"""SQLite case store.

Holds the tracked cases together with the outcome of their latest scrape.
Only the orchestrator records scrape outcomes; the web UI and CLI manage
the rest of each record.
"""
from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Iterable, Optional

from . import config
from .pages import normalize_case_id
from .states import ScrapeState, ScrapeStatus, _format_datetime
from .utils import now_iso

DB_PATH: Path = config.DB_PATH

EDITABLE_FIELDS = ("defendant_name", "prosecutor", "notes", "next_court_datetime")

# Sort keys accepted by list_cases: (column expression, descending by default).
# Empty values go last in either direction.
SORT_ORDERS: dict[str, tuple[str, bool]] = {
    "next_court": ("next_court_datetime", False),
    "case_id": ("case_id", False),
    "defendant": ("defendant_name COLLATE NOCASE", False),
    "updated": ("updated_at", True),
}


def get_connection() -> sqlite3.Connection:
    """Return a SQLite connection to the case database."""

    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def initialize_schema() -> None:
    """Create the cases table if it does not yet exist."""

    statements: Iterable[str] = (
        """
        CREATE TABLE IF NOT EXISTS cases (
            case_id                 TEXT PRIMARY KEY,
            defendant_name          TEXT,
            prosecutor              TEXT,
            notes                   TEXT,
            next_court_datetime     TEXT,
            last_scrape_status      TEXT,
            last_scrape_error       TEXT,
            last_scrape_error_code  TEXT,
            last_scraped_at         TEXT,
            created_at              TEXT NOT NULL,
            updated_at              TEXT NOT NULL
        );
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_cases_next_court
            ON cases(next_court_datetime);
        """,
    )

    conn = get_connection()
    with conn:
        for statement in statements:
            conn.execute(statement)


def _row_to_dict(row: Optional[sqlite3.Row]) -> Optional[dict[str, Any]]:
    return dict(row) if row is not None else None


def clean_case_id(case_id: str) -> str:
    """Normalise ``case_id`` and check it looks like a court case number.

    Raises ``ValueError`` for empty or malformed identifiers.
    """

    cleaned = normalize_case_id(case_id or "")
    if not cleaned:
        raise ValueError("case_id is required")
    if not config.CASE_ID_PATTERN.fullmatch(cleaned):
        raise ValueError(f"Invalid case number: {case_id!r}")
    return cleaned


def add_case(
    case_id: str,
    *,
    defendant_name: Optional[str] = None,
    prosecutor: Optional[str] = None,
    notes: Optional[str] = None,
) -> dict[str, Any]:
    """Insert a new case and return it.

    Raises ``ValueError`` when the identifier is invalid or already tracked.
    """

    cleaned = clean_case_id(case_id)
    now = now_iso()
    conn = get_connection()
    try:
        with conn:
            conn.execute(
                """
                INSERT INTO cases (
                    case_id, defendant_name, prosecutor, notes,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (cleaned, defendant_name or None, prosecutor or None, notes or None, now, now),
            )
    except sqlite3.IntegrityError as exc:
        raise ValueError(f"Case {cleaned} already exists") from exc
    return get_case(cleaned)  # type: ignore[return-value]


def get_case(case_id: str) -> Optional[dict[str, Any]]:
    conn = get_connection()
    cursor = conn.execute(
        "SELECT * FROM cases WHERE case_id = ?", (normalize_case_id(case_id),)
    )
    return _row_to_dict(cursor.fetchone())


def _order_by(sort: str, desc: Optional[bool]) -> str:
    try:
        column, default_desc = SORT_ORDERS[sort]
    except KeyError:
        raise ValueError(f"Unknown sort order: {sort!r}") from None
    direction = "DESC" if (default_desc if desc is None else desc) else "ASC"
    return f"{column} IS NULL, {column} {direction}, case_id ASC"


def list_cases(
    search: Optional[str] = None,
    sort: str = "next_court",
    desc: Optional[bool] = None,
) -> list[dict[str, Any]]:
    """Return cases matching ``search`` (case number, party names or notes).

    ``desc`` overrides the natural direction of ``sort``. Unknown ``sort``
    values raise ``ValueError``.
    """

    order_by = _order_by(sort, desc)

    params: list[Any] = []
    where = ""
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        where = (
            "WHERE case_id LIKE ? OR defendant_name LIKE ? "
            "OR prosecutor LIKE ? OR notes LIKE ?"
        )
        params = [pattern] * 4

    conn = get_connection()
    cursor = conn.execute(f"SELECT * FROM cases {where} ORDER BY {order_by}", params)
    return [dict(row) for row in cursor.fetchall()]


def list_case_ids() -> list[str]:
    conn = get_connection()
    cursor = conn.execute("SELECT case_id FROM cases ORDER BY created_at ASC, case_id ASC")
    return [row["case_id"] for row in cursor.fetchall()]


def update_case(case_id: str, /, **fields: Any) -> Optional[dict[str, Any]]:
    """Update user-editable fields of a case and return the updated record.

    Returns ``None`` when the case does not exist. Unknown field names raise
    ``ValueError``; empty strings clear a field.
    """

    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

    cleaned = normalize_case_id(case_id)
    if fields:
        assignments = ", ".join(f"{name} = ?" for name in fields)
        values = [value if value not in ("", None) else None for value in fields.values()]
        conn = get_connection()
        with conn:
            conn.execute(
                f"UPDATE cases SET {assignments}, updated_at = ? WHERE case_id = ?",
                (*values, now_iso(), cleaned),
            )
    return get_case(cleaned)


def delete_case(case_id: str) -> bool:
    conn = get_connection()
    with conn:
        cursor = conn.execute(
            "DELETE FROM cases WHERE case_id = ?", (normalize_case_id(case_id),)
        )
    return cursor.rowcount > 0


def record_scrape_outcome(state: ScrapeState) -> bool:
    """Persist a terminal scrape state onto its case record.

    Every outcome overwrites the last-scrape columns. A succeeded scrape also
    replaces the hearing date (clearing it when none was found) and fills in
    party names the record does not have yet; names already on the record
    are kept. Returns ``False`` when the case is no longer tracked.
    """

    if not state.is_terminal:
        raise ValueError(f"Cannot record non-terminal state {state.status.value}")

    now = now_iso()
    conn = get_connection()
    with conn:
        if state.status is ScrapeStatus.SUCCEEDED and state.data is not None:
            cursor = conn.execute(
                """
                UPDATE cases
                SET next_court_datetime = ?,
                    prosecutor = COALESCE(NULLIF(prosecutor, ''), ?),
                    defendant_name = COALESCE(NULLIF(defendant_name, ''), ?),
                    last_scrape_status = ?,
                    last_scrape_error = NULL,
                    last_scrape_error_code = NULL,
                    last_scraped_at = ?,
                    updated_at = ?
                WHERE case_id = ?
                """,
                (
                    _format_datetime(state.data.next_court_datetime),
                    state.data.prosecutor,
                    state.data.defendant,
                    state.status.value,
                    now,
                    now,
                    normalize_case_id(state.case_id),
                ),
            )
        else:
            cursor = conn.execute(
                """
                UPDATE cases
                SET last_scrape_status = ?,
                    last_scrape_error = ?,
                    last_scrape_error_code = ?,
                    last_scraped_at = ?,
                    updated_at = ?
                WHERE case_id = ?
                """,
                (
                    state.status.value,
                    state.error,
                    state.error_code,
                    now,
                    now,
                    normalize_case_id(state.case_id),
                ),
            )
    return cursor.rowcount > 0


__all__ = [
    "DB_PATH",
    "get_connection",
    "initialize_schema",
    "clean_case_id",
    "add_case",
    "get_case",
    "list_cases",
    "list_case_ids",
    "update_case",
    "delete_case",
    "record_scrape_outcome",
]
