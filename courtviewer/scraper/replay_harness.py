"""Offline replay of saved court pages.

Runs saved HTML (typically the detail-page snapshots written by the step
machine) through the page classifier and the step handlers without a
browser. Useful for checking extraction changes against real pages. With
``record=True`` the outcomes of case pages are written to the case store,
which is **not** safe while a live orchestrator owns the store.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from . import store
from .config_validation import validate_runtime_config
from .errors import error_code_for
from .logging_utils import _scraper_event, state_fields
from .pages import PageCategory, classify, normalize_case_id, parse_document
from .states import ScrapeState
from .step_machine import PAGE_HANDLERS
from .utils import log_line


@dataclass
class ReplayConfig:
    pages: List[Path] = field(default_factory=list)
    case_id: Optional[str] = None
    as_of: Optional[date] = None
    record: bool = False


def iter_page_files(paths: Iterable[Path]) -> Iterable[Path]:
    """Yield HTML files from ``paths``, expanding directories (sorted)."""

    for path in paths:
        path = Path(path)
        if path.is_dir():
            yield from sorted(p for p in path.iterdir() if p.suffix.lower() in {".html", ".htm"})
        elif path.is_file():
            yield path
        else:
            log_line(f"[REPLAY] Skipping missing path {path}")


def replay_page(path: Path, case_id: str, as_of: date) -> Dict[str, Any]:
    """Classify one saved page and run the matching handler on it."""

    document = parse_document(path.read_text(encoding="utf-8", errors="replace"))
    category = classify(document)
    entry: Dict[str, Any] = {"path": str(path), "case_id": case_id, "category": category.value}
    if category is PageCategory.UNRECOGNIZED:
        return entry

    try:
        transition = PAGE_HANDLERS[category](document, case_id, as_of)
    except Exception as exc:  # noqa: BLE001
        state = ScrapeState.errored(case_id, str(exc), error_code=error_code_for(exc))
        entry["state"] = state.to_dict()
        return entry

    entry["state"] = transition.state.to_dict()
    if transition.action is not None:
        entry["action"] = transition.action.description or repr(transition.action)
    return entry


def run_replay(config_obj: ReplayConfig) -> Dict[str, Any]:
    validate_runtime_config("replay")
    files = list(iter_page_files(config_obj.pages))
    as_of = config_obj.as_of or date.today()
    summary: Dict[str, Any] = {"pages": len(files), "processed": 0, "recorded": 0, "results": []}

    _scraper_event("replay", phase="start", pages=len(files), record=config_obj.record)

    if config_obj.record:
        store.initialize_schema()

    for path in files:
        case_id = normalize_case_id(config_obj.case_id or path.stem)
        entry = replay_page(path, case_id, as_of)
        summary["results"].append(entry)
        summary["processed"] += 1
        log_line(f"[REPLAY] {path.name}: category={entry['category']} state={entry.get('state')}")

        state_payload = entry.get("state")
        if not (config_obj.record and state_payload):
            continue
        state = ScrapeState.from_dict(state_payload)
        if state.is_terminal and store.record_scrape_outcome(state):
            summary["recorded"] += 1
            _scraper_event("replay", phase="recorded", **state_fields(state))

    _scraper_event(
        "replay",
        phase="end",
        pages=summary["pages"],
        processed=summary["processed"],
        recorded=summary["recorded"],
    )
    return summary


__all__ = ["ReplayConfig", "iter_page_files", "replay_page", "run_replay"]
