from datetime import date
from pathlib import Path

import pytest

from courtviewer.scraper import replay_harness, store
from courtviewer.scraper.replay_harness import ReplayConfig
from tests.test_api import _configure_temp_paths
from tests.test_step_machine import (
    CASE_ID,
    NO_RECORDS_HTML,
    UNKNOWN_HTML,
    WELCOME_HTML,
    detail_html,
)

AS_OF = date(2025, 1, 1)


def _write_pages(root: Path) -> Path:
    pages = root / "pages"
    pages.mkdir()
    (pages / f"{CASE_ID}.html").write_text(detail_html(), encoding="utf-8")
    (pages / "3PA-24-00277CR.html").write_text(NO_RECORDS_HTML, encoding="utf-8")
    (pages / "3KO-25-00060CR.html").write_text(detail_html(defendant=None), encoding="utf-8")
    (pages / "welcome.htm").write_text(WELCOME_HTML, encoding="utf-8")
    (pages / "loading.html").write_text(UNKNOWN_HTML, encoding="utf-8")
    (pages / "notes.txt").write_text("ignored", encoding="utf-8")
    return pages


def test_iter_page_files_expands_directories(tmp_path: Path) -> None:
    pages = _write_pages(tmp_path)

    files = list(replay_harness.iter_page_files([pages, tmp_path / "missing.html"]))

    assert [path.name for path in files] == [
        f"{CASE_ID}.html",
        "3KO-25-00060CR.html",
        "3PA-24-00277CR.html",
        "loading.html",
        "welcome.htm",
    ]


def test_replay_page_runs_handler(tmp_path: Path) -> None:
    pages = _write_pages(tmp_path)

    detail = replay_harness.replay_page(pages / f"{CASE_ID}.html", CASE_ID, AS_OF)
    welcome = replay_harness.replay_page(pages / "welcome.htm", CASE_ID, AS_OF)
    loading = replay_harness.replay_page(pages / "loading.html", CASE_ID, AS_OF)

    assert detail["category"] == "caseDetail"
    assert detail["state"]["state"] == "succeeded"
    assert detail["state"]["data"]["nextCourtDateTime"] == "2099-02-01T09:00:00"
    assert welcome["state"]["state"] == "running"
    assert "Search Cases" in welcome["action"]
    assert loading == {"path": str(pages / "loading.html"), "case_id": CASE_ID, "category": "unrecognized"}


def test_run_replay_records_terminal_outcomes(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_paths(tmp_path, monkeypatch)
    store.initialize_schema()
    store.add_case(CASE_ID)
    store.add_case("3KO-25-00060CR")
    pages = _write_pages(tmp_path)

    summary = replay_harness.run_replay(ReplayConfig(pages=[pages], as_of=AS_OF, record=True))

    assert summary["pages"] == 5
    assert summary["processed"] == 5
    # 3PA-24-00277CR is not tracked, and non-terminal pages are never recorded.
    assert summary["recorded"] == 2
    assert store.get_case(CASE_ID)["next_court_datetime"] == "2099-02-01T09:00:00"
    failed = store.get_case("3KO-25-00060CR")
    assert failed["last_scrape_status"] == "errored"
    assert failed["last_scrape_error_code"] == "extraction_failure"


def test_run_replay_without_record_leaves_store_alone(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_paths(tmp_path, monkeypatch)
    store.initialize_schema()
    store.add_case(CASE_ID)
    pages = _write_pages(tmp_path)

    summary = replay_harness.run_replay(ReplayConfig(pages=[pages / f"{CASE_ID}.html"], as_of=AS_OF))

    assert summary["recorded"] == 0
    assert summary["results"][0]["state"]["state"] == "succeeded"
    assert store.get_case(CASE_ID)["last_scrape_status"] is None


def test_run_replay_normalises_case_ids_before_recording(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _configure_temp_paths(tmp_path, monkeypatch)
    store.initialize_schema()
    store.add_case(CASE_ID)
    page = tmp_path / f"{CASE_ID.lower()}.html"
    page.write_text(detail_html(), encoding="utf-8")

    summary = replay_harness.run_replay(ReplayConfig(pages=[page], as_of=AS_OF, record=True))

    assert summary["recorded"] == 1
    assert summary["results"][0]["case_id"] == CASE_ID
    assert store.get_case(CASE_ID)["last_scrape_status"] == "succeeded"
