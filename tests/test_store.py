from datetime import datetime
from pathlib import Path

import pytest

from courtviewer.scraper import config, store
from courtviewer.scraper.error_codes import ErrorCode
from courtviewer.scraper.states import ScrapeData, ScrapeState


def _configure_temp_store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    data_dir = tmp_path / "data"
    data_dir.mkdir(parents=True, exist_ok=True)
    db_path = data_dir / "courtviewer.db"
    monkeypatch.setattr(config, "DATA_DIR", data_dir)
    monkeypatch.setattr(config, "DB_PATH", db_path)
    monkeypatch.setattr(store, "DB_PATH", db_path)
    store.initialize_schema()
    return db_path


def test_add_case_normalises_and_rejects_duplicates(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_store(tmp_path, monkeypatch)

    case = store.add_case(" 3an-25-08095cr ", defendant_name="Doe, Jane")

    assert case["case_id"] == "3AN-25-08095CR"
    assert case["defendant_name"] == "Doe, Jane"
    assert case["prosecutor"] is None
    assert case["created_at"] == case["updated_at"]

    with pytest.raises(ValueError, match="already exists"):
        store.add_case("3AN-25-08095CR")


@pytest.mark.parametrize("case_id", ["", "   ", "not-a-case", "3AN-25-0809CR"])
def test_add_case_rejects_malformed_ids(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, case_id: str
) -> None:
    _configure_temp_store(tmp_path, monkeypatch)

    with pytest.raises(ValueError):
        store.add_case(case_id)
    assert store.list_case_ids() == []


def test_list_cases_sorts_by_next_court_with_undated_last(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _configure_temp_store(tmp_path, monkeypatch)
    store.add_case("3AN-25-08095CR")
    store.add_case("3PA-24-00277CR")
    store.add_case("3KO-25-00060CR")
    store.update_case("3PA-24-00277CR", next_court_datetime="2099-01-05T09:00:00")
    store.update_case("3KO-25-00060CR", next_court_datetime="2098-12-01T13:30:00")

    ordered = [case["case_id"] for case in store.list_cases()]

    assert ordered == ["3KO-25-00060CR", "3PA-24-00277CR", "3AN-25-08095CR"]
    assert [case["case_id"] for case in store.list_cases(sort="case_id")] == sorted(ordered)


def test_list_cases_sort_direction_keeps_undated_last(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _configure_temp_store(tmp_path, monkeypatch)
    store.add_case("3AN-25-08095CR")
    store.add_case("3PA-24-00277CR", defendant_name="adams, Pat")
    store.add_case("3KO-25-00060CR", defendant_name="Baker, Lee")
    store.update_case("3PA-24-00277CR", next_court_datetime="2099-01-05T09:00:00")
    store.update_case("3KO-25-00060CR", next_court_datetime="2098-12-01T13:30:00")

    def _ids(**kwargs) -> list[str]:
        return [case["case_id"] for case in store.list_cases(**kwargs)]

    assert _ids(desc=True) == ["3PA-24-00277CR", "3KO-25-00060CR", "3AN-25-08095CR"]
    assert _ids(sort="defendant") == ["3PA-24-00277CR", "3KO-25-00060CR", "3AN-25-08095CR"]
    assert _ids(sort="defendant", desc=True) == ["3KO-25-00060CR", "3PA-24-00277CR", "3AN-25-08095CR"]
    assert _ids(sort="case_id", desc=True) == ["3PA-24-00277CR", "3KO-25-00060CR", "3AN-25-08095CR"]
    assert _ids(sort="case_id", desc=False) == sorted(_ids(sort="case_id", desc=True))


def test_list_cases_search_matches_parties_and_notes(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _configure_temp_store(tmp_path, monkeypatch)
    store.add_case("3AN-25-08095CR", defendant_name="Doe, Jane")
    store.add_case("3PA-24-00277CR", notes="bail review pending")

    assert [c["case_id"] for c in store.list_cases(search="jane")] == ["3AN-25-08095CR"]
    assert [c["case_id"] for c in store.list_cases(search="bail")] == ["3PA-24-00277CR"]
    assert [c["case_id"] for c in store.list_cases(search="3PA")] == ["3PA-24-00277CR"]
    assert len(store.list_cases(search="  ")) == 2


def test_list_cases_rejects_unknown_sort(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_store(tmp_path, monkeypatch)

    with pytest.raises(ValueError, match="Unknown sort order"):
        store.list_cases(sort="random")


def test_update_case_edits_clears_and_validates(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_store(tmp_path, monkeypatch)
    store.add_case("3AN-25-08095CR", notes="call client")

    updated = store.update_case("3an-25-08095cr", prosecutor="State of Alaska", notes="")

    assert updated is not None
    assert updated["prosecutor"] == "State of Alaska"
    assert updated["notes"] is None

    with pytest.raises(ValueError, match="last_scrape_status"):
        store.update_case("3AN-25-08095CR", last_scrape_status="succeeded")
    assert store.update_case("3PA-24-00277CR", notes="x") is None


def test_delete_case(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_store(tmp_path, monkeypatch)
    store.add_case("3AN-25-08095CR")

    assert store.delete_case("3an-25-08095cr") is True
    assert store.delete_case("3AN-25-08095CR") is False
    assert store.get_case("3AN-25-08095CR") is None


def test_record_succeeded_outcome_keeps_existing_party_names(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _configure_temp_store(tmp_path, monkeypatch)
    store.add_case("3AN-25-08095CR", defendant_name="Jane Doe (client)")
    state = ScrapeState.succeeded(
        "3AN-25-08095CR",
        ScrapeData(
            next_court_datetime=datetime(2099, 2, 1, 9, 0),
            prosecutor="State of Alaska",
            defendant="Doe, Jane",
        ),
    )

    assert store.record_scrape_outcome(state) is True

    case = store.get_case("3AN-25-08095CR")
    assert case is not None
    assert case["next_court_datetime"] == "2099-02-01T09:00:00"
    assert case["defendant_name"] == "Jane Doe (client)"
    assert case["prosecutor"] == "State of Alaska"
    assert case["last_scrape_status"] == "succeeded"
    assert case["last_scrape_error"] is None
    assert case["last_scraped_at"]


def test_record_errored_outcome_keeps_hearing_date(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _configure_temp_store(tmp_path, monkeypatch)
    store.add_case("3AN-25-08095CR")
    store.update_case("3AN-25-08095CR", next_court_datetime="2099-02-01T09:00:00")

    store.record_scrape_outcome(
        ScrapeState.errored("3AN-25-08095CR", "timed out", error_code=ErrorCode.JOB_TIMEOUT)
    )

    case = store.get_case("3AN-25-08095CR")
    assert case is not None
    assert case["next_court_datetime"] == "2099-02-01T09:00:00"
    assert case["last_scrape_status"] == "errored"
    assert case["last_scrape_error"] == "timed out"
    assert case["last_scrape_error_code"] == ErrorCode.JOB_TIMEOUT


def test_record_outcome_for_untracked_case_and_running_state(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _configure_temp_store(tmp_path, monkeypatch)

    assert store.record_scrape_outcome(ScrapeState.no_case_found("3AN-25-08095CR")) is False
    with pytest.raises(ValueError, match="non-terminal"):
        store.record_scrape_outcome(ScrapeState.running("3AN-25-08095CR"))
