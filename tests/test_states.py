from datetime import datetime

import pytest

from courtviewer.scraper.error_codes import ErrorCode
from courtviewer.scraper.states import ScrapeData, ScrapeState, ScrapeStatus


def test_only_running_is_not_terminal() -> None:
    assert ScrapeState.running("3AN-25-08095CR").is_terminal is False
    assert ScrapeState.no_case_found("3AN-25-08095CR").is_terminal is True
    assert ScrapeState.errored("3AN-25-08095CR", "boom").is_terminal is True
    assert ScrapeState.succeeded("3AN-25-08095CR", ScrapeData()).is_terminal is True


def test_variants_cannot_mix_payloads() -> None:
    with pytest.raises(ValueError):
        ScrapeState(case_id="3AN-25-08095CR", status=ScrapeStatus.SUCCEEDED)
    with pytest.raises(ValueError):
        ScrapeState(case_id="3AN-25-08095CR", status=ScrapeStatus.RUNNING, data=ScrapeData())
    with pytest.raises(ValueError):
        ScrapeState(case_id="3AN-25-08095CR", status=ScrapeStatus.NO_CASE_FOUND, error="x")


def test_errored_defaults() -> None:
    state = ScrapeState.errored("3AN-25-08095CR", "")

    assert state.error == "Unknown error"
    assert state.error_code == ErrorCode.INTERNAL


def test_to_dict_shapes() -> None:
    succeeded = ScrapeState.succeeded(
        "3AN-25-08095CR",
        ScrapeData(next_court_datetime=datetime(2099, 2, 1, 9, 0), prosecutor="State", defendant="Doe"),
    )

    assert succeeded.to_dict() == {
        "caseId": "3AN-25-08095CR",
        "state": "succeeded",
        "data": {"nextCourtDateTime": "2099-02-01T09:00:00", "prosecutor": "State", "defendant": "Doe"},
    }
    assert ScrapeState.no_case_found("3AN-25-08095CR").to_dict() == {
        "caseId": "3AN-25-08095CR",
        "state": "noCaseFound",
    }
    assert ScrapeState.from_dict(succeeded.to_dict()) == succeeded


def test_from_dict_rejects_unknown_state() -> None:
    with pytest.raises(ValueError):
        ScrapeState.from_dict({"caseId": "3AN-25-08095CR", "state": "paused"})
