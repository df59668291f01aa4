from pathlib import Path

import pytest

from courtviewer.scraper import config, utils


def test_sanitize_filename() -> None:
    assert utils.sanitize_filename(" 3AN-25-08095CR ") == "3AN-25-08095CR"
    assert utils.sanitize_filename("../etc/passwd") == "etc_passwd"
    assert utils.sanitize_filename("...") == "file"


def test_save_snapshot_replaces_previous(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "SNAPSHOT_DIR", tmp_path / "snapshots")

    utils.save_snapshot("3AN-25-08095CR", "<p>old</p>")
    path = utils.save_snapshot("3AN-25-08095CR", "<p>new</p>")

    assert path == tmp_path / "snapshots" / "3AN-25-08095CR.html"
    assert path.read_text(encoding="utf-8") == "<p>new</p>"
    assert [p.name for p in path.parent.iterdir()] == ["3AN-25-08095CR.html"]


def test_setup_run_logger_switches_log_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "LOG_DIR", tmp_path / "logs")

    log_path = utils.setup_run_logger("replay")
    utils.log_line("[TEST] switched")

    assert log_path.parent == tmp_path / "logs"
    assert log_path.name.startswith("replay_")
    assert utils.get_current_log_path() == log_path
    assert "[TEST] switched" in log_path.read_text(encoding="utf-8")


def test_disk_has_room(tmp_path: Path) -> None:
    assert utils.disk_has_room(0, tmp_path) is True
    assert utils.disk_has_room(0, tmp_path / "missing") is False
