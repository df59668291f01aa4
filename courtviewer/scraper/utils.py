from __future__ import annotations

import logging
import shutil
import sys
import threading
import time
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

from . import config

LOGGER = logging.getLogger("courtviewer")
# The scrape service thread and Flask request threads log concurrently.
_LOGGER_LOCK = threading.Lock()
_CURRENT_LOG_FILE: Path | None = None

LOG_FORMAT = "[%(asctime)s] [%(threadName)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _configure_logger(log_path: Path) -> None:
    """Point the shared logger at stdout and a rotating file at ``log_path``."""

    global _CURRENT_LOG_FILE

    log_path.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    for handler in list(LOGGER.handlers):
        LOGGER.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=config.LOG_MAX_BYTES,
        backupCount=config.LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    LOGGER.setLevel(logging.INFO)
    LOGGER.addHandler(stream_handler)
    LOGGER.addHandler(file_handler)
    LOGGER.propagate = False
    _CURRENT_LOG_FILE = log_path


def _ensure_logger() -> Path:
    with _LOGGER_LOCK:
        if _CURRENT_LOG_FILE is None:
            _configure_logger(config.LOG_FILE)
        return _CURRENT_LOG_FILE  # type: ignore[return-value]


def setup_run_logger(label: str = "scrape") -> Path:
    """Switch to a fresh ``<label>_<timestamp>.log`` for a one-off CLI session."""

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    log_path = config.LOG_DIR / f"{label}_{timestamp}.log"
    with _LOGGER_LOCK:
        _configure_logger(log_path)
    LOGGER.info("Logging to %s", log_path)
    return log_path


def get_current_log_path() -> Path:
    """Return the path to the log file currently receiving log lines."""

    return _ensure_logger()


def ensure_dirs() -> None:
    for directory in (config.DATA_DIR, config.LOG_DIR, config.SNAPSHOT_DIR):
        directory.mkdir(parents=True, exist_ok=True)


def log_line(message: str) -> None:
    """Write a timestamped log line to stdout and the active log file."""

    _ensure_logger()
    LOGGER.info(message)


def now_iso() -> str:
    """Return the current UTC time formatted for persistence."""

    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def sanitize_filename(name: str) -> str:
    """Keep alphanumerics, dot, underscore and dash; replace the rest with ``_``."""

    cleaned = "".join(
        ch if ch.isalnum() or ch in {".", "_", "-"} else "_" for ch in name.strip()
    ).strip("._")
    return cleaned or "file"


def snapshot_path(case_id: str) -> Path:
    """Return where the detail-page snapshot for ``case_id`` is stored."""

    return config.SNAPSHOT_DIR / f"{sanitize_filename(case_id)}.html"


def save_snapshot(case_id: str, html: str) -> Path:
    """Write ``html`` as the latest detail-page snapshot of ``case_id``."""

    path = snapshot_path(case_id)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(".tmp")
    tmp_path.write_text(html, encoding="utf-8")
    tmp_path.replace(path)
    return path


def disk_has_room(min_free_mb: int, path: Path) -> bool:
    """Return True when the filesystem holding ``path`` has ``min_free_mb`` free."""

    try:
        usage = shutil.disk_usage(path)
    except OSError:
        return False
    return usage.free >= min_free_mb * 1024 * 1024


__all__ = [
    "LOGGER",
    "ensure_dirs",
    "setup_run_logger",
    "get_current_log_path",
    "log_line",
    "now_iso",
    "sanitize_filename",
    "snapshot_path",
    "save_snapshot",
    "disk_has_room",
]
