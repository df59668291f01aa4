from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import requests

from . import config, store
from .config_validation import validate_runtime_config
from .logging_utils import _scraper_event
from .utils import disk_has_room, ensure_dirs, log_line


@dataclass
class HealthResult:
    ok: bool
    checks: dict[str, dict[str, Any]]


def _probe_court_site() -> dict[str, Any]:
    try:
        response = requests.get(
            config.COURT_URL,
            headers=config.COMMON_HEADERS,
            timeout=config.PLAYWRIGHT_NAV_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        return {"ok": False, "url": config.COURT_URL, "error": str(exc)}
    return {
        "ok": response.status_code < 400,
        "url": config.COURT_URL,
        "status_code": response.status_code,
    }


def run_health_checks(entrypoint: str = "cli", *, probe_site: bool | None = None) -> HealthResult:
    """Check configuration, disk space, the case database and optionally the portal.

    The portal probe only runs when ``probe_site`` (or
    ``config.HEALTHCHECK_PROBE_SITE``) is set; it is reported but never makes
    the overall result fail, since the portal is outside our control.
    """

    checks: dict[str, dict[str, Any]] = {}

    try:
        validate_runtime_config(entrypoint or "cli")
        checks["config"] = {"ok": True}
    except ValueError as exc:
        checks["config"] = {"ok": False, "error": str(exc)}

    ensure_dirs()
    fs_ok = disk_has_room(config.MIN_FREE_MB, config.DATA_DIR)
    checks["filesystem"] = {
        "ok": fs_ok,
        "data_dir": str(config.DATA_DIR),
        "min_free_mb": config.MIN_FREE_MB,
    }

    try:
        store.initialize_schema()
        conn = store.get_connection()
        count = conn.execute("SELECT COUNT(*) FROM cases").fetchone()[0]
        checks["database"] = {"ok": True, "cases": int(count)}
    except Exception as exc:  # noqa: BLE001
        checks["database"] = {"ok": False, "error": str(exc)}

    if config.HEALTHCHECK_PROBE_SITE if probe_site is None else probe_site:
        checks["court_site"] = _probe_court_site()

    overall_ok = all(
        check.get("ok", False) for name, check in checks.items() if name != "court_site"
    )

    _scraper_event(
        "state" if overall_ok else "error",
        phase="health",
        context="healthcheck",
        ok=overall_ok,
        checks=checks,
    )

    return HealthResult(ok=overall_ok, checks=checks)


if __name__ == "__main__":  # pragma: no cover
    result = run_health_checks(entrypoint="cli")
    for name, info in result.checks.items():
        status = "OK" if info.get("ok") else "FAIL"
        log_line(f"[HEALTH] {name}: {status} {info}")
    raise SystemExit(0 if result.ok else 1)
