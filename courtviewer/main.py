from __future__ import annotations

import os
import time
from typing import Any, Generator

from flask import Flask, Response, jsonify, request, send_file

from courtviewer.scraper import config, store
from courtviewer.scraper.config_validation import validate_runtime_config
from courtviewer.scraper.export_excel import export_cases_to_excel
from courtviewer.scraper.healthcheck import run_health_checks
from courtviewer.scraper.logging_utils import _scraper_event
from courtviewer.scraper.pages import normalize_case_id
from courtviewer.scraper.service import ScrapeService, get_service
from courtviewer.scraper.utils import ensure_dirs, get_current_log_path, log_line, snapshot_path

app = Flask(__name__)
app.secret_key = os.environ.get("SECRET_KEY", "dev-secret-change-me")

# Initialise storage paths and SQLite schema on import so WSGI/ASGI entrypoints
# also have the expected environment ready.
ensure_dirs()
store.initialize_schema()


def _scrape_service() -> ScrapeService:
    """Return the injected service (tests) or the process-wide one."""

    injected = app.config.get("SCRAPE_SERVICE")
    if injected is not None:
        return injected
    return get_service()


def _error(message: str, status: int) -> tuple[Response, int]:
    return jsonify({"ok": False, "error": message}), status


def _read_last_log_lines(limit: int = 150) -> list[str]:
    """Return the trailing ``limit`` log lines for initial display."""

    ensure_dirs()
    path = get_current_log_path()
    if not path.exists():
        return []

    with path.open("r", encoding="utf-8", errors="ignore") as handle:
        lines = handle.readlines()[-limit:]
    return [line.rstrip("\n") for line in lines]


def _tail_log_generator() -> Generator[str, None, None]:
    """Yield Server-Sent Event messages for appended log lines."""

    current_path = get_current_log_path()
    current_path.parent.mkdir(parents=True, exist_ok=True)
    current_path.touch(exist_ok=True)

    handle = current_path.open("r", encoding="utf-8", errors="ignore")
    handle.seek(0, os.SEEK_END)

    try:
        while True:
            latest_path = get_current_log_path()
            # A new path (CLI session) is followed from its end; a shrunken
            # file (rotation) is read from the start so no lines are lost.
            switched = latest_path != current_path
            rotated = (
                not switched
                and latest_path.exists()
                and latest_path.stat().st_size < handle.tell()
            )
            if switched or rotated:
                handle.close()
                current_path = latest_path
                current_path.parent.mkdir(parents=True, exist_ok=True)
                current_path.touch(exist_ok=True)
                handle = current_path.open("r", encoding="utf-8", errors="ignore")
                if switched:
                    handle.seek(0, os.SEEK_END)

            line = handle.readline()
            if line:
                yield f"data: {line.rstrip()}\n\n"
            else:
                time.sleep(1)
                yield ": heartbeat\n\n"
    finally:
        handle.close()


@app.get("/api/cases")
def api_list_cases() -> Response:
    desc_arg = request.args.get("desc")
    desc = None if desc_arg is None else desc_arg.strip().lower() in {"1", "true", "yes"}
    try:
        cases = store.list_cases(
            search=request.args.get("search"),
            sort=request.args.get("sort", "next_court"),
            desc=desc,
        )
    except ValueError as exc:
        return _error(str(exc), 400)
    return jsonify({"ok": True, "cases": cases})


@app.post("/api/cases")
def api_add_case() -> Response:
    payload: dict[str, Any] = request.get_json(silent=True) or {}
    try:
        case = store.add_case(
            str(payload.get("case_id") or ""),
            defendant_name=payload.get("defendant_name"),
            prosecutor=payload.get("prosecutor"),
            notes=payload.get("notes"),
        )
    except ValueError as exc:
        status = 409 if "already exists" in str(exc) else 400
        return _error(str(exc), status)
    log_line(f"[API] Added case {case['case_id']}")
    return jsonify({"ok": True, "case": case}), 201


@app.get("/api/cases/<case_id>")
def api_get_case(case_id: str) -> Response:
    case = store.get_case(case_id)
    if case is None:
        return _error("case not found", 404)
    return jsonify({"ok": True, "case": case})


@app.put("/api/cases/<case_id>")
def api_update_case(case_id: str) -> Response:
    payload: dict[str, Any] = request.get_json(silent=True) or {}
    try:
        case = store.update_case(case_id, **payload)
    except ValueError as exc:
        return _error(str(exc), 400)
    if case is None:
        return _error("case not found", 404)
    return jsonify({"ok": True, "case": case})


@app.delete("/api/cases/<case_id>")
def api_delete_case(case_id: str) -> Response:
    if not store.delete_case(case_id):
        return _error("case not found", 404)
    log_line(f"[API] Deleted case {case_id}")
    return jsonify({"ok": True})


@app.get("/api/cases/<case_id>/snapshot")
def api_case_snapshot(case_id: str) -> Response:
    """Serve the last saved detail page of a case."""

    target = snapshot_path(normalize_case_id(case_id)).resolve()
    root = config.SNAPSHOT_DIR.resolve()
    if not str(target).startswith(str(root)):
        return Response("Invalid path", status=400)
    if not target.exists() or not target.is_file():
        return Response("Snapshot not found", status=404)
    return send_file(target, mimetype="text/html")


@app.post("/api/scrape")
def api_scrape() -> Response:
    payload: dict[str, Any] = request.get_json(silent=True) or {}
    case_id = str(payload.get("case_id") or "").strip()
    if not case_id:
        return _error("case_id is required", 400)

    try:
        validate_runtime_config("ui")
    except ValueError as exc:
        return _error(str(exc), 400)

    try:
        result = _scrape_service().start_scrape(
            case_id, keep_context_open=bool(payload.get("keep_context_open", False))
        )
    except RuntimeError as exc:
        _scraper_event("error", phase="api", context="scrape", case_id=case_id, error=str(exc))
        return _error(str(exc), 503)
    return jsonify(result), 202


@app.post("/api/scrape-all")
def api_scrape_all() -> Response:
    try:
        validate_runtime_config("ui")
    except ValueError as exc:
        return _error(str(exc), 400)

    try:
        summary = _scrape_service().scrape_all()
    except RuntimeError as exc:
        _scraper_event("error", phase="api", context="scrape_all", error=str(exc))
        return _error(str(exc), 503)
    return jsonify({"ok": True, **summary}), 202


@app.get("/api/scrape/status")
def api_scrape_status() -> Response:
    try:
        status = _scrape_service().status()
    except RuntimeError as exc:
        return _error(str(exc), 503)
    return jsonify({"ok": True, **status})


@app.get("/api/health")
def api_health() -> Response:
    """Return a JSON health summary for configuration, filesystem, and DB."""

    result = run_health_checks(entrypoint="ui")
    status = 200 if result.ok else 503
    return jsonify({"ok": result.ok, "checks": result.checks}), status


@app.get("/api/exports/cases.xlsx")
def api_export_cases_xlsx() -> Response:
    path = export_cases_to_excel()
    return send_file(path, as_attachment=True, download_name=os.path.basename(path))


@app.get("/api/logs/recent")
def api_recent_logs() -> Response:
    try:
        limit = max(1, min(int(request.args.get("limit", 150)), 1000))
    except ValueError:
        limit = 150
    return jsonify({"ok": True, "lines": _read_last_log_lines(limit)})


@app.get("/logs/stream")
def logs_stream() -> Response:
    """Stream log updates to the browser using SSE."""

    response = Response(_tail_log_generator(), mimetype="text/event-stream")
    response.headers["Cache-Control"] = "no-cache"
    response.headers["X-Accel-Buffering"] = "no"
    return response


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 8080)))
