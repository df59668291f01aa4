from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .utils import log_line

if TYPE_CHECKING:
    from .states import ScrapeState


def _scraper_event(label: str = "", *, phase: str | None = None, **fields: Any) -> None:
    """Emit a structured scraper log line.

    ``phase`` may be used as a keyword alias for the label. When both
    ``label`` and ``phase`` are provided, ``phase`` is emitted as part of the
    payload so the caller still captures the event stage. ``None`` values are
    dropped to keep lines short.
    """

    try:
        phase_label = label or (phase or "")
        if phase and label:
            fields.setdefault("phase", phase)
        payload = ", ".join(
            f"{k}={repr(v)}" for k, v in sorted(fields.items()) if v is not None
        )
        log_line(f"[SCRAPER][{phase_label.upper()}] {payload}")
    except Exception:
        # Never let logging break the scraper.
        return


def state_fields(state: "ScrapeState") -> dict[str, Any]:
    """Flatten a scrape state into ``_scraper_event`` keyword fields."""

    fields: dict[str, Any] = {"case_id": state.case_id, "status": state.status.value}
    if state.error is not None:
        fields["error"] = state.error
        fields["error_code"] = state.error_code
    if state.data is not None:
        fields["next_court"] = state.data.to_dict()["nextCourtDateTime"]
    return fields


__all__ = ["_scraper_event", "state_fields"]
