"""Excel export of the tracked cases."""

from __future__ import annotations

import os
import time
from typing import Optional

import pandas as pd

from . import config, store

EXPORT_COLUMNS = [
    "case_id",
    "defendant_name",
    "prosecutor",
    "next_court_datetime",
    "last_scrape_status",
    "last_scrape_error",
    "last_scrape_error_code",
    "last_scraped_at",
    "notes",
    "created_at",
    "updated_at",
]

# Older workbooks beyond this count are deleted after each export.
MAX_EXPORTS_TO_KEEP = 10


def prune_old_exports(keep: int = MAX_EXPORTS_TO_KEEP) -> None:
    if not os.path.isdir(config.EXPORTS_DIR):
        return
    exports = sorted(
        os.path.join(config.EXPORTS_DIR, name)
        for name in os.listdir(config.EXPORTS_DIR)
        if name.endswith(".xlsx")
    )
    for path in exports[:-keep] if keep > 0 else exports:
        try:
            os.remove(path)
        except OSError:
            continue


def export_cases_to_excel(dest_path: Optional[str] = None) -> str:
    """Write all cases to a workbook and return its path.

    Sheets: every case, upcoming hearings sorted by date, cases whose last
    scrape failed, and a count per last scrape status.
    """

    df = pd.DataFrame(store.list_cases(sort="case_id"), columns=EXPORT_COLUMNS)

    upcoming = df[df["next_court_datetime"].notna()].sort_values("next_court_datetime")
    failed = df[df["last_scrape_status"].isin(["errored", "noCaseFound"])]
    if df.empty:
        summary_status = pd.DataFrame(columns=["last_scrape_status", "count"])
    else:
        summary_status = (
            df.fillna({"last_scrape_status": "never"})
            .groupby("last_scrape_status")
            .size()
            .reset_index(name="count")
            .sort_values("count", ascending=False)
        )

    os.makedirs(config.EXPORTS_DIR, exist_ok=True)
    if not dest_path:
        stamp = time.strftime("%Y%m%d_%H%M%S", time.gmtime())
        dest_path = os.path.join(config.EXPORTS_DIR, f"cases_{stamp}.xlsx")

    with pd.ExcelWriter(dest_path, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="Cases")
        upcoming.to_excel(writer, index=False, sheet_name="Upcoming")
        failed.to_excel(writer, index=False, sheet_name="Needs_Attention")
        summary_status.to_excel(writer, index=False, sheet_name="Summary_Status")

    prune_old_exports()
    return dest_path


__all__ = ["export_cases_to_excel", "prune_old_exports"]
