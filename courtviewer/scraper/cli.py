"""Command line interface for managing and scraping tracked cases."""
from __future__ import annotations

import argparse
import asyncio
import json
import os
from datetime import date
from pathlib import Path
from typing import Any, Optional, Sequence

from . import store
from .browser import PlaywrightContextFactory
from .bus import MessageBus
from .config_validation import validate_runtime_config
from .export_excel import export_cases_to_excel
from .healthcheck import run_health_checks
from .orchestrator import Orchestrator
from .replay_harness import ReplayConfig, run_replay
from .utils import ensure_dirs, setup_run_logger

LIST_COLUMNS = ("case_id", "defendant_name", "next_court_datetime", "last_scrape_status")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Track court cases and scrape hearing dates.")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Start tracking a case.")
    add.add_argument("case_id")
    add.add_argument("--defendant")
    add.add_argument("--prosecutor")
    add.add_argument("--notes")

    listing = sub.add_parser("list", help="List tracked cases.")
    listing.add_argument("--search")
    listing.add_argument("--sort", default="next_court", choices=sorted(store.SORT_ORDERS))
    order = listing.add_mutually_exclusive_group()
    order.add_argument("--desc", dest="desc", action="store_const", const=True, help="Sort descending.")
    order.add_argument("--asc", dest="desc", action="store_const", const=False, help="Sort ascending.")
    listing.add_argument("--json", action="store_true", help="Print JSON instead of a table.")

    scrape = sub.add_parser("scrape", help="Scrape one or more cases now.")
    scrape.add_argument("case_ids", nargs="+")
    scrape.add_argument("--timeout", type=float, default=None, help="Overall wait in seconds.")

    scrape_all = sub.add_parser("scrape-all", help="Scrape every tracked case.")
    scrape_all.add_argument("--timeout", type=float, default=None, help="Overall wait in seconds.")

    extract = sub.add_parser("extract", help="Replay saved case pages offline.")
    extract.add_argument("paths", nargs="+", type=Path)
    extract.add_argument("--case-id")
    extract.add_argument("--as-of", type=date.fromisoformat)
    extract.add_argument("--record", action="store_true", help="Write outcomes to the case store.")

    sub.add_parser("health", help="Run health checks.")
    sub.add_parser("export", help="Export cases to an Excel workbook.")

    serve = sub.add_parser("serve", help="Run the web API.")
    serve.add_argument("--host", default="0.0.0.0")
    # The hosting environment may provide PORT.
    serve.add_argument("--port", type=int, default=int(os.environ.get("PORT", 8080)))
    return parser


async def scrape_cases(case_ids: Sequence[str], *, scrape_all: bool, timeout: Optional[float]) -> None:
    """Run an orchestrator until the requested cases have finished."""

    async with PlaywrightContextFactory() as factory:
        bus = MessageBus()
        orchestrator = Orchestrator(bus, store, factory)
        runner = asyncio.create_task(orchestrator.run())
        try:
            if scrape_all:
                await orchestrator.request_scrape_all()
            else:
                for case_id in case_ids:
                    orchestrator.request_scrape(case_id)
            await orchestrator.wait_until_idle(timeout)
        finally:
            await orchestrator.shutdown()
            runner.cancel()
            await asyncio.gather(runner, return_exceptions=True)


def _print_cases(cases: Sequence[dict[str, Any]]) -> None:
    if not cases:
        print("No cases.")
        return
    for case in cases:
        print("  ".join(str(case.get(column) or "-") for column in LIST_COLUMNS))


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    ensure_dirs()
    store.initialize_schema()

    if args.command == "add":
        try:
            case = store.add_case(
                args.case_id,
                defendant_name=args.defendant,
                prosecutor=args.prosecutor,
                notes=args.notes,
            )
        except ValueError as exc:
            parser.error(str(exc))
        print(f"Added {case['case_id']}")
        return 0

    if args.command == "list":
        cases = store.list_cases(search=args.search, sort=args.sort, desc=args.desc)
        if args.json:
            print(json.dumps(cases, indent=2))
        else:
            _print_cases(cases)
        return 0

    if args.command in {"scrape", "scrape-all"}:
        try:
            validate_runtime_config("cli")
        except ValueError as exc:
            parser.error(str(exc))
        setup_run_logger()
        case_ids = [] if args.command == "scrape-all" else args.case_ids
        try:
            asyncio.run(
                scrape_cases(case_ids, scrape_all=args.command == "scrape-all", timeout=args.timeout)
            )
        except asyncio.TimeoutError:
            print("Timed out waiting for scrapes to finish.")
            return 1
        if case_ids:
            _print_cases([case for case in map(store.get_case, case_ids) if case])
        else:
            _print_cases(store.list_cases())
        return 0

    if args.command == "extract":
        summary = run_replay(
            ReplayConfig(
                pages=args.paths,
                case_id=args.case_id,
                as_of=args.as_of,
                record=args.record,
            )
        )
        print(json.dumps(summary, indent=2))
        return 0

    if args.command == "health":
        result = run_health_checks(entrypoint="cli")
        for name, info in result.checks.items():
            status = "OK" if info.get("ok") else "FAIL"
            print(f"{name}: {status} {info}")
        return 0 if result.ok else 1

    if args.command == "export":
        print(export_cases_to_excel())
        return 0

    if args.command == "serve":
        # Imported here: loading the web app initialises the data directory.
        from courtviewer.main import app

        app.run(host=args.host, port=args.port)
        return 0

    parser.error(f"Unknown command {args.command}")
    return 2


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
