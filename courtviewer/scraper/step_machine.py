"""Per-context scrape state machine.

Every click on the court site can replace the whole document, which throws
away whatever the previous step was doing. Continuity therefore lives in the
context's session storage: each step loads the persisted state, looks at the
page in front of it, takes at most one action, and stores the next state.
"""
from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from bs4 import BeautifulSoup

from . import config
from .bus import BeginScrape, Command, MessageBus, StateChange
from .errors import (
    AmbiguousOrMissingLink,
    NavigationFailure,
    UnrecognizedPageTimeout,
    error_code_for,
)
from .extraction import extract_case_data
from .logging_utils import _scraper_event
from .navigation import Action, FillAndSubmit, NavigationContext
from .pages import (
    PageCategory,
    classify,
    find_case_detail_links,
    find_search_cases_control,
    find_submit_selector,
    normalize_case_id,
    parse_document,
)
from .states import ScrapeState, ScrapeStatus
from .utils import log_line, save_snapshot


@dataclass(frozen=True)
class Transition:
    state: ScrapeState
    action: Optional[Action] = None


@dataclass(frozen=True)
class PersistedStep:
    state: ScrapeState
    running_since: float

    def to_json(self) -> str:
        return json.dumps({"state": self.state.to_dict(), "runningSince": self.running_since})

    @classmethod
    def from_json(cls, raw: str) -> "PersistedStep":
        payload = json.loads(raw)
        return cls(
            state=ScrapeState.from_dict(payload["state"]),
            running_since=float(payload.get("runningSince") or 0.0),
        )


PageHandler = Callable[[BeautifulSoup, str, date], Transition]


def handle_welcome(document: BeautifulSoup, case_id: str, as_of: date) -> Transition:
    control = find_search_cases_control(document)
    if control is None:
        raise NavigationFailure("Could not find 'Search Cases' link or button on welcome page.")
    return Transition(ScrapeState.running(case_id), control)


def handle_search_form(document: BeautifulSoup, case_id: str, as_of: date) -> Transition:
    submit_selector = find_submit_selector(document)
    if submit_selector is None:
        raise NavigationFailure("Could not find the search submit button.")
    return Transition(
        ScrapeState.running(case_id),
        FillAndSubmit(
            input_selector=config.CASE_INPUT_SELECTOR,
            value=case_id,
            submit_selector=submit_selector,
            description="case number search",
        ),
    )


def handle_results_listing(document: BeautifulSoup, case_id: str, as_of: date) -> Transition:
    links = find_case_detail_links(document)
    if not links:
        return Transition(ScrapeState.no_case_found(case_id))

    wanted = normalize_case_id(case_id)
    matching = [link for link in links if normalize_case_id(link.case_id) == wanted]
    if not matching:
        listed = ", ".join(link.case_id for link in links)
        raise AmbiguousOrMissingLink(
            f"Found {len(links)} case links but none match case {case_id}: {listed}"
        )
    if len(matching) > 1:
        log_line(f"[STEP] {len(matching)} links match case {case_id}; following the first.")
    return Transition(ScrapeState.running(case_id), matching[0].action)


def handle_case_detail(document: BeautifulSoup, case_id: str, as_of: date) -> Transition:
    return Transition(ScrapeState.succeeded(case_id, extract_case_data(document, as_of)))


# Unrecognized pages never reach a handler; the machine waits them out.
PAGE_HANDLERS: dict[PageCategory, PageHandler] = {
    PageCategory.WELCOME: handle_welcome,
    PageCategory.SEARCH_FORM: handle_search_form,
    PageCategory.RESULTS_LISTING: handle_results_listing,
    PageCategory.CASE_DETAIL: handle_case_detail,
}


class StepMachine:
    """Drives one navigation context through the search workflow."""

    def __init__(
        self,
        context: NavigationContext,
        bus: MessageBus,
        *,
        budget_seconds: Optional[float] = None,
        poll_seconds: Optional[float] = None,
        poll_max_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._context = context
        self._bus = bus
        self._budget_seconds = (
            config.UNRECOGNIZED_PAGE_BUDGET_SECONDS if budget_seconds is None else budget_seconds
        )
        self._poll_seconds = config.UNRECOGNIZED_POLL_SECONDS if poll_seconds is None else poll_seconds
        self._poll_max_seconds = (
            config.UNRECOGNIZED_POLL_MAX_SECONDS if poll_max_seconds is None else poll_max_seconds
        )
        self._clock = clock
        self._today = today
        self._task: Optional[asyncio.Task] = None

    @property
    def handle(self) -> str:
        return self._context.handle

    def attach(self) -> None:
        self._bus.register_handler(self.handle, self.handle_command)
        self._context.on_load(self.on_load)
        self._context.on_close(self.detach)

    def detach(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._bus.unregister_handler(self.handle)

    async def handle_command(self, command: Command) -> dict:
        if not isinstance(command, BeginScrape):
            return {"ok": False, "error": f"unknown command {type(command).__name__}"}
        log_line(f"[STEP] Beginning scrape of case {command.case_id} in {self.handle}")
        await self._save(
            PersistedStep(state=ScrapeState.running(command.case_id), running_since=self._clock())
        )
        self._schedule()
        return {"ok": True}

    async def on_load(self) -> None:
        self._schedule()

    def _schedule(self) -> asyncio.Task:
        # A new document supersedes whatever the previous one was doing.
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = asyncio.create_task(self.run_step())
        return self._task

    async def wait_idle(self) -> None:
        """Wait for the in-flight step, if any (used by tests and shutdown)."""

        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _load(self) -> Optional[PersistedStep]:
        try:
            raw = await self._context.session_get(config.SESSION_STATE_KEY)
        except NavigationFailure as exc:
            log_line(f"[STEP] Could not read session state in {self.handle}: {exc}")
            return None
        if not raw:
            return None
        try:
            return PersistedStep.from_json(raw)
        except (ValueError, KeyError, TypeError) as exc:
            log_line(f"[STEP] Ignoring unreadable session state in {self.handle}: {exc}")
            return None

    async def _save(self, persisted: PersistedStep) -> None:
        try:
            await self._context.session_set(config.SESSION_STATE_KEY, persisted.to_json())
        except NavigationFailure as exc:
            log_line(f"[STEP] Could not persist session state in {self.handle}: {exc}")

    async def _publish(self, persisted: PersistedStep) -> None:
        await self._save(persisted)
        self._bus.post(StateChange(state=persisted.state), sender=self.handle)

    def _poll_delay(self, attempt: int) -> float:
        return float(min(self._poll_seconds * 2 ** max(0, attempt - 1), self._poll_max_seconds))

    async def _wait_for_known_page(
        self, running_since: float
    ) -> tuple[str, BeautifulSoup, PageCategory]:
        attempt = 0
        while True:
            try:
                html = await self._context.html()
            except NavigationFailure as exc:
                log_line(f"[STEP] Page unavailable in {self.handle}: {exc}")
            else:
                document = parse_document(html)
                category = classify(document)
                if category is not PageCategory.UNRECOGNIZED:
                    return html, document, category

            if self._clock() - running_since > self._budget_seconds:
                raise UnrecognizedPageTimeout("timed out waiting for a known page")
            attempt += 1
            log_line(f"[STEP] Unknown page type in {self.handle}; retry {attempt}.")
            await asyncio.sleep(self._poll_delay(attempt))

    async def _decide(self, persisted: PersistedStep) -> Transition:
        case_id = persisted.state.case_id
        html, document, category = await self._wait_for_known_page(persisted.running_since)
        log_line(f"[STEP] Running scrape step: case={case_id}, page={category.value}")
        transition = PAGE_HANDLERS[category](document, case_id, self._today())
        if transition.state.status is ScrapeStatus.SUCCEEDED and config.SAVE_DETAIL_SNAPSHOTS:
            self._save_snapshot(case_id, html)
        return transition

    def _save_snapshot(self, case_id: str, html: str) -> None:
        try:
            save_snapshot(normalize_case_id(case_id), html)
        except OSError as exc:
            log_line(f"[STEP] Failed to save snapshot for case {case_id}: {exc}")

    def _errored(self, case_id: str, exc: Exception) -> ScrapeState:
        reason = str(exc) or type(exc).__name__
        return ScrapeState.errored(case_id, reason, error_code=error_code_for(exc))

    async def run_step(self) -> Optional[ScrapeState]:
        """Run one step for the current document and report the outcome.

        Returns the reported state, or ``None`` when this context has no
        active scrape.
        """

        persisted = await self._load()
        if persisted is None:
            log_line(f"[STEP] No active scrape state in {self.handle}.")
            return None

        action: Optional[Action] = None
        next_state = persisted.state
        if not persisted.state.is_terminal:
            try:
                transition = await self._decide(persisted)
                next_state, action = transition.state, transition.action
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                next_state = self._errored(persisted.state.case_id, exc)

        _scraper_event(
            "step",
            context=self.handle,
            case_id=next_state.case_id,
            from_status=persisted.state.status.value,
            to_status=next_state.status.value,
            action=getattr(action, "description", None),
            error=next_state.error,
        )
        # Persist before acting: the action may replace the document.
        current = PersistedStep(state=next_state, running_since=persisted.running_since)
        await self._publish(current)

        if action is not None:
            try:
                await self._context.perform(action)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                next_state = self._errored(next_state.case_id, exc)
                await self._publish(
                    PersistedStep(state=next_state, running_since=persisted.running_since)
                )
        return next_state


__all__ = [
    "StepMachine",
    "Transition",
    "PersistedStep",
    "PAGE_HANDLERS",
    "handle_welcome",
    "handle_search_form",
    "handle_results_listing",
    "handle_case_detail",
]
