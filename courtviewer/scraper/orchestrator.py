"""Scrape job orchestration.

The orchestrator owns every scrape job: it admits jobs up to the
concurrency ceiling, queues the rest in arrival order, arms a timeout per
job and persists terminal outcomes. It runs on a single event loop, so the
code between two ``await`` points is atomic; anything read after an
``await`` must be re-checked against the registry.
"""
from __future__ import annotations

import asyncio
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from . import config
from .bus import (
    BeginScrape,
    ContextClosed,
    Envelope,
    GetStatus,
    JobTimeout,
    MessageBus,
    ScrapeAll,
    StartScrape,
    StateChange,
)
from .error_codes import ErrorCode
from .logging_utils import _scraper_event, state_fields
from .navigation import ContextFactory, NavigationContext
from .pages import normalize_case_id
from .states import ScrapeState
from .step_machine import StepMachine
from .utils import log_line

TIMED_OUT_REASON = "timed out"
CONTEXT_CLOSED_REASON = "context closed before the scrape finished"


class CaseStore(Protocol):
    def list_case_ids(self) -> list[str]:
        ...

    def record_scrape_outcome(self, state: ScrapeState) -> bool:
        ...


@dataclass
class Job:
    case_id: str
    job_id: str
    handle: str
    keep_context_open: bool
    current_state: ScrapeState
    started_at: float = field(default_factory=time.time)
    context: Optional[NavigationContext] = None
    machine: Optional[StepMachine] = None
    timer: Optional[asyncio.TimerHandle] = None


class Orchestrator:
    def __init__(
        self,
        bus: MessageBus,
        store: CaseStore,
        factory: ContextFactory,
        *,
        max_concurrent: Optional[int] = None,
        job_timeout_seconds: Optional[float] = None,
        stagger_seconds: Optional[float] = None,
        entry_url: Optional[str] = None,
    ) -> None:
        self._bus = bus
        self._store = store
        self._factory = factory
        self._max_concurrent = max(
            1, config.MAX_CONCURRENT_JOBS if max_concurrent is None else max_concurrent
        )
        self._job_timeout = (
            config.JOB_TIMEOUT_SECONDS if job_timeout_seconds is None else job_timeout_seconds
        )
        self._stagger = config.STAGGER_DELAY_SECONDS if stagger_seconds is None else stagger_seconds
        self._entry_url = entry_url or config.COURT_URL

        self._jobs: dict[str, Job] = {}
        self._by_handle: dict[str, str] = {}
        # case_id -> keep_context_open, in arrival order
        self._backlog: "OrderedDict[str, bool]" = OrderedDict()
        self._tasks: set[asyncio.Task] = set()
        self._kept_open: list[NavigationContext] = []
        self._idle = asyncio.Event()
        self._idle.set()

    # ------------------------------------------------------------------
    # Bus loop

    async def run(self) -> None:
        """Consume bus messages forever, one task per message."""

        while True:
            envelope = await self._bus.next_envelope()
            self._spawn(self._dispatch(envelope))

    def _spawn(self, coro: Any) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _dispatch(self, envelope: Envelope) -> None:
        try:
            result = await self._handle(envelope)
        except asyncio.CancelledError:
            if envelope.reply is not None:
                envelope.reply.cancel()
            raise
        except Exception as exc:  # noqa: BLE001
            log_line(f"[ORCH] Failed to handle {type(envelope.message).__name__}: {exc}")
            envelope.fail(exc)
            return
        envelope.respond(result)

    async def _handle(self, envelope: Envelope) -> Any:
        message = envelope.message
        if isinstance(message, StartScrape):
            admitted = self.request_scrape(message.case_id, message.keep_context_open)
            return {"ok": True, "admitted": admitted}
        if isinstance(message, ScrapeAll):
            return await self.request_scrape_all()
        if isinstance(message, GetStatus):
            return {"active": self.get_status(), "queued": self.queued()}
        if isinstance(message, StateChange):
            await self._on_state_change(envelope.sender, message.state)
            return None
        if isinstance(message, ContextClosed):
            await self._on_context_closed(envelope.sender)
            return None
        if isinstance(message, JobTimeout):
            await self._on_timeout(message.case_id, message.job_id)
            return None
        raise ValueError(f"Unknown message type: {type(message).__name__}")

    # ------------------------------------------------------------------
    # Requests

    def request_scrape(self, case_id: str, keep_context_open: bool = False) -> bool:
        """Start a scrape of ``case_id`` now or queue it.

        Returns ``True`` when the job was admitted immediately. A case that
        is already running or queued is left alone.
        """

        case_id = normalize_case_id(case_id)
        if not case_id:
            raise ValueError("case_id is required")
        if case_id in self._jobs:
            _scraper_event("request", case_id=case_id, outcome="already_active")
            return False
        if len(self._jobs) < self._max_concurrent:
            self._admit(case_id, keep_context_open)
            return True
        if case_id not in self._backlog:
            self._backlog[case_id] = keep_context_open
            self._idle.clear()
            _scraper_event("queue", case_id=case_id, position=len(self._backlog))
        return False

    async def request_scrape_all(self) -> dict[str, int]:
        """Request a scrape of every stored case not already active or queued.

        Immediate admissions are spaced out by the stagger delay so that the
        portal is not hit by a burst of new sessions.
        """

        summary = {"admitted": 0, "queued": 0, "skipped": 0}
        for raw_case_id in self._store.list_case_ids():
            case_id = normalize_case_id(raw_case_id)
            if case_id in self._jobs or case_id in self._backlog:
                summary["skipped"] += 1
                continue
            if self.request_scrape(case_id):
                summary["admitted"] += 1
                await asyncio.sleep(self._stagger)
            else:
                summary["queued"] += 1
        _scraper_event("scrape_all", **summary)
        return summary

    def get_status(self) -> dict[str, str]:
        return {case_id: job.current_state.status.value for case_id, job in self._jobs.items()}

    def queued(self) -> list[str]:
        return list(self._backlog)

    @property
    def active_count(self) -> int:
        return len(self._jobs)

    async def wait_until_idle(self, timeout: Optional[float] = None) -> None:
        """Wait until no job is active or queued."""

        await asyncio.wait_for(self._idle.wait(), timeout)

    # ------------------------------------------------------------------
    # Job lifecycle

    def _admit(self, case_id: str, keep_context_open: bool) -> Job:
        job = Job(
            case_id=case_id,
            job_id=uuid.uuid4().hex,
            handle=f"ctx-{uuid.uuid4().hex[:12]}",
            keep_context_open=keep_context_open,
            current_state=ScrapeState.running(case_id),
        )
        # Reserve the slot before the first await.
        self._jobs[case_id] = job
        self._by_handle[job.handle] = case_id
        self._idle.clear()
        job.timer = asyncio.get_running_loop().call_later(
            self._job_timeout, self._bus.post, JobTimeout(case_id=case_id, job_id=job.job_id)
        )
        _scraper_event(
            "admit",
            case_id=case_id,
            job_id=job.job_id,
            handle=job.handle,
            active=len(self._jobs),
        )
        self._spawn(self._launch(job))
        return job

    def _is_current(self, job: Job) -> bool:
        return self._jobs.get(job.case_id) is job

    async def _launch(self, job: Job) -> None:
        try:
            context = await self._factory.open(job.handle)
            if not self._is_current(job):
                await self._close_quietly(context)
                return
            job.context = context
            job.machine = StepMachine(context, self._bus)
            job.machine.attach()
            context.on_close(lambda: self._bus.post(ContextClosed(), sender=job.handle))

            await context.goto(self._entry_url)
            if not self._is_current(job):
                return
            await self._bus.send_command(job.handle, BeginScrape(case_id=job.case_id))
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            if not self._is_current(job):
                return
            log_line(f"[ORCH] Could not start scrape of {job.case_id}: {exc}")
            await self._finish(
                job,
                ScrapeState.errored(
                    job.case_id,
                    f"Failed to start scrape: {exc}",
                    error_code=ErrorCode.NAVIGATION_FAILURE,
                ),
            )

    def _job_for_sender(self, sender: Optional[str]) -> Optional[Job]:
        case_id = self._by_handle.get(sender or "")
        return self._jobs.get(case_id) if case_id else None

    async def _on_state_change(self, sender: Optional[str], state: ScrapeState) -> None:
        job = self._job_for_sender(sender)
        if job is None or job.case_id != normalize_case_id(state.case_id):
            _scraper_event("ignored_report", handle=sender, **state_fields(state))
            return

        previous = job.current_state.status
        job.current_state = state
        _scraper_event(
            "transition",
            handle=job.handle,
            from_status=previous.value,
            **state_fields(state),
        )
        if state.is_terminal:
            await self._finish(job, state)

    async def _on_timeout(self, case_id: str, job_id: str) -> None:
        job = self._jobs.get(case_id)
        if job is None or job.job_id != job_id:
            return
        _scraper_event("timeout", case_id=case_id, job_id=job_id, seconds=self._job_timeout)
        await self._finish(
            job, ScrapeState.errored(case_id, TIMED_OUT_REASON, error_code=ErrorCode.JOB_TIMEOUT)
        )

    async def _on_context_closed(self, sender: Optional[str]) -> None:
        job = self._job_for_sender(sender)
        if job is None:
            return
        _scraper_event("context_closed", case_id=job.case_id, handle=job.handle)
        await self._finish(
            job,
            ScrapeState.errored(
                job.case_id, CONTEXT_CLOSED_REASON, error_code=ErrorCode.NAVIGATION_FAILURE
            ),
        )

    async def _finish(self, job: Job, state: ScrapeState) -> None:
        if not self._is_current(job):
            return

        del self._jobs[job.case_id]
        self._by_handle.pop(job.handle, None)
        if job.timer is not None:
            job.timer.cancel()
        job.current_state = state

        try:
            recorded = self._store.record_scrape_outcome(state)
        except Exception as exc:  # noqa: BLE001
            log_line(f"[ORCH] Failed to persist outcome for {job.case_id}: {exc}")
            recorded = False
        _scraper_event(
            "persist",
            recorded=recorded,
            duration_s=round(time.time() - job.started_at, 2),
            **state_fields(state),
        )

        # Drain before the close await so queued cases keep their FIFO position.
        self._drain_backlog()
        self._update_idle()

        if job.context is None:
            return
        if job.keep_context_open:
            self._kept_open.append(job.context)
        else:
            await self._close_quietly(job.context)

    def _drain_backlog(self) -> None:
        while self._backlog and len(self._jobs) < self._max_concurrent:
            case_id, keep_context_open = self._backlog.popitem(last=False)
            if case_id in self._jobs:
                continue
            self._admit(case_id, keep_context_open)

    def _update_idle(self) -> None:
        if not self._jobs and not self._backlog:
            self._idle.set()

    async def _close_quietly(self, context: NavigationContext) -> None:
        try:
            await context.close()
        except Exception as exc:  # noqa: BLE001
            log_line(f"[ORCH] Failed to close context {context.handle}: {exc}")

    async def shutdown(self) -> None:
        """Drop the backlog, close every open context and stop pending tasks."""

        self._backlog.clear()
        jobs = list(self._jobs.values())
        self._jobs.clear()
        self._by_handle.clear()
        contexts = [job.context for job in jobs if job.context is not None]
        contexts.extend(self._kept_open)
        self._kept_open.clear()
        for job in jobs:
            if job.timer is not None:
                job.timer.cancel()
        for context in contexts:
            await self._close_quietly(context)
        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current and not task.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._idle.set()


__all__ = ["Orchestrator", "Job", "CaseStore", "TIMED_OUT_REASON", "CONTEXT_CLOSED_REASON"]
