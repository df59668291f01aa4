"""Background scrape service.

Runs the orchestrator, the message bus and the browser on a private event
loop in a daemon thread, and exposes a blocking facade for the Flask app
and the CLI.
"""
from __future__ import annotations

import asyncio
import concurrent.futures
import threading
from typing import Any, Callable, Coroutine, Optional

from . import config, store
from .bus import GetStatus, MessageBus, ScrapeAll, StartScrape
from .browser import PlaywrightContextFactory
from .navigation import ContextFactory
from .orchestrator import CaseStore, Orchestrator
from .utils import log_line

UI_SENDER = "ui"


class ScrapeService:
    def __init__(
        self,
        *,
        factory_builder: Callable[[], ContextFactory] = PlaywrightContextFactory,
        case_store: CaseStore = store,  # type: ignore[assignment]
        **orchestrator_options: Any,
    ) -> None:
        self._factory_builder = factory_builder
        self._store = case_store
        self._options = orchestrator_options
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()
        self._startup_error: Optional[BaseException] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_event: Optional[asyncio.Event] = None
        self.bus: Optional[MessageBus] = None
        self.orchestrator: Optional[Orchestrator] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and self._ready.is_set()

    def start(self, timeout: float = 30.0) -> "ScrapeService":
        """Start the background loop; returns once the browser is up.

        Raises ``RuntimeError`` when startup fails or takes longer than
        ``timeout`` seconds.
        """

        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._ready.clear()
                self._startup_error = None
                self._thread = threading.Thread(
                    target=self._run_loop, name="courtviewer-scrape-service", daemon=True
                )
                self._thread.start()

        if not self._ready.wait(timeout):
            raise RuntimeError("Scrape service did not start in time")
        if self._startup_error is not None:
            raise RuntimeError(f"Scrape service failed to start: {self._startup_error}")
        return self

    def _run_loop(self) -> None:
        try:
            asyncio.run(self._main())
        except Exception as exc:  # noqa: BLE001
            log_line(f"Scrape service loop crashed: {exc}")
            self._startup_error = self._startup_error or exc
            self._ready.set()

    async def _main(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        factory = self._factory_builder()
        try:
            await factory.start()
        except Exception as exc:  # noqa: BLE001
            self._startup_error = exc
            self._ready.set()
            return

        self.bus = MessageBus()
        self.orchestrator = Orchestrator(self.bus, self._store, factory, **self._options)
        runner = asyncio.create_task(self.orchestrator.run())
        log_line("Scrape service started")
        self._ready.set()
        try:
            await self._stop_event.wait()
        finally:
            await self.orchestrator.shutdown()
            runner.cancel()
            await asyncio.gather(runner, return_exceptions=True)
            await factory.stop()
            log_line("Scrape service stopped")

    def _submit(self, coro: Coroutine[Any, Any, Any], timeout: Optional[float]) -> Any:
        if not self.running or self._loop is None:
            coro.close()
            raise RuntimeError("Scrape service is not running")
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError as exc:
            future.cancel()
            raise RuntimeError("Scrape service did not respond in time") from exc

    def _request(self, message: Any, timeout: Optional[float] = None) -> Any:
        if self.bus is None:
            raise RuntimeError("Scrape service is not running")
        if timeout is None:
            timeout = config.SERVICE_REQUEST_TIMEOUT_SECONDS
        return self._submit(self.bus.request(message, sender=UI_SENDER), timeout)

    def start_scrape(self, case_id: str, keep_context_open: bool = False) -> dict[str, Any]:
        return self._request(StartScrape(case_id=case_id, keep_context_open=keep_context_open))

    def scrape_all(self) -> dict[str, int]:
        # Admissions are staggered, so allow for one delay per stored case.
        budget = config.SERVICE_REQUEST_TIMEOUT_SECONDS + config.STAGGER_DELAY_SECONDS * len(
            self._store.list_case_ids()
        )
        return self._request(ScrapeAll(), timeout=budget)

    def status(self) -> dict[str, Any]:
        return self._request(GetStatus())

    def wait_until_idle(self, timeout: Optional[float] = None) -> None:
        """Block until every active and queued job has finished."""

        if self.orchestrator is None:
            raise RuntimeError("Scrape service is not running")
        self._submit(
            self.orchestrator.wait_until_idle(timeout),
            None if timeout is None else timeout + 1,
        )

    def stop(self, timeout: float = 30.0) -> None:
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            if self._loop is not None and self._stop_event is not None and thread.is_alive():
                self._loop.call_soon_threadsafe(self._stop_event.set)
            thread.join(timeout)
            self._thread = None
            self._loop = None


_SERVICE: Optional[ScrapeService] = None
_SERVICE_LOCK = threading.Lock()


def get_service() -> ScrapeService:
    """Return the process-wide service, starting it on first use."""

    global _SERVICE
    with _SERVICE_LOCK:
        if _SERVICE is None:
            _SERVICE = ScrapeService()
        service = _SERVICE
    if not service.running:
        service.start()
    return service


__all__ = ["ScrapeService", "get_service"]
