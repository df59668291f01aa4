"""Navigation contexts: one isolated browsing session per scrape job.

A context loads one document at a time, keeps a session-scoped key/value
store that survives document reloads (but not closing the context), and
performs the externally visible actions the step machine decides on.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

LoadCallback = Callable[[], Awaitable[None]]
CloseCallback = Callable[[], None]


@dataclass(frozen=True)
class Click:
    """Click the first element matching ``selector`` (and ``text_pattern``)."""

    selector: str
    text_pattern: Optional[str] = None
    description: str = ""


@dataclass(frozen=True)
class FillAndSubmit:
    """Type ``value`` into ``input_selector`` then click ``submit_selector``."""

    input_selector: str
    value: str
    submit_selector: str
    description: str = ""


Action = Union[Click, FillAndSubmit]


class NavigationContext(abc.ABC):
    """Interface the orchestrator and step machine use to drive one session."""

    def __init__(self, handle: str) -> None:
        self.handle = handle
        self._load_callbacks: list[LoadCallback] = []
        self._close_callbacks: list[CloseCallback] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def on_load(self, callback: LoadCallback) -> None:
        """Register a coroutine function run after every document load."""

        self._load_callbacks.append(callback)

    def on_close(self, callback: CloseCallback) -> None:
        """Register a callback run once when the context goes away, for any reason."""

        self._close_callbacks.append(callback)

    def _notify_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        for callback in list(self._close_callbacks):
            callback()

    @abc.abstractmethod
    async def goto(self, url: str) -> None:
        """Navigate to ``url`` and wait for the document to load."""

    @abc.abstractmethod
    async def html(self) -> str:
        """Return the current document's HTML.

        Raises :class:`~courtviewer.scraper.errors.NavigationFailure` when the
        document is unavailable, e.g. while a navigation is in flight.
        """

    @abc.abstractmethod
    async def session_get(self, key: str) -> Optional[str]:
        ...

    @abc.abstractmethod
    async def session_set(self, key: str, value: str) -> None:
        ...

    @abc.abstractmethod
    async def perform(self, action: Action) -> None:
        ...

    @abc.abstractmethod
    async def close(self) -> None:
        """Close the context; safe to call on an already closed context."""


class ContextFactory(abc.ABC):
    """Opens navigation contexts; owned by whoever owns the browser."""

    async def start(self) -> None:
        """Acquire shared resources (e.g. launch the browser)."""

    async def stop(self) -> None:
        """Release whatever :meth:`start` acquired."""

    async def __aenter__(self) -> "ContextFactory":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    @abc.abstractmethod
    async def open(self, handle: str) -> NavigationContext:
        ...


__all__ = [
    "Action",
    "Click",
    "FillAndSubmit",
    "NavigationContext",
    "ContextFactory",
]
