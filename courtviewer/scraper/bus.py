"""In-process message bus between callers, the orchestrator and the contexts.

The orchestrator consumes a single FIFO inbox, so messages from one context
are observed in the order they were posted. Commands travel the other way:
each navigation context registers one handler under its handle.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

from .errors import NavigationFailure
from .states import ScrapeState


# Caller -> orchestrator
@dataclass(frozen=True)
class StartScrape:
    case_id: str
    keep_context_open: bool = False


@dataclass(frozen=True)
class ScrapeAll:
    pass


@dataclass(frozen=True)
class GetStatus:
    pass


# Context -> orchestrator
@dataclass(frozen=True)
class StateChange:
    state: ScrapeState


@dataclass(frozen=True)
class ContextClosed:
    pass


# Orchestrator -> itself (timer)
@dataclass(frozen=True)
class JobTimeout:
    case_id: str
    job_id: str


# Orchestrator -> context
@dataclass(frozen=True)
class BeginScrape:
    case_id: str


Message = Union[StartScrape, ScrapeAll, GetStatus, StateChange, ContextClosed, JobTimeout]
Command = BeginScrape
CommandHandler = Callable[[Command], Awaitable[Any]]


@dataclass
class Envelope:
    message: Message
    sender: Optional[str] = None
    reply: Optional[asyncio.Future] = field(default=None, repr=False)

    def respond(self, value: Any) -> None:
        if self.reply is not None and not self.reply.done():
            self.reply.set_result(value)

    def fail(self, exc: BaseException) -> None:
        if self.reply is not None and not self.reply.done():
            self.reply.set_exception(exc)


class MessageBus:
    def __init__(self) -> None:
        self._inbox: asyncio.Queue[Envelope] = asyncio.Queue()
        self._handlers: dict[str, CommandHandler] = {}

    def post(self, message: Message, *, sender: Optional[str] = None) -> None:
        """Fire-and-forget delivery to the orchestrator."""

        self._inbox.put_nowait(Envelope(message=message, sender=sender))

    async def request(self, message: Message, *, sender: Optional[str] = None) -> Any:
        """Deliver ``message`` and wait for the orchestrator's response."""

        reply: asyncio.Future = asyncio.get_running_loop().create_future()
        await self._inbox.put(Envelope(message=message, sender=sender, reply=reply))
        return await reply

    async def next_envelope(self) -> Envelope:
        return await self._inbox.get()

    def register_handler(self, handle: str, handler: CommandHandler) -> None:
        self._handlers[handle] = handler

    def unregister_handler(self, handle: str) -> None:
        self._handlers.pop(handle, None)

    async def send_command(self, handle: str, command: Command) -> Any:
        """Deliver ``command`` to the context registered under ``handle``.

        Raises :class:`NavigationFailure` when no context is listening, e.g.
        because it was closed or its page went away.
        """

        handler = self._handlers.get(handle)
        if handler is None:
            raise NavigationFailure(f"No step machine listening on context {handle}")
        return await handler(command)


__all__ = [
    "StartScrape",
    "ScrapeAll",
    "GetStatus",
    "StateChange",
    "ContextClosed",
    "JobTimeout",
    "BeginScrape",
    "Envelope",
    "MessageBus",
]
