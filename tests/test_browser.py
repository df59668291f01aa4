import asyncio
from typing import Any, Callable, Optional

import pytest
from playwright.async_api import Error as PlaywrightError

from courtviewer.scraper.browser import PlaywrightContextFactory, PlaywrightNavigationContext
from courtviewer.scraper.errors import NavigationFailure
from courtviewer.scraper.navigation import Click, FillAndSubmit


class _Locator:
    def __init__(self, page: "_Page", selector: str, has_text: Any = None) -> None:
        self._page = page
        self._selector = selector
        self._has_text = has_text

    def filter(self, *, has_text: Any = None) -> "_Locator":
        return _Locator(self._page, self._selector, has_text)

    @property
    def first(self) -> "_Locator":
        return self

    async def click(self, timeout: Optional[float] = None) -> None:
        if self._page.fail_clicks:
            raise PlaywrightError("element not found")
        pattern = self._has_text.pattern if self._has_text is not None else None
        self._page.calls.append(("click", self._selector, pattern))


class _Page:
    def __init__(self) -> None:
        self.handlers: dict[str, Callable[[Any], None]] = {}
        self.calls: list[tuple] = []
        self.storage: dict[str, str] = {}
        self.fail_clicks = False

    def on(self, event: str, handler: Callable[[Any], None]) -> None:
        self.handlers[event] = handler

    async def goto(self, url: str, **_kwargs: Any) -> None:
        if url.startswith("bad:"):
            raise PlaywrightError("net::ERR_NAME_NOT_RESOLVED")
        self.calls.append(("goto", url))
        self.handlers["load"](self)

    async def content(self) -> str:
        return "<html></html>"

    async def evaluate(self, script: str, arg: Any) -> Any:
        if isinstance(arg, list):
            key, value = arg
            self.storage[key] = value
            return None
        return self.storage.get(arg)

    async def fill(self, selector: str, value: str, timeout: Optional[float] = None) -> None:
        self.calls.append(("fill", selector, value))

    def locator(self, selector: str) -> _Locator:
        return _Locator(self, selector)


class _BrowserContext:
    def __init__(self) -> None:
        self.closed = 0

    async def close(self) -> None:
        self.closed += 1


def _context() -> tuple[PlaywrightNavigationContext, _Page, _BrowserContext]:
    page = _Page()
    browser_context = _BrowserContext()
    return PlaywrightNavigationContext("ctx-1", browser_context, page), page, browser_context


def test_load_events_run_callbacks_and_errors_map_to_navigation_failure() -> None:
    async def _run() -> list[str]:
        context, page, _ = _context()
        loads: list[str] = []

        async def _on_load() -> None:
            loads.append(await context.html())

        context.on_load(_on_load)
        await context.goto("https://records.example/eaccess/home.page")
        await asyncio.sleep(0)
        with pytest.raises(NavigationFailure, match="ERR_NAME_NOT_RESOLVED"):
            await context.goto("bad://nowhere")
        return loads

    assert asyncio.run(_run()) == ["<html></html>"]


def test_session_storage_round_trip() -> None:
    async def _run() -> Optional[str]:
        context, _, _ = _context()
        await context.session_set("key", "value")
        return await context.session_get("key")

    assert asyncio.run(_run()) == "value"


def test_perform_actions() -> None:
    async def _run() -> list[tuple]:
        context, page, _ = _context()
        await context.perform(Click(selector="a", text_pattern=r"search\s*cases"))
        await context.perform(
            FillAndSubmit(input_selector="input#case", value="3AN-25-08095CR", submit_selector="input.go")
        )
        page.fail_clicks = True
        with pytest.raises(NavigationFailure):
            await context.perform(Click(selector="a.missing"))
        return page.calls

    assert asyncio.run(_run()) == [
        ("click", "a", r"search\s*cases"),
        ("fill", "input#case", "3AN-25-08095CR"),
        ("click", "input.go", None),
    ]


def test_close_notifies_once() -> None:
    async def _run() -> tuple[int, list[str]]:
        context, page, browser_context = _context()
        closes: list[str] = []
        context.on_close(lambda: closes.append("closed"))
        await context.close()
        await context.close()
        page.handlers["close"](page)
        return browser_context.closed, closes

    assert asyncio.run(_run()) == (1, ["closed"])


def test_factory_open_requires_start() -> None:
    with pytest.raises(NavigationFailure, match="not running"):
        asyncio.run(PlaywrightContextFactory(headless=True).open("ctx-1"))
