"""Playwright-backed navigation contexts.

One Chromium instance is shared; each scrape job gets its own browser
context (separate cookies and session storage) with a single page.
"""
from __future__ import annotations

import asyncio
import re
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from . import config
from .errors import NavigationFailure
from .navigation import Action, Click, ContextFactory, FillAndSubmit, NavigationContext
from .utils import log_line

_SESSION_GET_JS = "key => window.sessionStorage.getItem(key)"
_SESSION_SET_JS = "([key, value]) => window.sessionStorage.setItem(key, value)"


class PlaywrightNavigationContext(NavigationContext):
    def __init__(self, handle: str, browser_context: BrowserContext, page: Page) -> None:
        super().__init__(handle)
        self._browser_context = browser_context
        self._page = page
        self._pending: set[asyncio.Future] = set()
        page.on("load", self._handle_load)
        page.on("close", self._handle_close)

    def _handle_load(self, _page: Page) -> None:
        for callback in list(self._load_callbacks):
            future = asyncio.ensure_future(callback())
            self._pending.add(future)
            future.add_done_callback(self._pending.discard)

    def _handle_close(self, _page: Page) -> None:
        self._notify_closed()

    async def goto(self, url: str) -> None:
        try:
            await self._page.goto(
                url,
                wait_until="load",
                timeout=config.PLAYWRIGHT_NAV_TIMEOUT_SECONDS * 1000,
            )
        except PlaywrightError as exc:
            raise NavigationFailure(f"Failed to load {url}: {exc}") from exc

    async def html(self) -> str:
        try:
            return await self._page.content()
        except PlaywrightError as exc:
            raise NavigationFailure(f"Page content unavailable: {exc}") from exc

    async def session_get(self, key: str) -> Optional[str]:
        try:
            return await self._page.evaluate(_SESSION_GET_JS, key)
        except PlaywrightError as exc:
            raise NavigationFailure(f"sessionStorage read failed: {exc}") from exc

    async def session_set(self, key: str, value: str) -> None:
        try:
            await self._page.evaluate(_SESSION_SET_JS, [key, value])
        except PlaywrightError as exc:
            raise NavigationFailure(f"sessionStorage write failed: {exc}") from exc

    async def perform(self, action: Action) -> None:
        log_line(f"[BROWSER] {self.handle}: {action.description or action}")
        timeout = config.PLAYWRIGHT_CLICK_TIMEOUT_MS
        try:
            if isinstance(action, Click):
                locator = self._page.locator(action.selector)
                if action.text_pattern:
                    locator = locator.filter(
                        has_text=re.compile(action.text_pattern, re.IGNORECASE)
                    )
                await locator.first.click(timeout=timeout)
            elif isinstance(action, FillAndSubmit):
                await self._page.fill(action.input_selector, action.value, timeout=timeout)
                await self._page.locator(action.submit_selector).first.click(timeout=timeout)
            else:
                raise TypeError(f"Unsupported action: {action!r}")
        except PlaywrightError as exc:
            raise NavigationFailure(f"Action failed ({action.description}): {exc}") from exc

    async def close(self) -> None:
        if self.closed:
            return
        try:
            await self._browser_context.close()
        except PlaywrightError as exc:
            log_line(f"[BROWSER] Error closing context {self.handle}: {exc}")
        self._notify_closed()


class PlaywrightContextFactory(ContextFactory):
    """Launches Chromium once and opens an isolated context per job.

    Use as an async context manager, or call :meth:`start` and :meth:`stop`.
    """

    def __init__(self, *, headless: Optional[bool] = None, user_agent: Optional[str] = None) -> None:
        self._headless = config.HEADLESS if headless is None else headless
        self._user_agent = user_agent or config.USER_AGENT
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def start(self) -> None:
        if self._browser is not None:
            return
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self._headless)
        log_line(f"[BROWSER] Chromium launched (headless={self._headless})")

    async def stop(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as exc:
                log_line(f"[BROWSER] Error closing browser: {exc}")
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def open(self, handle: str) -> NavigationContext:
        if self._browser is None:
            raise NavigationFailure("Browser is not running")
        try:
            browser_context = await self._browser.new_context(
                user_agent=self._user_agent,
                locale="en-US",
            )
            browser_context.set_default_navigation_timeout(
                config.PLAYWRIGHT_NAV_TIMEOUT_SECONDS * 1000
            )
            page = await browser_context.new_page()
        except PlaywrightError as exc:
            raise NavigationFailure(f"Failed to open browser context: {exc}") from exc
        return PlaywrightNavigationContext(handle, browser_context, page)


__all__ = ["PlaywrightContextFactory", "PlaywrightNavigationContext"]
