"""Playwright-backed page collaborators for JavaScript-heavy websites.

PlaywrightPage interprets probes against a live browser page using
Playwright locators; node handles are single-element locators. Unlike a
static snapshot it can click "load more" controls and scroll, so both
pagination strategies work against it.

Browser errors are wrapped in PageAccessFault; bounded waits that expire
return the negative answer instead of raising.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from playwright.async_api import (
    BrowserContext,
    Locator,
    Page,
    async_playwright,
)
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import (
    TimeoutError as PlaywrightTimeoutError,
)

from trawl.common.exceptions import PageAccessFault
from trawl.common.probes import (
    AttributeContains,
    AttributeEquals,
    Probe,
    RoleMatch,
    Structural,
    TextMatch,
)
from trawl.data_types import LoadSignal

logger = logging.getLogger(__name__)

_SCROLL_HEIGHT = "() => document.body ? document.body.scrollHeight : 0"
_SCROLL_TO_END = "() => window.scrollTo(0, document.body.scrollHeight)"


def _ms(seconds: float) -> float:
    return seconds * 1000.0


class PlaywrightPage:
    """PageAccess over a live Playwright page."""

    def __init__(self, page: Page) -> None:
        self._page = page

    def _locator(self, probe: Probe) -> Locator:
        match probe:
            case AttributeEquals() | AttributeContains():
                return self._page.locator(probe.css)
            case Structural():
                css = probe.css
                if probe.descendant:
                    css = f"{css}:has({probe.descendant})"
                return self._page.locator(css)
            case RoleMatch():
                if probe.name is None:
                    return self._page.get_by_role(probe.role)  # type: ignore[arg-type]
                return self._page.get_by_role(
                    probe.role,  # type: ignore[arg-type]
                    name=re.compile(probe.name, re.IGNORECASE),
                )
            case TextMatch():
                # :text-matches() selects the smallest element containing
                # the text, which gives innermost-match semantics.
                return self._page.locator(
                    f"{probe.tag}:text-matches({json.dumps(probe.pattern)}, \"i\")"
                )
            case _:
                raise TypeError(f"Unknown probe type: {type(probe).__name__}")

    async def wait_for_load_signal(
        self, kind: LoadSignal, timeout: float
    ) -> bool:
        try:
            await self._page.wait_for_load_state(
                kind.value,  # type: ignore[arg-type]
                timeout=_ms(timeout),
            )
        except PlaywrightTimeoutError:
            logger.debug(f"Load signal {kind.value} timed out on {self._page.url}")
            return False
        except PlaywrightError as e:
            raise PageAccessFault(
                self._page.url, f"Load wait failed: {e}", {"signal": kind.value}
            ) from e
        return True

    async def query_nodes(self, probe: Probe) -> list[Locator]:
        locator = self._locator(probe)
        try:
            count = await locator.count()
        except PlaywrightError as e:
            raise PageAccessFault(
                self._page.url,
                f"Query failed: {e}",
                {"probe": probe.describe()},
            ) from e
        return [locator.nth(i) for i in range(count)]

    async def read_text(self, node: Locator) -> str | None:
        try:
            text = await node.text_content()
        except PlaywrightError as e:
            raise PageAccessFault(self._page.url, f"Read failed: {e}") from e
        if text is None:
            return None
        return " ".join(text.split())

    async def read_attribute(self, node: Locator, name: str) -> str | None:
        try:
            return await node.get_attribute(name)
        except PlaywrightError as e:
            raise PageAccessFault(self._page.url, f"Read failed: {e}") from e

    async def is_interactable(self, node: Locator, timeout: float) -> bool:
        try:
            # A zero timeout means "wait forever" to Playwright.
            if timeout > 0:
                await node.wait_for(state="visible", timeout=_ms(timeout))
            elif not await node.is_visible():
                return False
            return await node.is_enabled(timeout=_ms(max(timeout, 0.05)))
        except PlaywrightError as e:
            # Expired waits and detached nodes alike
            logger.debug(f"Node not interactable on {self._page.url}: {e}")
            return False

    async def activate(self, node: Locator, timeout: float) -> bool:
        try:
            await node.click(timeout=_ms(timeout))
        except PlaywrightError as e:
            # TimeoutError subclasses Error
            logger.debug(f"Click failed on {self._page.url}: {e}")
            return False
        return True

    async def current_url(self) -> str:
        return self._page.url

    async def measure_content_extent(self) -> int:
        return int(await self._evaluate(_SCROLL_HEIGHT))

    async def request_scroll_to_end(self) -> None:
        await self._evaluate(_SCROLL_TO_END)

    async def press_key(self, key: str) -> bool:
        try:
            await self._page.keyboard.press(key)
        except PlaywrightError as e:
            logger.debug(f"Key press {key} failed on {self._page.url}: {e}")
            return False
        return True

    async def _evaluate(self, script: str) -> Any:
        try:
            return await self._page.evaluate(script)
        except PlaywrightError as e:
            raise PageAccessFault(
                self._page.url, f"Script failed: {e}", {"script": script}
            ) from e


class PlaywrightPageSource:
    """PageSource opening each URL in a fresh tab of one browser context.

    Example:
        async with PlaywrightPageSource.launch(headless=True) as source:
            summary = await run_extraction(seeds, fields, budget,
                                           page_source=source, ...)
    """

    def __init__(
        self,
        browser_context: BrowserContext,
        navigation_timeout: float = 60.0,
    ) -> None:
        self.browser_context = browser_context
        self.navigation_timeout = navigation_timeout

    @asynccontextmanager
    async def open(self, url: str) -> AsyncIterator[PlaywrightPage]:
        try:
            page = await self.browser_context.new_page()
        except PlaywrightError as e:
            raise PageAccessFault(url, f"Could not open a tab: {e}") from e
        try:
            try:
                await page.goto(
                    url,
                    wait_until="domcontentloaded",
                    timeout=_ms(self.navigation_timeout),
                )
            except PlaywrightError as e:
                raise PageAccessFault(url, f"Navigation failed: {e}") from e
            yield PlaywrightPage(page)
        finally:
            try:
                await page.close()
            except PlaywrightError as e:
                logger.warning(f"Could not close tab for {url}: {e}")

    @classmethod
    @asynccontextmanager
    async def launch(
        cls,
        browser_type: str = "chromium",
        headless: bool = True,
        viewport: dict[str, int] | None = None,
        user_agent: str | None = None,
        locale: str = "en-US",
        navigation_timeout: float = 60.0,
    ) -> AsyncIterator[PlaywrightPageSource]:
        """Start Playwright, launch a browser and yield a page source.

        Args:
            browser_type: "chromium", "firefox", or "webkit".
            headless: Run browser in headless mode.
            viewport: Browser viewport size (default: 1280x800).
            user_agent: Custom user agent string (default: browser default).
            locale: Browser locale.
            navigation_timeout: Seconds allowed for each navigation.

        Yields:
            A PlaywrightPageSource bound to a fresh browser context.
        """
        if viewport is None:
            viewport = {"width": 1280, "height": 800}

        playwright = await async_playwright().start()
        try:
            browser_launcher = getattr(playwright, browser_type)
            browser = await browser_launcher.launch(headless=headless)
            try:
                context_kwargs: dict[str, Any] = {
                    "viewport": viewport,
                    "locale": locale,
                }
                if user_agent:
                    context_kwargs["user_agent"] = user_agent
                browser_context = await browser.new_context(**context_kwargs)
                try:
                    yield cls(browser_context, navigation_timeout)
                finally:
                    await browser_context.close()
            finally:
                await browser.close()
        finally:
            await playwright.stop()
