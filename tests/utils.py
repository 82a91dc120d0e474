"""Test utilities shared across the trawl tests.

This module provides the Beetle Bazaar selector strategies, result
collection callbacks, and fake page collaborators for exercising
pagination and concurrency without a browser.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from contextlib import asynccontextmanager
from typing import Any

from trawl.common.exceptions import PageAccessFault
from trawl.common.lxml_page import LxmlPage
from trawl.common.postprocess import normalize_url, parse_price
from trawl.common.probes import (
    AttributeContains,
    AttributeEquals,
    SelectorStrategy,
    Structural,
)
from trawl.data_types import FieldSpec, LoadSignal, Pick

logger = logging.getLogger(__name__)

# =============================================================================
# Beetle Bazaar strategies
# =============================================================================

TITLE = SelectorStrategy(
    AttributeEquals("data-testid", "product-title"),
    AttributeContains("class", "product-title", tag="h1"),
    Structural("h1", ancestor="main"),
    description="product title",
)

PRICE = SelectorStrategy(
    AttributeEquals("data-testid", "price"),
    AttributeContains("class", "price", tag="span", excluding="original"),
    Structural("span", ancestor=".buy-box"),
    description="current price",
)

ORIGINAL_PRICE = SelectorStrategy(
    AttributeEquals("data-testid", "original-price"),
    AttributeContains("class", "price-original"),
    description="original price",
)

GALLERY = SelectorStrategy(
    AttributeEquals("data-testid", "gallery-image", tag="img"),
    Structural("img", ancestor=".gallery"),
    description="gallery images",
)

PRODUCT_LINKS = SelectorStrategy(
    AttributeContains("class", "product-link", tag="a"),
    Structural("a", ancestor=".product-card"),
    description="product links",
)

PRODUCT_CARDS = SelectorStrategy(
    AttributeEquals("data-testid", "product-card"),
    Structural("article", descendant="a"),
    description="product cards",
)


def shop_fields() -> list[FieldSpec]:
    """Field specs for a Beetle Bazaar product page."""
    return [
        FieldSpec("title", TITLE, required=True),
        FieldSpec("price", PRICE, processor=parse_price),
        FieldSpec("original_price", ORIGINAL_PRICE, processor=parse_price),
        FieldSpec(
            "images",
            GALLERY,
            attribute="src",
            processor=normalize_url,
            pick=Pick.ALL,
        ),
    ]


# =============================================================================
# Result collection
# =============================================================================


def collect_results_async() -> tuple[
    Callable[[Any], Awaitable[None]], list[Any]
]:
    """Create an async callback that collects results in a list.

    Returns:
        A tuple of (async_callback_function, results_list).
        The callback appends each result to the results list, which can be
        inspected after the run.

    Example:
        callback, results = collect_results_async()
        coordinator = TraversalCoordinator(..., on_result=callback)
        await coordinator.run(seeds, budget)
        assert len(results) > 0
    """
    results: list[Any] = []

    async def callback(data: Any) -> None:
        results.append(data)

    return callback, results


# =============================================================================
# Simulated listing
# =============================================================================


def simulated_listing_html(item_count: int, control: bool) -> str:
    cards = "".join(
        f'<article data-testid="product-card">'
        f'<a class="product-link" href="/products/GEN-{i:03d}">Item {i}</a>'
        f"</article>"
        for i in range(1, item_count + 1)
    )
    button = '<button type="button">Load More</button>' if control else ""
    return (
        f"<html><body><main><section>{cards}</section>{button}</main>"
        f"</body></html>"
    )


class SimulatedListingPage:
    """A listing page that grows when its control is clicked or scrolled.

    Probes are interpreted by an LxmlPage rebuilt after every change, so the
    real probe semantics apply. ``growth`` gives the number of items added
    by each successive activation or scroll; once it runs out, further
    steps add nothing. An int grows forever by that amount. With
    ``reveal_after`` the page shows nothing for that many seconds, like a
    listing painted by client-side script.

    Attributes:
        items: Current item count.
        activations: Number of successful control activations.
        scrolls: Number of scroll requests.
        keys_pressed: Keys sent with press_key, in order.
    """

    def __init__(
        self,
        initial: int = 10,
        growth: list[int] | tuple[int, ...] | int = (),
        control: bool = True,
        hide_control_when_exhausted: bool = False,
        control_disabled: bool = False,
        url: str = "http://shop.example/listing",
        reveal_after: float = 0.0,
    ) -> None:
        self.items = initial
        self.growth = growth
        self.control = control
        self.hide_control_when_exhausted = hide_control_when_exhausted
        self.control_disabled = control_disabled
        self.url = url
        self.activations = 0
        self.scrolls = 0
        self.keys_pressed: list[str] = []
        self._reveal_at = time.monotonic() + reveal_after
        self._blank = LxmlPage.from_html(simulated_listing_html(0, False), url)
        self._render()

    def _render(self) -> None:
        html = simulated_listing_html(self.items, self.control)
        if self.control_disabled:
            html = html.replace("<button ", "<button disabled ")
        self._page = LxmlPage.from_html(html, self.url)

    def _grow(self) -> None:
        step = self.activations + self.scrolls
        if isinstance(self.growth, int):
            self.items += self.growth
        elif step <= len(self.growth):
            self.items += self.growth[step - 1]
            if step == len(self.growth) and self.hide_control_when_exhausted:
                self.control = False
        self._render()

    async def wait_for_load_signal(
        self, kind: LoadSignal, timeout: float
    ) -> bool:
        return True

    async def query_nodes(self, probe: Any) -> list[Any]:
        if time.monotonic() < self._reveal_at:
            return await self._blank.query_nodes(probe)
        return await self._page.query_nodes(probe)

    async def read_text(self, node: Any) -> str | None:
        return await self._page.read_text(node)

    async def read_attribute(self, node: Any, name: str) -> str | None:
        return await self._page.read_attribute(node, name)

    async def is_interactable(self, node: Any, timeout: float) -> bool:
        return await self._page.is_interactable(node, timeout)

    async def activate(self, node: Any, timeout: float) -> bool:
        self.activations += 1
        self._grow()
        return True

    async def current_url(self) -> str:
        return self.url

    async def measure_content_extent(self) -> int:
        return await self._page.measure_content_extent()

    async def request_scroll_to_end(self) -> None:
        self.scrolls += 1
        self._grow()

    async def press_key(self, key: str) -> bool:
        self.keys_pressed.append(key)
        return True


# =============================================================================
# Page sources
# =============================================================================


class TrackingPageSource:
    """PageSource over prebuilt pages that records concurrency.

    Each open yields to the event loop for ``delay`` seconds so that
    workers genuinely interleave.

    Attributes:
        opened: Every URL opened, in order.
        max_concurrent: Highest number of pages open at once.
    """

    def __init__(
        self,
        pages: Mapping[str, str],
        delay: float = 0.01,
        listings: Mapping[str, Any] | None = None,
        faults: set[str] | None = None,
    ) -> None:
        self.pages = dict(pages)
        self.delay = delay
        self.listings = dict(listings or {})
        self.faults = faults or set()
        self.opened: list[str] = []
        self.max_concurrent = 0
        self._open_count = 0

    @asynccontextmanager
    async def open(self, url: str) -> AsyncIterator[Any]:
        self.opened.append(url)
        if url in self.faults:
            raise PageAccessFault(url, "Connection reset")
        self._open_count += 1
        self.max_concurrent = max(self.max_concurrent, self._open_count)
        try:
            await asyncio.sleep(self.delay)
            if url in self.listings:
                yield self.listings[url]
            elif url in self.pages:
                yield LxmlPage.from_html(self.pages[url], url)
            else:
                raise PageAccessFault(url, "No such page")
        finally:
            self._open_count -= 1
