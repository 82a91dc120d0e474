"""Page access protocols.

The engine never touches a browser or an HTML parser directly. It talks to a
PageAccess collaborator, which interprets probes against whatever backs the
page (a parsed lxml snapshot or a live Playwright page), and to a PageSource,
which opens pages by URL.

Node handles are opaque to the engine: it only passes them back to the same
PageAccess that produced them.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from trawl.common.probes import Probe
    from trawl.data_types import LoadSignal

NodeHandle = Any


class PageAccess(Protocol):
    """Protocol for reading and driving one open page.

    Implementations must return nodes in document order and must not raise
    for "nothing matched"; an empty list is the answer. Bounded waits that
    expire either return the negative answer or raise ProbeTimeout.
    Unrecoverable faults are raised as PageAccessFault.
    """

    async def wait_for_load_signal(
        self, kind: LoadSignal, timeout: float
    ) -> bool:
        """Wait for a readiness signal.

        Args:
            kind: The signal to wait for.
            timeout: Maximum wait in seconds.

        Returns:
            True if the signal arrived, False if the wait timed out.
        """
        ...

    async def query_nodes(self, probe: Probe) -> list[NodeHandle]:
        """Return the nodes matching a probe, in document order."""
        ...

    async def read_text(self, node: NodeHandle) -> str | None:
        """Return the node's whitespace-normalized text content."""
        ...

    async def read_attribute(
        self, node: NodeHandle, name: str
    ) -> str | None:
        """Return an attribute value, or None if the attribute is missing."""
        ...

    async def is_interactable(self, node: NodeHandle, timeout: float) -> bool:
        """Whether the node is (or becomes, within timeout) visible and enabled."""
        ...

    async def activate(self, node: NodeHandle, timeout: float) -> bool:
        """Click the node. Returns False if the activation failed."""
        ...

    async def current_url(self) -> str:
        """The page's current URL, used as the base for relative links."""
        ...

    async def measure_content_extent(self) -> int:
        """Total scrollable content height in pixels (or an equivalent)."""
        ...

    async def request_scroll_to_end(self) -> None:
        """Ask the page to scroll to the bottom of its content."""
        ...

    async def press_key(self, key: str) -> bool:
        """Send a key press to the focused element. False if not delivered."""
        ...


class PageSource(Protocol):
    """Protocol for opening pages by URL.

    Example::

        async with source.open("https://shop.example/products") as page:
            url = await page.current_url()
    """

    def open(self, url: str) -> AbstractAsyncContextManager[PageAccess]:
        """Open a page.

        Args:
            url: Absolute URL to open.

        Returns:
            An async context manager yielding the PageAccess. The page is
            released when the context exits.

        Raises:
            PageAccessFault: If the page cannot be opened.
        """
        ...
