"""HTTP page source for static websites.

HttpPageSource fetches pages with httpx and hands each one to the engine as
an LxmlPage snapshot. It is the lightweight alternative to
PlaywrightPageSource for sites that render server-side: probes, extraction
and link collection work the same, but pagination over a snapshot terminates
on its first step.

The page source is responsible for:
- Maintaining the HTTP client (httpx.AsyncClient)
- Turning transport failures and server errors into PageAccessFault
- Parsing the response body into an LxmlPage
"""

from __future__ import annotations

import logging
import ssl
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

import httpx

from trawl.common.exceptions import PageAccessFault
from trawl.common.lxml_page import LxmlPage

logger = logging.getLogger(__name__)

DEFAULT_HEADERS: dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


class HttpPageSource:
    """PageSource fetching pages over HTTP and parsing them with lxml.

    Example::

        async with HttpPageSource(timeout=30.0) as source:
            summary = await run_extraction(
                seeds, fields, budget, page_source=source, link_strategy=links
            )
    """

    def __init__(
        self,
        ssl_context: ssl.SSLContext | None = None,
        timeout: float | None = 30.0,
        headers: Mapping[str, str] | None = None,
        follow_redirects: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the page source.

        Args:
            ssl_context: Optional SSL context for HTTPS connections. Use this
                for servers requiring specific cipher suites.
            timeout: Request timeout in seconds. None means no timeout.
            headers: Extra request headers, merged over DEFAULT_HEADERS.
            follow_redirects: Whether redirects are followed. The snapshot
                URL is always the final URL.
            transport: Optional httpx transport (e.g. httpx.MockTransport).
        """
        self.timeout = timeout
        client_kwargs: dict[str, Any] = {
            "timeout": timeout,
            "headers": {**DEFAULT_HEADERS, **(headers or {})},
            "follow_redirects": follow_redirects,
        }
        if ssl_context:
            client_kwargs["verify"] = ssl_context
        if transport is not None:
            client_kwargs["transport"] = transport
        self._client = httpx.AsyncClient(**client_kwargs)

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> HttpPageSource:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def fetch(self, url: str) -> httpx.Response:
        """Fetch a URL.

        Raises:
            PageAccessFault: On timeout, transport error, or 5xx status.
        """
        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as e:
            raise PageAccessFault(
                url,
                "Request timed out",
                {"timeout_seconds": self.timeout},
            ) from e
        except httpx.HTTPError as e:
            raise PageAccessFault(url, f"Transport error: {e}") from e

        if response.status_code >= 500:
            raise PageAccessFault(
                url,
                "Server error",
                {"status_code": response.status_code},
            )
        if response.status_code >= 400:
            # Still parsed: the page simply won't yield required fields.
            logger.warning(
                f"HTTP {response.status_code} for {url}",
                extra={"status_code": response.status_code},
            )
        return response

    @asynccontextmanager
    async def open(self, url: str) -> AsyncIterator[LxmlPage]:
        response = await self.fetch(url)
        # Bytes, so lxml honours the document's own encoding declaration
        # when the headers name no charset.
        yield LxmlPage.from_html(
            response.content,
            str(response.url),
            encoding=response.charset_encoding,
        )
