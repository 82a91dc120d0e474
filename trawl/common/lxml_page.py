"""LxmlPage: a PageAccess implementation over a parsed HTML snapshot.

This is the standard collaborator for static pages: the HTML is obtained
elsewhere (a fixture, an HTTP fetch, a serialized browser DOM) and parsed
once with lxml. Probes are interpreted with lxml's cssselect support.

A snapshot cannot be driven: activate() always fails and the content extent
never changes, so pagination over a snapshot terminates on its first step.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from functools import lru_cache

from cssselect import HTMLTranslator
from lxml import etree, html
from lxml.cssselect import CSSSelector
from lxml.html import HtmlElement

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

# CSS for elements carrying each role implicitly; explicit role attributes
# are handled by the trailing [role=...] alternative.
IMPLICIT_ROLES: dict[str, str] = {
    "button": (
        'button, input[type="button"], input[type="submit"], '
        'input[type="reset"], [role="button"]'
    ),
    "link": 'a[href], area[href], [role="link"]',
    "heading": 'h1, h2, h3, h4, h5, h6, [role="heading"]',
    "img": 'img, [role="img"]',
    "list": 'ul, ol, [role="list"]',
    "listitem": 'li, [role="listitem"]',
    "navigation": 'nav, [role="navigation"]',
    "dialog": 'dialog, [role="dialog"]',
    "textbox": (
        'input:not([type]), input[type="text"], textarea, [role="textbox"]'
    ),
}

_HIDDEN_STYLES = ("display:none", "visibility:hidden")


@lru_cache(maxsize=512)
def _compiled(css: str) -> CSSSelector:
    return CSSSelector(css, translator="html")


@lru_cache(maxsize=16)
def _parser(encoding: str | None) -> html.HTMLParser:
    return html.HTMLParser(encoding=encoding)


@lru_cache(maxsize=128)
def _descendant_xpath(css: str) -> etree.XPath:
    return etree.XPath(HTMLTranslator().css_to_xpath(css, prefix="descendant::"))


def normalize_space(text: str) -> str:
    return " ".join(text.split())


def accessible_name(element: HtmlElement) -> str:
    """Approximate accessible name: aria-label, text, then alt/value/title."""
    label = element.get("aria-label")
    if label:
        return normalize_space(label)
    text = normalize_space(element.text_content())
    if text:
        return text
    for attribute in ("alt", "value", "title"):
        value = element.get(attribute)
        if value:
            return normalize_space(value)
    return ""


def _is_hidden(element: HtmlElement) -> bool:
    style = (element.get("style") or "").replace(" ", "").lower()
    return (
        element.get("hidden") is not None
        or element.get("aria-hidden") == "true"
        or any(rule in style for rule in _HIDDEN_STYLES)
    )


class LxmlPage:
    """PageAccess over a static lxml document.

    Attributes:
        url: The URL the snapshot was taken from.
        document: The parsed root element.
    """

    def __init__(self, document: HtmlElement, url: str = "") -> None:
        self.document = document
        self.url = url

    @classmethod
    def from_html(
        cls, markup: str | bytes, url: str = "", encoding: str | None = None
    ) -> LxmlPage:
        """Parse HTML into a page.

        Args:
            markup: The document. Text is parsed as UTF-8, which also
                accepts documents opening with an XML encoding declaration.
            url: The URL the document was loaded from.
            encoding: Encoding of byte markup, when known from transport
                headers. Otherwise lxml detects it from the document.

        Raises:
            PageAccessFault: If the markup cannot be parsed as HTML.
        """
        if isinstance(markup, str):
            markup = markup.encode("utf-8")
            encoding = "utf-8"
        try:
            document = html.document_fromstring(
                markup, parser=_parser(encoding)
            )
        except (etree.ParserError, ValueError) as e:
            raise PageAccessFault(url, f"Unparseable HTML: {e}") from e
        return cls(document, url)

    async def wait_for_load_signal(
        self, kind: LoadSignal, timeout: float
    ) -> bool:
        return True

    async def query_nodes(self, probe: Probe) -> list[HtmlElement]:
        return self.select(probe)

    def select(self, probe: Probe) -> list[HtmlElement]:
        """Synchronously interpret a probe against the document."""
        match probe:
            case AttributeEquals() | AttributeContains():
                return list(_compiled(probe.css)(self.document))
            case Structural():
                nodes = list(_compiled(probe.css)(self.document))
                if probe.descendant:
                    finder = _descendant_xpath(probe.descendant)
                    nodes = [node for node in nodes if finder(node)]
                return nodes
            case RoleMatch():
                css = IMPLICIT_ROLES.get(probe.role, f'[role="{probe.role}"]')
                return [
                    node
                    for node in _compiled(css)(self.document)
                    if node.get("role") in (None, probe.role)
                    and probe.name_matches(accessible_name(node))
                ]
            case TextMatch():
                return self._innermost_text_matches(probe)
            case _:
                raise TypeError(f"Unknown probe type: {type(probe).__name__}")

    def _innermost_text_matches(self, probe: TextMatch) -> list[HtmlElement]:
        candidates = _compiled(probe.tag)(self.document)
        matches = [
            node
            for node in candidates
            if probe.matches(normalize_space(node.text_content()))
        ]
        # Ancestors of a match also match; keep only the innermost.
        covered: set[HtmlElement] = set()
        for node in matches:
            covered.update(node.iterancestors())
        return [node for node in matches if node not in covered]

    async def read_text(self, node: HtmlElement) -> str | None:
        return normalize_space(node.text_content())

    async def read_attribute(
        self, node: HtmlElement, name: str
    ) -> str | None:
        return node.get(name)

    async def is_interactable(self, node: HtmlElement, timeout: float) -> bool:
        if node.get("disabled") is not None:
            return False
        if node.get("aria-disabled") == "true":
            return False
        return not any(
            _is_hidden(element)
            for element in (node, *node.iterancestors())
        )

    async def activate(self, node: HtmlElement, timeout: float) -> bool:
        logger.debug(
            f"Cannot activate <{node.tag}> on a static snapshot of {self.url}"
        )
        return False

    async def current_url(self) -> str:
        return self.url

    async def measure_content_extent(self) -> int:
        return sum(1 for _ in self.document.iter())

    async def request_scroll_to_end(self) -> None:
        return None

    async def press_key(self, key: str) -> bool:
        return False


class StaticPageSource:
    """PageSource serving prebuilt HTML by URL.

    Useful for replaying saved pages and for tests.

    Attributes:
        pages: URL to HTML text.
        opened: Every URL opened, in order.
    """

    def __init__(self, pages: Mapping[str, str]) -> None:
        self.pages = dict(pages)
        self.opened: list[str] = []

    @asynccontextmanager
    async def open(self, url: str) -> AsyncIterator[LxmlPage]:
        self.opened.append(url)
        try:
            text = self.pages[url]
        except KeyError:
            raise PageAccessFault(url, "No such page") from None
        yield LxmlPage.from_html(text, url)
