"""Post-processors for raw field strings.

Every processor has the signature ``(raw: str, base_url: str) -> value`` and
returns ABSENT when the raw string cannot be turned into a value. Returning
ABSENT is the only way a processor signals failure; it never raises for bad
input.

Example::

    FieldSpec("image", image_strategy, attribute="srcset",
              processor=srcset_last)
    FieldSpec("price", price_strategy, processor=parse_price)
"""

from __future__ import annotations

import math
import re
from typing import Any
from urllib.parse import urldefrag, urljoin, urlsplit

from trawl.data_types import ABSENT, Processor

_PRICE_CHARS = re.compile(r"[^\d.,]")
_EUROPEAN_DECIMAL = re.compile(r",(\d{1,2})$")
_THOUSANDS_COMMA = re.compile(r",(?=\d{3}(?!\d))")
_THOUSANDS_DOT = re.compile(r"\.(?=\d{3}(?!\d))")


def trim(raw: str, base_url: str = "") -> str:
    return raw.strip()


def collapse_whitespace(raw: str, base_url: str = "") -> str:
    return " ".join(raw.split())


def parse_price(raw: str, base_url: str = "") -> Any:
    """Parse a displayed price into a float.

    Handles US (``$1,234.56``) and European (``1.234,56 €``, ``€ 99,99``)
    conventions.

    Args:
        raw: The displayed price text.
        base_url: Unused.

    Returns:
        The price as a finite, non-negative float, or ABSENT.
    """
    cleaned = _PRICE_CHARS.sub("", raw)
    if not cleaned:
        return ABSENT

    if _EUROPEAN_DECIMAL.search(cleaned):
        # Comma decimal: every dot is a thousands separator
        cleaned = _EUROPEAN_DECIMAL.sub(r".\1", cleaned.replace(".", ""))
    else:
        cleaned = _THOUSANDS_COMMA.sub("", cleaned)
        if cleaned.count(".") > 1:
            cleaned = _THOUSANDS_DOT.sub("", cleaned)

    try:
        value = float(cleaned)
    except ValueError:
        return ABSENT
    if not math.isfinite(value) or value < 0:
        return ABSENT
    return value


def normalize_url(raw: str, base_url: str = "") -> Any:
    """Resolve a link or image URL against the page it was found on.

    Protocol-relative URLs (``//cdn.example/x.jpg``) take the base URL's
    scheme; root-relative and relative URLs are joined to the base URL.
    Fragments are dropped.

    Returns:
        The absolute URL, or ABSENT for empty and non-http(s) URLs.
    """
    candidate = raw.strip()
    if not candidate:
        return ABSENT
    if candidate.startswith("//"):
        scheme = urlsplit(base_url).scheme or "https"
        candidate = f"{scheme}:{candidate}"
    resolved, _fragment = urldefrag(urljoin(base_url, candidate))
    if urlsplit(resolved).scheme not in ("http", "https"):
        return ABSENT
    return resolved


def srcset_last(raw: str, base_url: str = "") -> Any:
    """Pick the last candidate of a ``srcset`` list and resolve it.

    Responsive image lists conventionally put the highest resolution last.
    """
    candidates = [
        part.strip().split()[0] for part in raw.split(",") if part.strip()
    ]
    if not candidates:
        return ABSENT
    return normalize_url(candidates[-1], base_url)


def chain(*processors: Processor) -> Processor:
    """Compose processors left to right, stopping at the first ABSENT.

    Only the first processor receives a string; later ones receive the
    previous result, so put type-changing processors last.
    """

    def processor(raw: str, base_url: str = "") -> Any:
        value: Any = raw
        for step in processors:
            value = step(value, base_url)
            if value is ABSENT:
                return ABSENT
        return value

    return processor
