"""Dismissal of cookie banners and marketing modals.

Listing pages frequently open behind a consent banner or a newsletter modal
that swallows clicks on the "load more" control. Each overlay strategy
locates a close/accept control; a control that is interactable within the
timeout is activated. A missing overlay is the normal case and is not
reported as anything.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from trawl.common.page_access import PageAccess
from trawl.common.probes import (
    AttributeContains,
    AttributeEquals,
    SelectorStrategy,
    TextMatch,
)
from trawl.common.rule_engine import evaluate
from trawl.data_types import ABSENT, Pick

logger = logging.getLogger(__name__)

COOKIE_CONSENT = SelectorStrategy(
    TextMatch(r"^\s*accept\b", tag="button"),
    TextMatch(r"^\s*ok\s*$", tag="button"),
    TextMatch(r"^\s*close\s*$", tag="button"),
    description="cookie consent button",
)

MODAL_CLOSE = SelectorStrategy(
    AttributeEquals("aria-label", "Close"),
    AttributeEquals("data-testid", "modal-close"),
    AttributeContains("class", "modal-close"),
    description="modal close control",
)

DEFAULT_OVERLAY_STRATEGIES: tuple[SelectorStrategy, ...] = (
    COOKIE_CONSENT,
    MODAL_CLOSE,
)


async def dismiss_overlays(
    page: PageAccess,
    strategies: Sequence[SelectorStrategy] = DEFAULT_OVERLAY_STRATEGIES,
    timeout: float = 3.0,
    fallback_key: str | None = "Escape",
) -> int:
    """Close any overlays matching the given strategies.

    When no control was closed, ``fallback_key`` is pressed instead; most
    modals close on Escape.

    Args:
        page: The page to clean up.
        strategies: One strategy per overlay kind, tried in order.
        timeout: Bound in seconds for locating and activating each control.
        fallback_key: Key pressed when no control was closed. None skips it.

    Returns:
        The number of overlays closed.
    """
    closed = 0
    for strategy in strategies:
        match_set = await evaluate(strategy, page, timeout)
        if match_set is ABSENT:
            continue
        (node,) = match_set.select(Pick.FIRST)
        if not await page.is_interactable(node, timeout):
            continue
        if await page.activate(node, timeout):
            closed += 1
            logger.debug(f"Closed overlay: {strategy.description}")
    if not closed and fallback_key is not None:
        if await page.press_key(fallback_key):
            logger.debug(f"No overlay control found; pressed {fallback_key}")
    return closed
