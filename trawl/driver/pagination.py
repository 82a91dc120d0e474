"""Pagination controller for listing pages.

Drives a listing to exhaustion with one of two interchangeable strategies,
chosen on the first step by which control is structurally present:

- Control-driven ("load more"): count items, activate the control, wait for
  the item count to exceed the prior count.
- Scroll-driven (infinite scroll): measure the content extent, scroll to the
  end, let the page settle, measure again.

Both share a hard step ceiling, because structural termination signals are
unreliable (synthetic infinite content, controls that never disable).

Steps are strictly sequential: each step observes the previous step's result
before deciding whether to continue.
"""

from __future__ import annotations

import asyncio
import logging

from trawl.common.exceptions import PaginationStateError
from trawl.common.page_access import PageAccess
from trawl.common.probes import AttributeContains, SelectorStrategy, TextMatch
from trawl.common.rule_engine import DEFAULT_PROBE_TIMEOUT, evaluate
from trawl.config import CrawlSettings
from trawl.data_types import (
    ABSENT,
    PaginationMode,
    PaginationPhase,
    PaginationState,
    Pick,
    TerminationReason,
)

logger = logging.getLogger(__name__)

LOAD_MORE = SelectorStrategy(
    TextMatch(r"load more", tag="button"),
    TextMatch(r"show more", tag="button"),
    AttributeContains("class", "load-more"),
    description="load more control",
)


class PaginationController:
    """Steps a listing page until a termination signal or the step ceiling.

    Attributes:
        item_strategy: Locates the listing's item cards; its match count is
            the item count.
        control_strategy: Locates the "load more" control. None forces
            scroll-driven pagination.
        max_steps: Hard step ceiling.
        growth_timeout: Seconds a control activation may take to add items.
        activation_timeout: Seconds allowed for the control to become
            interactable and be clicked.
        settle_interval: Seconds to wait after a scroll before re-measuring.
        poll_interval: Seconds between item counts while awaiting growth.
        probe_timeout: Per-probe bound used when locating items and control.
    """

    def __init__(
        self,
        item_strategy: SelectorStrategy,
        control_strategy: SelectorStrategy | None = LOAD_MORE,
        max_steps: int = 30,
        growth_timeout: float = 15.0,
        activation_timeout: float = 10.0,
        settle_interval: float = 1.0,
        poll_interval: float = 0.25,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
    ) -> None:
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self.item_strategy = item_strategy
        self.control_strategy = control_strategy
        self.max_steps = max_steps
        self.growth_timeout = growth_timeout
        self.activation_timeout = activation_timeout
        self.settle_interval = settle_interval
        self.poll_interval = poll_interval
        self.probe_timeout = probe_timeout

    @classmethod
    def from_settings(
        cls,
        item_strategy: SelectorStrategy,
        settings: CrawlSettings,
        control_strategy: SelectorStrategy | None = LOAD_MORE,
    ) -> PaginationController:
        return cls(
            item_strategy,
            control_strategy,
            max_steps=settings.max_pagination_steps,
            growth_timeout=settings.growth_timeout,
            activation_timeout=settings.activation_timeout,
            settle_interval=settings.settle_interval,
            poll_interval=settings.poll_interval,
            probe_timeout=settings.probe_timeout,
        )

    async def run(
        self, page: PageAccess, state: PaginationState | None = None
    ) -> PaginationState:
        """Step the page until pagination terminates.

        Args:
            page: The listing page.
            state: Optional state to continue from. A fresh state is
                created when omitted.

        Returns:
            The terminated PaginationState.
        """
        state = state if state is not None else PaginationState()
        while not state.terminated:
            await self.step(page, state)

        reason = state.termination_reason
        logger.info(
            f"Pagination finished after {state.steps_taken} step(s): "
            f"{reason.value if reason else None}",
            extra={
                "mode": state.mode.value if state.mode else None,
                "items": state.last_observed_count,
            },
        )
        return state

    async def step(
        self, page: PageAccess, state: PaginationState
    ) -> PaginationState:
        """Advance pagination by one step.

        Raises:
            PaginationStateError: If the state is already terminated.
        """
        if state.terminated:
            raise PaginationStateError(
                "Cannot step a terminated pagination",
                context={"reason": state.termination_reason},
            )

        if state.phase is PaginationPhase.IDLE:
            mode = await self._select_mode(page)
            state.begin(
                mode,
                count=await self.count_items(page),
                height=await page.measure_content_extent(),
            )
            logger.debug(f"Pagination mode: {mode.value}")

        if state.steps_taken >= self.max_steps:
            state.terminate(TerminationReason.BUDGET_EXCEEDED)
            return state

        if state.mode is PaginationMode.CONTROL:
            await self._control_step(page, state)
        else:
            await self._scroll_step(page, state)
        return state

    async def count_items(self, page: PageAccess) -> int:
        match_set = await evaluate(
            self.item_strategy, page, self.probe_timeout
        )
        if match_set is ABSENT:
            return 0
        return len(match_set.nodes)

    async def _select_mode(self, page: PageAccess) -> PaginationMode:
        if self.control_strategy is None:
            return PaginationMode.SCROLL
        control = await evaluate(
            self.control_strategy, page, self.probe_timeout
        )
        if control is ABSENT:
            return PaginationMode.SCROLL
        return PaginationMode.CONTROL

    async def _control_step(
        self, page: PageAccess, state: PaginationState
    ) -> None:
        assert self.control_strategy is not None
        prior = await self.count_items(page)

        control = await evaluate(
            self.control_strategy, page, self.probe_timeout
        )
        if control is ABSENT:
            state.terminate(TerminationReason.NO_MORE_CONTROL)
            return
        (node,) = control.select(Pick.FIRST)
        if not await page.is_interactable(node, self.activation_timeout):
            state.terminate(TerminationReason.NO_MORE_CONTROL)
            return
        if not await page.activate(node, self.activation_timeout):
            logger.debug("Load more activation failed")
            state.terminate(TerminationReason.NO_MORE_CONTROL)
            return

        grown = await self._await_growth(page, prior, self.growth_timeout)
        if grown is None:
            state.terminate(TerminationReason.NO_GROWTH)
            return

        state.advance(
            count=grown, height=await page.measure_content_extent()
        )
        logger.debug(
            f"Load more step {state.steps_taken}: {prior} -> {grown} items"
        )

    async def wait_for_items(self, page: PageAccess, timeout: float) -> int:
        """Poll until the listing shows at least one item.

        Client-rendered listings often paint their cards some time after
        the load signal.

        Returns:
            The item count, or 0 if no item appeared within ``timeout``.
        """
        count = await self._await_growth(page, 0, timeout)
        return count or 0

    async def _await_growth(
        self, page: PageAccess, prior: int, timeout: float
    ) -> int | None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            count = await self.count_items(page)
            if count > prior:
                return count
            if loop.time() >= deadline:
                return None
            await asyncio.sleep(self.poll_interval)

    async def _scroll_step(
        self, page: PageAccess, state: PaginationState
    ) -> None:
        before = await page.measure_content_extent()
        await page.request_scroll_to_end()
        await asyncio.sleep(self.settle_interval)
        after = await page.measure_content_extent()

        if after <= before:
            state.terminate(TerminationReason.NO_GROWTH)
            return

        state.advance(count=await self.count_items(page), height=after)
        logger.debug(
            f"Scroll step {state.steps_taken}: extent {before} -> {after}"
        )
