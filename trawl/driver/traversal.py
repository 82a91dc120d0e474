"""Traversal coordinator: listing pages in, accepted records out.

The coordinator walks each seed listing page in turn, drives its pagination
to exhaustion, collects detail links and feeds them to a bounded pool of
asyncio workers that run the field extractor. Outcomes are tallied by
RunAccounting and accepted results are streamed to the ``on_result``
callback as they complete.

Concurrency model:

1. Listing pages are processed sequentially by the coordinator task; each
   pagination step observes the previous one.
2. Detail pages are processed by ``settings.num_workers`` workers pulling
   from an asyncio.Queue.
3. The TraversalBudget is the only state the coordinator and workers share.
   Once a claim fails nothing more is enqueued and queued work drains.

Page faults and rejected records are recorded per URL and never abort the
run. Programming errors (exceptions that are not TrawlException) propagate.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence

from trawl.common.accounting import RunAccounting
from trawl.common.exceptions import PageAccessFault, RequiredFieldMissing
from trawl.common.field_extractor import CrossFieldRule, FieldExtractor
from trawl.common.overlays import DEFAULT_OVERLAY_STRATEGIES, dismiss_overlays
from trawl.common.page_access import PageAccess, PageSource
from trawl.common.postprocess import normalize_url
from trawl.common.probes import SelectorStrategy
from trawl.config import CrawlSettings
from trawl.data_types import (
    ABSENT,
    ExtractionResult,
    FieldSpec,
    LoadSignal,
    Pick,
    ReasonCode,
    RunSummary,
    TraversalBudget,
)
from trawl.driver.pagination import LOAD_MORE, PaginationController

logger = logging.getLogger(__name__)

ResultCallback = Callable[[ExtractionResult], Awaitable[None]]

LINKS_FIELD = "links"


class TraversalCoordinator:
    """Runs listing -> detail traversal under a budget.

    Example usage:
        from tests.utils import collect_results_async

        callback, results = collect_results_async()
        coordinator = TraversalCoordinator(
            page_source, link_strategy, extractor, on_result=callback
        )
        summary = await coordinator.run(seed_urls, TraversalBudget(max_items=10))
    """

    def __init__(
        self,
        page_source: PageSource,
        link_strategy: SelectorStrategy,
        extractor: FieldExtractor,
        paginator: PaginationController | None = None,
        settings: CrawlSettings | None = None,
        on_result: ResultCallback | None = None,
        overlay_strategies: Sequence[
            SelectorStrategy
        ] = DEFAULT_OVERLAY_STRATEGIES,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            page_source: Opens listing and detail pages by URL.
            link_strategy: Locates detail links on a listing page; every
                match's ``href`` is collected.
            extractor: Extracts detail pages.
            paginator: Drives listing pagination. None reads each listing
                as first loaded.
            settings: Engine tunables. Defaults to CrawlSettings().
            on_result: Optional async callback receiving each accepted
                ExtractionResult as it completes.
            overlay_strategies: Overlays dismissed on listing pages when
                ``settings.dismiss_overlays`` is set.
            stop_event: Optional asyncio.Event for graceful shutdown. When
                set, no further listings are opened and workers stop after
                their current page.
        """
        self.page_source = page_source
        self.link_strategy = link_strategy
        self.extractor = extractor
        self.paginator = paginator
        self.settings = settings or CrawlSettings()
        self.on_result = on_result
        self.overlay_strategies = tuple(overlay_strategies)
        self.stop_event = stop_event

        self._links = FieldExtractor(
            [
                FieldSpec(
                    LINKS_FIELD,
                    link_strategy,
                    attribute="href",
                    processor=normalize_url,
                    pick=Pick.ALL,
                )
            ],
            probe_timeout=self.settings.probe_timeout,
        )
        self.detail_queue: asyncio.Queue[str] = asyncio.Queue()
        self._seen: set[str] = set()

    def _stopping(self) -> bool:
        return self.stop_event is not None and self.stop_event.is_set()

    async def run(
        self, seed_urls: Iterable[str], budget: TraversalBudget
    ) -> RunSummary:
        """Traverse the seed listings and extract their detail pages.

        Args:
            seed_urls: Listing page URLs, processed in order.
            budget: Caps on detail items and page requests. Claimed from as
                work is dispatched; never reset.

        Returns:
            The finalized RunSummary.

        Raises:
            BudgetConfigurationError: If the budget can never admit work.
                Raised before any page is opened.
        """
        budget.validate()
        accounting = RunAccounting()
        self.detail_queue = asyncio.Queue()
        self._seen = set()

        seeds = list(dict.fromkeys(seed_urls))
        logger.info(
            f"Starting traversal of {len(seeds)} listing(s)",
            extra={
                "num_workers": self.settings.num_workers,
                "max_items": budget.max_items,
                "max_requests": budget.max_requests,
            },
        )

        workers = [
            asyncio.create_task(self._worker(i, accounting))
            for i in range(self.settings.num_workers)
        ]
        try:
            for seed in seeds:
                if self._stopping():
                    break
                if budget.exhausted:
                    logger.info("Budget exhausted; no further listings opened")
                    break
                await self._process_listing(seed, budget, accounting)
                self._raise_worker_error(workers)

            await self._drain(workers)
        finally:
            # Cancel workers (they're waiting on the queue)
            for worker in workers:
                worker.cancel()
            results = await asyncio.gather(*workers, return_exceptions=True)

        for result in results:
            if isinstance(result, Exception):
                raise result

        summary = accounting.finalize()
        logger.info(
            f"Traversal finished: {summary.succeeded}/{summary.total} accepted",
            extra={
                "failed": summary.failed,
                "items_processed": budget.items_processed,
                "requests_made": budget.requests_made,
            },
        )
        return summary

    async def _drain(self, workers: list[asyncio.Task[None]]) -> None:
        """Wait until every queued detail page has been processed."""
        while True:
            if self._stopping():
                # Drain the queue to prevent join() from blocking
                while not self.detail_queue.empty():
                    try:
                        self.detail_queue.get_nowait()
                        self.detail_queue.task_done()
                    except asyncio.QueueEmpty:
                        break
            if any(worker.done() for worker in workers):
                # A worker only exits early on an unexpected error.
                return
            try:
                await asyncio.wait_for(
                    asyncio.shield(self.detail_queue.join()), timeout=0.1
                )
                return
            except TimeoutError:
                continue

    @staticmethod
    def _raise_worker_error(workers: list[asyncio.Task[None]]) -> None:
        for worker in workers:
            if worker.done() and not worker.cancelled():
                error = worker.exception()
                if error is not None:
                    raise error

    async def _await_load(self, page: PageAccess, signal: LoadSignal) -> None:
        if not await page.wait_for_load_signal(
            signal, self.settings.load_timeout
        ):
            logger.warning(
                f"Load signal {signal.value} not reached within "
                f"{self.settings.load_timeout}s; continuing",
                extra={"url": await page.current_url()},
            )

    async def _await_items(
        self, page: PageAccess, paginator: PaginationController
    ) -> None:
        if not await paginator.wait_for_items(page, self.settings.load_timeout):
            logger.warning(
                f"No listing items appeared within "
                f"{self.settings.load_timeout}s; continuing",
                extra={"url": await page.current_url()},
            )

    async def collect_links(self, page: PageAccess) -> list[str]:
        """Detail links on a listing page, normalized, in document order."""
        result = await self._links.extract(page)
        links = result[LINKS_FIELD]
        if links is ABSENT:
            return []
        return list(links)

    async def _process_listing(
        self,
        url: str,
        budget: TraversalBudget,
        accounting: RunAccounting,
    ) -> None:
        if not budget.try_claim_request():
            logger.info(f"Request budget exhausted before listing {url}")
            return

        try:
            async with self.page_source.open(url) as page:
                await self._await_load(page, self.settings.listing_load_signal)
                if self.settings.dismiss_overlays:
                    await dismiss_overlays(
                        page,
                        self.overlay_strategies,
                        self.settings.probe_timeout,
                        self.settings.overlay_fallback_key,
                    )
                if self.paginator is not None:
                    await self._await_items(page, self.paginator)
                    await self.paginator.run(page)
                links = await self.collect_links(page)
        except PageAccessFault as e:
            accounting.record_failure(
                url, ReasonCode.PAGE_ACCESS_FAULT, e.message
            )
            return
        except TimeoutError:
            accounting.record_failure(
                url, ReasonCode.PAGE_ACCESS_FAULT, "Listing page timed out"
            )
            return

        enqueued = 0
        for link in links:
            if link in self._seen:
                continue
            if not budget.try_claim_item():
                logger.info(
                    f"Budget exhausted after enqueuing {enqueued} link(s) "
                    f"from {url}"
                )
                break
            self._seen.add(link)
            await self.detail_queue.put(link)
            enqueued += 1

        logger.info(
            f"Listing {url}: {len(links)} link(s), {enqueued} enqueued",
            extra={"remaining_items": budget.remaining_items},
        )

    async def _worker(self, worker_id: int, accounting: RunAccounting) -> None:
        """Worker coroutine that processes detail pages from the queue.

        Args:
            worker_id: Identifier for this worker (for debugging).
            accounting: The run's accounting.
        """
        while True:
            if self._stopping():
                break

            try:
                url = await self.detail_queue.get()
            except asyncio.CancelledError:
                # Worker was cancelled (normal shutdown)
                break

            try:
                logger.debug(f"Worker {worker_id} processing {url}")
                await self._process_detail(url, accounting)
            finally:
                # Always mark task as done to allow join() to complete
                self.detail_queue.task_done()

    async def _process_detail(
        self, url: str, accounting: RunAccounting
    ) -> None:
        try:
            async with self.page_source.open(url) as page:
                await self._await_load(page, self.settings.detail_load_signal)
                result = await self.extractor.extract(page)
        except PageAccessFault as e:
            accounting.record_failure(
                url, ReasonCode.PAGE_ACCESS_FAULT, e.message
            )
            return
        except TimeoutError:
            accounting.record_failure(
                url, ReasonCode.PAGE_ACCESS_FAULT, "Detail page timed out"
            )
            return

        try:
            result.confirm()
        except RequiredFieldMissing as e:
            accounting.record_failure(
                url, ReasonCode.REQUIRED_FIELD_MISSING, e.message
            )
            return

        accounting.record_success(url)
        if self.on_result:
            await self.on_result(result)


async def run_extraction(
    seed_urls: Iterable[str],
    field_specs: Sequence[FieldSpec],
    budget: TraversalBudget,
    *,
    page_source: PageSource,
    link_strategy: SelectorStrategy,
    item_strategy: SelectorStrategy | None = None,
    control_strategy: SelectorStrategy | None = LOAD_MORE,
    rules: Iterable[CrossFieldRule] = (),
    settings: CrawlSettings | None = None,
    on_result: ResultCallback | None = None,
) -> RunSummary:
    """Extract every detail page reachable from the seed listings.

    Args:
        seed_urls: Listing page URLs.
        field_specs: Fields to extract from each detail page.
        budget: Caps on detail items and page requests.
        page_source: Opens pages by URL.
        link_strategy: Locates detail links on listing pages.
        item_strategy: Locates listing item cards. When given, listings are
            paginated before their links are collected.
        control_strategy: Locates the "load more" control. None forces
            scroll-driven pagination.
        rules: Cross-field rules applied to each detail record.
        settings: Engine tunables.
        on_result: Async callback receiving each accepted result.

    Returns:
        The finalized RunSummary.
    """
    settings = settings or CrawlSettings()
    extractor = FieldExtractor(
        field_specs, rules, probe_timeout=settings.probe_timeout
    )
    paginator = (
        PaginationController.from_settings(
            item_strategy, settings, control_strategy
        )
        if item_strategy is not None
        else None
    )
    coordinator = TraversalCoordinator(
        page_source,
        link_strategy,
        extractor,
        paginator=paginator,
        settings=settings,
        on_result=on_result,
    )
    return await coordinator.run(seed_urls, budget)
