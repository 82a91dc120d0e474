"""Extraction rule engine.

Interprets a SelectorStrategy against a page: probes run in priority order
and the first probe that yields at least one node wins. A probe that matches
nothing, or whose bounded wait expires, is a signal to try the next probe,
never an error. Only exhausting every probe yields ABSENT.

The engine only reads from the page; it never activates or scrolls.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from trawl.common.exceptions import ProbeTimeout
from trawl.common.page_access import NodeHandle, PageAccess
from trawl.common.probes import Probe, SelectorStrategy
from trawl.data_types import ABSENT, Pick, ProbeOutcome

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 3.0

# Slack for a collaborator to report an expired interactability wait before
# the probe as a whole is abandoned.
_INTERACTABLE_GRACE = 0.5


@dataclass(frozen=True)
class MatchSet:
    """Nodes matched by the winning probe of a strategy.

    Attributes:
        nodes: Matched nodes in document order. Never empty.
        level: 1-based position of the winning probe; 1 is the most stable.
        probe: The winning probe.
    """

    nodes: tuple[NodeHandle, ...]
    level: int
    probe: Probe

    def select(self, pick: Pick) -> tuple[NodeHandle, ...]:
        """Apply a tie-break policy to the matched nodes."""
        match pick:
            case Pick.FIRST:
                return self.nodes[:1]
            case Pick.LAST:
                return self.nodes[-1:]
            case Pick.ALL:
                return self.nodes


@dataclass(frozen=True)
class Evaluation:
    """A strategy evaluation together with every probe's outcome."""

    match: MatchSet | Any
    outcomes: tuple[ProbeOutcome, ...]

    @property
    def found(self) -> bool:
        return self.match is not ABSENT

    @property
    def timed_out(self) -> bool:
        """True when nothing matched and at least one probe timed out."""
        return not self.found and ProbeOutcome.TIMEOUT in self.outcomes


async def _run_probe(
    probe: Probe,
    strategy: SelectorStrategy,
    page: PageAccess,
    timeout: float,
) -> list[NodeHandle]:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    nodes = await asyncio.wait_for(page.query_nodes(probe), timeout=timeout)
    if not strategy.require_interactable or not nodes:
        return nodes

    # All nodes share what is left of the probe budget and are checked
    # concurrently; a hidden node only costs its own wait.
    remaining = max(deadline - loop.time(), 0.0)
    checks = await asyncio.wait_for(
        asyncio.gather(
            *(page.is_interactable(node, remaining) for node in nodes)
        ),
        timeout=remaining + _INTERACTABLE_GRACE,
    )
    return [node for node, ok in zip(nodes, checks) if ok]


async def evaluate_with_outcomes(
    strategy: SelectorStrategy,
    page: PageAccess,
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
) -> Evaluation:
    """Evaluate a strategy and report what every tried probe did.

    Args:
        strategy: The ordered probes.
        page: The page to read.
        probe_timeout: Upper bound in seconds for each probe, including any
            interactability waits.

    Returns:
        Evaluation whose ``match`` is a MatchSet or ABSENT.
    """
    outcomes: list[ProbeOutcome] = []
    for level, probe in enumerate(strategy.probes, start=1):
        try:
            nodes = await _run_probe(probe, strategy, page, probe_timeout)
        except (TimeoutError, ProbeTimeout):
            logger.debug(
                f"Probe {level} timed out for '{strategy.description}': "
                f"{probe.describe()}"
            )
            outcomes.append(ProbeOutcome.TIMEOUT)
            continue

        if nodes:
            outcomes.append(ProbeOutcome.MATCHED)
            logger.debug(
                f"Probe {level} matched {len(nodes)} node(s) for "
                f"'{strategy.description}': {probe.describe()}"
            )
            return Evaluation(
                MatchSet(tuple(nodes), level, probe), tuple(outcomes)
            )
        outcomes.append(ProbeOutcome.NO_MATCH)

    return Evaluation(ABSENT, tuple(outcomes))


async def evaluate(
    strategy: SelectorStrategy,
    page: PageAccess,
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
) -> MatchSet | Any:
    """Evaluate a strategy against a page.

    Returns:
        The MatchSet of the first probe with at least one match, or ABSENT.
    """
    evaluation = await evaluate_with_outcomes(strategy, page, probe_timeout)
    return evaluation.match
