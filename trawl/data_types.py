"""Data types for the extraction engine.

This module defines the values passed between the rule engine, the field
extractor, the pagination controller, the traversal coordinator and run
accounting. These types are designed to be:

1. Explicit - a missing field is the ABSENT marker, never "" or None
2. Immutable - results and summaries are frozen once built
3. Serializable - ExtractionResult.record() is a plain dict of JSON values

The two mutable types, PaginationState and TraversalBudget, each have a
single owner that mutates them through the methods defined here.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Final

from trawl.common.exceptions import (
    BudgetConfigurationError,
    PaginationStateError,
    RequiredFieldMissing,
)
from trawl.common.probes import SelectorStrategy

# =============================================================================
# Absent marker
# =============================================================================


class _Absent:
    """Marker for a value that was looked for and not found.

    Falsy, so ``value or default`` idioms keep working, but distinct from
    the empty string and from None.
    """

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"

    def __reduce__(self) -> str:
        return "ABSENT"


ABSENT: Final = _Absent()

# A post-processor receives the raw string and the page URL it came from and
# returns a value or ABSENT.
Processor = Callable[[str, str], Any]


# =============================================================================
# Field specification and diagnostics
# =============================================================================


class Pick(Enum):
    """Which of several matched nodes a field uses.

    FIRST is the default. LAST suits responsive image lists, where the last
    listed source is conventionally the highest resolution. ALL suits
    galleries and yields every value, deduplicated after processing.
    """

    FIRST = "first"
    LAST = "last"
    ALL = "all"


class ProbeOutcome(Enum):
    """Result of running a single probe."""

    MATCHED = "matched"
    NO_MATCH = "no_match"
    TIMEOUT = "timeout"


class FieldStatus(Enum):
    """How a field was resolved."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    PROBE_TIMEOUT = "probe_timeout"
    EMPTY_VALUE = "empty_value"
    UNPARSEABLE = "unparseable"
    DOWNGRADED = "downgraded"


@dataclass(frozen=True)
class FieldSpec:
    """A logical field: where to look, how to clean it, whether it is required.

    Attributes:
        name: Field name in the emitted record (e.g. ``"price"``).
        strategy: Ordered probes locating the field.
        attribute: Attribute to read from the matched node. None reads the
            node's text content.
        processor: Post-processor applied to the raw string. None collapses
            whitespace.
        required: Whether a record missing this field is rejected.
        pick: Tie-break policy when a probe matches several nodes.
    """

    name: str
    strategy: SelectorStrategy
    attribute: str | None = None
    processor: Processor | None = None
    required: bool = False
    pick: Pick = Pick.FIRST


@dataclass(frozen=True)
class FieldDiagnostic:
    """Record of how one field was resolved on one page.

    Attributes:
        field_name: The field.
        status: Final status after processing and cross-field validation.
        level: 1-based position of the probe that matched, None if none did.
        probe_outcomes: Outcome of every probe that was tried, in order.
        detail: Free-form note (e.g. why a value was downgraded).
    """

    field_name: str
    status: FieldStatus
    level: int | None = None
    probe_outcomes: tuple[ProbeOutcome, ...] = ()
    detail: str = ""


# Keys record() adds alongside the field values.
RECORD_METADATA_KEYS: tuple[str, ...] = ("url", "scraped_at")


@dataclass(frozen=True)
class ExtractionResult:
    """The outcome of extracting one page.

    Created fresh per page and never modified. ``extracted_at`` is the only
    field that differs between two extractions of an unchanged page.

    Attributes:
        url: The page the values were extracted from.
        values: Field name to value, or ABSENT.
        diagnostics: One FieldDiagnostic per field, in FieldSpec order.
        required: Names of the fields that were required.
        extracted_at: UTC timestamp of the extraction.
    """

    url: str
    values: Mapping[str, Any]
    diagnostics: tuple[FieldDiagnostic, ...] = ()
    required: tuple[str, ...] = ()
    extracted_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def __getitem__(self, name: str) -> Any:
        return self.values[name]

    @property
    def missing_required(self) -> tuple[str, ...]:
        """Required fields that resolved to ABSENT, in FieldSpec order."""
        return tuple(
            name for name in self.required if self.values.get(name) is ABSENT
        )

    @property
    def is_accepted(self) -> bool:
        return not self.missing_required

    def diagnostic(self, name: str) -> FieldDiagnostic | None:
        for diag in self.diagnostics:
            if diag.field_name == name:
                return diag
        return None

    def record(self) -> dict[str, Any]:
        """Plain dict of the values with ABSENT rendered as None.

        Includes ``url`` and ``scraped_at`` (ISO 8601) alongside the fields.
        """
        data: dict[str, Any] = {}
        for name, value in self.values.items():
            if value is ABSENT:
                data[name] = None
            elif isinstance(value, tuple):
                data[name] = list(value)
            else:
                data[name] = value
        data["url"] = self.url
        data["scraped_at"] = self.extracted_at.isoformat()
        return data

    def confirm(self) -> dict[str, Any]:
        """Return the record if every required field is present.

        Returns:
            The record dict (see record()).

        Raises:
            RequiredFieldMissing: If a required field is ABSENT.
        """
        missing = self.missing_required
        if missing:
            raise RequiredFieldMissing(missing[0], self.url, missing)
        return self.record()


# =============================================================================
# Pagination state
# =============================================================================


class TerminationReason(Enum):
    """Why pagination stopped."""

    NO_MORE_CONTROL = "NoMoreControl"
    NO_GROWTH = "NoGrowth"
    BUDGET_EXCEEDED = "BudgetExceeded"


class PaginationMode(Enum):
    CONTROL = "control"
    SCROLL = "scroll"


class PaginationPhase(Enum):
    IDLE = "idle"
    STEPPING = "stepping"
    TERMINATED = "terminated"


@dataclass
class PaginationState:
    """Progress of one listing's pagination.

    Mutated only by the PaginationController, through begin(), advance()
    and terminate(). Terminal once ``terminated`` is set.
    """

    last_observed_count: int = 0
    last_observed_height: int = 0
    steps_taken: int = 0
    terminated: bool = False
    termination_reason: TerminationReason | None = None
    mode: PaginationMode | None = None
    phase: PaginationPhase = PaginationPhase.IDLE

    def begin(self, mode: PaginationMode, count: int, height: int) -> None:
        """Leave IDLE with the chosen mode and the initial measurements."""
        self._check_live()
        self.mode = mode
        self.phase = PaginationPhase.STEPPING
        self.last_observed_count = count
        self.last_observed_height = height

    def advance(
        self, count: int | None = None, height: int | None = None
    ) -> None:
        """Record a successful step and the measurements it produced."""
        self._check_live()
        self.steps_taken += 1
        if count is not None:
            self.last_observed_count = count
        if height is not None:
            self.last_observed_height = height

    def terminate(self, reason: TerminationReason) -> None:
        self._check_live()
        self.terminated = True
        self.termination_reason = reason
        self.phase = PaginationPhase.TERMINATED

    def _check_live(self) -> None:
        if self.terminated:
            raise PaginationStateError(
                "Pagination already terminated",
                context={"reason": self.termination_reason},
            )


# =============================================================================
# Traversal budget
# =============================================================================


@dataclass
class TraversalBudget:
    """Caps on one run's work, shared by the coordinator and its workers.

    Claims are check-then-increment under a single lock, so concurrent
    workers can never collectively overshoot a limit.

    Attributes:
        max_items: Maximum detail items to dispatch. None for unbounded.
        max_requests: Maximum pages (listing and detail) to open.
        items_processed: Detail items claimed so far.
        requests_made: Page requests claimed so far.
    """

    max_items: int | None = None
    max_requests: int = 1000
    items_processed: int = 0
    requests_made: int = 0
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def validate(self) -> None:
        """Reject budgets that could never admit any work.

        Raises:
            BudgetConfigurationError: If a limit is zero or negative.
        """
        if self.max_requests <= 0:
            raise BudgetConfigurationError(
                "max_requests must be positive",
                max_requests=self.max_requests,
            )
        if self.max_items is not None and self.max_items <= 0:
            raise BudgetConfigurationError(
                "max_items must be positive or None",
                max_items=self.max_items,
            )

    def try_claim_request(self) -> bool:
        """Claim one page request. Returns False once requests run out."""
        with self._lock:
            if self.requests_made >= self.max_requests:
                return False
            self.requests_made += 1
            return True

    def try_claim_item(self) -> bool:
        """Claim one detail item together with the request that fetches it."""
        with self._lock:
            if self.requests_made >= self.max_requests:
                return False
            if (
                self.max_items is not None
                and self.items_processed >= self.max_items
            ):
                return False
            self.items_processed += 1
            self.requests_made += 1
            return True

    @property
    def remaining_items(self) -> int | None:
        if self.max_items is None:
            return None
        return max(self.max_items - self.items_processed, 0)

    @property
    def exhausted(self) -> bool:
        with self._lock:
            if self.requests_made >= self.max_requests:
                return True
            return (
                self.max_items is not None
                and self.items_processed >= self.max_items
            )


# =============================================================================
# Run summary
# =============================================================================


class ReasonCode(str, Enum):
    """Stable failure reason codes reported in RunSummary.failures."""

    REQUIRED_FIELD_MISSING = "RequiredFieldMissing"
    PAGE_ACCESS_FAULT = "PageAccessFault"


@dataclass(frozen=True)
class FailureRecord:
    url: str
    reason_code: ReasonCode
    message: str


@dataclass(frozen=True)
class RunSummary:
    """Finalized tallies of one run.

    ``total == succeeded + failed`` always holds.
    """

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failures: tuple[FailureRecord, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failures": [
                {
                    "url": f.url,
                    "reason_code": f.reason_code.value,
                    "message": f.message,
                }
                for f in self.failures
            ],
        }


# =============================================================================
# Load signals
# =============================================================================


class LoadSignal(Enum):
    """Page readiness signals a page collaborator can wait for."""

    DOM_CONTENT_LOADED = "domcontentloaded"
    LOAD = "load"
    NETWORK_IDLE = "networkidle"
