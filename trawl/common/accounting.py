"""Run accounting: outcome counters and a structured failure log.

One RunAccounting is created per run and finalized when the run ends. Any
number of workers may record outcomes concurrently; every append happens
under one lock. Retries are not this component's business: an outcome
reaching accounting is final.
"""

from __future__ import annotations

import logging
import threading

from trawl.common.exceptions import AccountingClosedError
from trawl.data_types import FailureRecord, ReasonCode, RunSummary

logger = logging.getLogger(__name__)


class RunAccounting:
    """Append-only tallies for one run.

    Example::

        accounting = RunAccounting()
        accounting.record_success("https://shop.example/p/1")
        accounting.record_failure(
            "https://shop.example/p/2",
            ReasonCode.REQUIRED_FIELD_MISSING,
            "Required field 'title' not found",
        )
        summary = accounting.finalize()
        assert summary.total == 2
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._succeeded = 0
        self._failures: list[FailureRecord] = []
        self._summary: RunSummary | None = None

    @property
    def finalized(self) -> bool:
        return self._summary is not None

    def record_success(self, url: str) -> None:
        with self._lock:
            self._check_open(url)
            self._succeeded += 1

    def record_failure(
        self, url: str, reason: ReasonCode, message: str
    ) -> None:
        with self._lock:
            self._check_open(url)
            self._failures.append(FailureRecord(url, reason, message))
        logger.warning(
            f"{reason.value} for {url}: {message}",
            extra={"url": url, "reason_code": reason.value},
        )

    def snapshot(self) -> RunSummary:
        """Current tallies, without finalizing."""
        with self._lock:
            return self._build()

    def finalize(self) -> RunSummary:
        """Close the log and return the immutable summary.

        Idempotent: later calls return the same summary.
        """
        with self._lock:
            if self._summary is None:
                self._summary = self._build()
            return self._summary

    def _build(self) -> RunSummary:
        failed = len(self._failures)
        return RunSummary(
            total=self._succeeded + failed,
            succeeded=self._succeeded,
            failed=failed,
            failures=tuple(self._failures),
        )

    def _check_open(self, url: str) -> None:
        if self._summary is not None:
            raise AccountingClosedError(url)
