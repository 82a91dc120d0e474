"""Field extractor: turns a page into an ExtractionResult.

Each FieldSpec is resolved independently through the rule engine, its raw
string post-processed, and a diagnostic recorded. Cross-field rules then run
over the resolved values; they may derive new fields or downgrade values to
ABSENT, never fabricate data from missing inputs.

Nothing in here raises for a missing field. Page-level faults raised by the
page collaborator propagate to the caller.

Example::

    extractor = FieldExtractor(
        [
            FieldSpec("title", title_strategy, required=True),
            FieldSpec("price", price_strategy, processor=parse_price),
            FieldSpec("original_price", was_strategy, processor=parse_price),
        ],
        rules=[SaleDiscountRule()],
    )
    result = await extractor.extract(page)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any, Protocol

from trawl.common.page_access import NodeHandle, PageAccess
from trawl.common.postprocess import collapse_whitespace
from trawl.common.rule_engine import (
    DEFAULT_PROBE_TIMEOUT,
    evaluate_with_outcomes,
)
from trawl.data_types import (
    ABSENT,
    RECORD_METADATA_KEYS,
    ExtractionResult,
    FieldDiagnostic,
    FieldSpec,
    FieldStatus,
    Pick,
)

logger = logging.getLogger(__name__)


class CrossFieldRule(Protocol):
    """A validation or derivation step run after every field is resolved.

    Rules mutate the working ``values`` and ``diagnostics`` dicts in place.
    A field that resolved to ABSENT must be treated as excluded.
    """

    def apply(
        self,
        values: dict[str, Any],
        diagnostics: dict[str, FieldDiagnostic],
    ) -> None: ...


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class SaleDiscountRule:
    """Derive a discount percentage from current and original prices.

    Sale banners are often malformed, so the original price is only kept
    when it is numeric and strictly greater than the current price;
    otherwise it is downgraded to ABSENT and no discount is derived. If
    either price is ABSENT the rule does nothing beyond leaving the discount
    ABSENT.

    Attributes:
        current: Name of the current price field.
        original: Name of the original (struck-through) price field.
        discount: Name of the derived discount field (whole percent).
    """

    def __init__(
        self,
        current: str = "price",
        original: str = "original_price",
        discount: str = "discount_percent",
    ) -> None:
        self.current = current
        self.original = original
        self.discount = discount

    def apply(
        self,
        values: dict[str, Any],
        diagnostics: dict[str, FieldDiagnostic],
    ) -> None:
        current = values.get(self.current, ABSENT)
        original = values.get(self.original, ABSENT)
        values[self.discount] = ABSENT

        if current is ABSENT or original is ABSENT:
            diagnostics[self.discount] = FieldDiagnostic(
                self.discount,
                FieldStatus.NOT_FOUND,
                detail=f"requires both {self.current} and {self.original}",
            )
            return

        if not (_is_number(current) and _is_number(original)) or (
            original <= current
        ):
            values[self.original] = ABSENT
            previous = diagnostics.get(self.original)
            diagnostics[self.original] = FieldDiagnostic(
                self.original,
                FieldStatus.DOWNGRADED,
                level=previous.level if previous else None,
                probe_outcomes=previous.probe_outcomes if previous else (),
                detail=f"{original!r} is not above {self.current} {current!r}",
            )
            diagnostics[self.discount] = FieldDiagnostic(
                self.discount,
                FieldStatus.NOT_FOUND,
                detail=f"{self.original} downgraded",
            )
            return

        values[self.discount] = round((original - current) / original * 100)
        diagnostics[self.discount] = FieldDiagnostic(
            self.discount, FieldStatus.FOUND
        )


class FieldExtractor:
    """Extracts a fixed set of fields from pages.

    Attributes:
        fields: The field specs, in output order.
        rules: Cross-field rules, run in order after all fields resolve.
        probe_timeout: Per-probe wait bound in seconds.
    """

    def __init__(
        self,
        fields: Sequence[FieldSpec],
        rules: Iterable[CrossFieldRule] = (),
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
    ) -> None:
        names = [spec.name for spec in fields]
        duplicates = {name for name in names if names.count(name) > 1}
        if duplicates:
            raise ValueError(
                f"Duplicate field names: {', '.join(sorted(duplicates))}"
            )
        reserved = sorted(set(names) & set(RECORD_METADATA_KEYS))
        if reserved:
            raise ValueError(
                f"Field names reserved for record metadata: "
                f"{', '.join(reserved)}"
            )
        self.fields = tuple(fields)
        self.rules = tuple(rules)
        self.probe_timeout = probe_timeout

    @property
    def required_fields(self) -> tuple[str, ...]:
        return tuple(spec.name for spec in self.fields if spec.required)

    async def extract(
        self, page: PageAccess, url: str | None = None
    ) -> ExtractionResult:
        """Extract every field from a page.

        Args:
            page: The page to read.
            url: URL to report and resolve relative links against. Defaults
                to the page's current URL.

        Returns:
            A new, immutable ExtractionResult.
        """
        base_url = url if url is not None else await page.current_url()
        values: dict[str, Any] = {}
        diagnostics: dict[str, FieldDiagnostic] = {}

        for spec in self.fields:
            value, diagnostic = await self._extract_field(spec, page, base_url)
            values[spec.name] = value
            diagnostics[spec.name] = diagnostic

        for rule in self.rules:
            rule.apply(values, diagnostics)

        result = ExtractionResult(
            url=base_url,
            values=values,
            diagnostics=tuple(diagnostics.values()),
            required=self.required_fields,
        )
        logger.debug(
            f"Extracted {sum(v is not ABSENT for v in values.values())}/"
            f"{len(values)} fields from {base_url}",
            extra={"missing_required": result.missing_required},
        )
        return result

    async def _extract_field(
        self, spec: FieldSpec, page: PageAccess, base_url: str
    ) -> tuple[Any, FieldDiagnostic]:
        evaluation = await evaluate_with_outcomes(
            spec.strategy, page, self.probe_timeout
        )
        if not evaluation.found:
            status = (
                FieldStatus.PROBE_TIMEOUT
                if evaluation.timed_out
                else FieldStatus.NOT_FOUND
            )
            return ABSENT, FieldDiagnostic(
                spec.name, status, probe_outcomes=evaluation.outcomes
            )

        match_set = evaluation.match
        processor = spec.processor or collapse_whitespace
        resolved: list[Any] = []
        unparseable = 0
        for node in match_set.select(spec.pick):
            raw = await self._read(page, node, spec.attribute)
            if raw is None:
                continue
            value = processor(raw, base_url)
            if value is ABSENT:
                unparseable += 1
            elif value != "" and value not in resolved:
                resolved.append(value)

        if not resolved:
            status = (
                FieldStatus.UNPARSEABLE if unparseable else FieldStatus.EMPTY_VALUE
            )
            return ABSENT, FieldDiagnostic(
                spec.name,
                status,
                level=match_set.level,
                probe_outcomes=evaluation.outcomes,
            )

        value = tuple(resolved) if spec.pick is Pick.ALL else resolved[0]
        return value, FieldDiagnostic(
            spec.name,
            FieldStatus.FOUND,
            level=match_set.level,
            probe_outcomes=evaluation.outcomes,
        )

    @staticmethod
    async def _read(
        page: PageAccess, node: NodeHandle, attribute: str | None
    ) -> str | None:
        if attribute is None:
            return await page.read_text(node)
        return await page.read_attribute(node, attribute)


async def extract(
    fields: Sequence[FieldSpec],
    page: PageAccess,
    rules: Iterable[CrossFieldRule] = (),
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
) -> ExtractionResult:
    """Extract fields from a page with a one-off FieldExtractor."""
    return await FieldExtractor(fields, rules, probe_timeout).extract(page)
