"""Probes and selector strategies.

A probe is one concrete rule for locating elements. A SelectorStrategy is an
ordered, validated tuple of probes for one logical field, most stable first.
Both are pure values: they hold no reference to any page, and page
collaborators interpret them (see lxml_page and the Playwright driver).

Example::

    title = SelectorStrategy(
        AttributeEquals("data-testid", "product-title"),
        AttributeContains("class", "title", tag="h1"),
        Structural("h1"),
        description="product title",
    )
"""

from __future__ import annotations

import re
from dataclasses import dataclass


def _css_string(value: str) -> str:
    """Quote a value for use inside a CSS attribute selector."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


@dataclass(frozen=True)
class AttributeEquals:
    """Match elements whose attribute equals a value exactly.

    The most stable probe kind: ``data-testid``, ``itemprop`` and ``id``
    attributes rarely change with restyling.
    """

    attribute: str
    value: str
    tag: str = "*"

    @property
    def css(self) -> str:
        return f"{self.tag}[{self.attribute}={_css_string(self.value)}]"

    def describe(self) -> str:
        return f"attribute-equals {self.css}"


@dataclass(frozen=True)
class AttributeContains:
    """Match elements whose attribute contains a fragment.

    Attributes:
        attribute: Attribute name, usually ``class``.
        fragment: Substring that must be present.
        tag: Tag restriction, ``*`` for any.
        excluding: Optional substring that must not be present, for
            ``[class*=price]:not([class*=original])`` style rules.
    """

    attribute: str
    fragment: str
    tag: str = "*"
    excluding: str | None = None

    @property
    def css(self) -> str:
        selector = (
            f"{self.tag}[{self.attribute}*={_css_string(self.fragment)}]"
        )
        if self.excluding:
            selector += (
                f":not([{self.attribute}*={_css_string(self.excluding)}])"
            )
        return selector

    def describe(self) -> str:
        return f"attribute-contains {self.css}"


@dataclass(frozen=True)
class RoleMatch:
    """Match elements by accessible role and optional accessible name.

    Attributes:
        role: ARIA role, explicit or implicit (``button``, ``link``, ...).
        name: Case-insensitive regular expression searched in the
            accessible name. None matches any name.
    """

    role: str
    name: str | None = None

    def __post_init__(self) -> None:
        if self.name is not None:
            re.compile(self.name)

    def name_matches(self, accessible_name: str) -> bool:
        if self.name is None:
            return True
        return re.search(self.name, accessible_name, re.IGNORECASE) is not None

    def describe(self) -> str:
        if self.name is None:
            return f"role {self.role}"
        return f"role {self.role} name~/{self.name}/"


@dataclass(frozen=True)
class TextMatch:
    """Match the innermost elements whose normalized text matches a pattern."""

    pattern: str
    tag: str = "*"

    def __post_init__(self) -> None:
        re.compile(self.pattern)

    def matches(self, text: str) -> bool:
        return re.search(self.pattern, text, re.IGNORECASE) is not None

    def describe(self) -> str:
        return f"text {self.tag}~/{self.pattern}/"


@dataclass(frozen=True)
class Structural:
    """Match elements by tag plus ancestor and descendant context.

    Attributes:
        tag: Tag of the element to return.
        ancestor: CSS selector some ancestor must match.
        descendant: Simple CSS selector some descendant must match.
    """

    tag: str
    ancestor: str | None = None
    descendant: str | None = None

    @property
    def css(self) -> str:
        """CSS for the tag/ancestor part; descendant is filtered separately."""
        if self.ancestor:
            return f"{self.ancestor} {self.tag}"
        return self.tag

    def describe(self) -> str:
        text = f"structural {self.css}"
        if self.descendant:
            text += f" has({self.descendant})"
        return text


Probe = AttributeEquals | AttributeContains | RoleMatch | TextMatch | Structural

PROBE_TYPES: tuple[type, ...] = (
    AttributeEquals,
    AttributeContains,
    RoleMatch,
    TextMatch,
    Structural,
)


@dataclass(frozen=True, init=False)
class SelectorStrategy:
    """An immutable, ordered list of probes for one logical field.

    Probes are evaluated in the given order and evaluation stops at the
    first probe yielding at least one match. The probe position (1-based)
    is reported as the confidence level of the match.

    Attributes:
        probes: The ordered probes.
        description: Human-readable name used in logs and diagnostics.
        require_interactable: When set, only matches the page reports as
            visible and enabled within the probe timeout count.
    """

    probes: tuple[Probe, ...]
    description: str = ""
    require_interactable: bool = False

    def __init__(
        self,
        *probes: Probe,
        description: str = "",
        require_interactable: bool = False,
    ) -> None:
        if not probes:
            raise ValueError("A selector strategy needs at least one probe")
        for probe in probes:
            if not isinstance(probe, PROBE_TYPES):
                raise TypeError(
                    f"Strategy entries must be probes, got {type(probe).__name__}"
                )
        object.__setattr__(self, "probes", tuple(probes))
        object.__setattr__(self, "description", description)
        object.__setattr__(
            self, "require_interactable", require_interactable
        )

    def __iter__(self):
        return iter(self.probes)

    def __len__(self) -> int:
        return len(self.probes)

    def then(self, *probes: Probe) -> SelectorStrategy:
        """Return a new strategy with lower-priority probes appended."""
        return SelectorStrategy(
            *self.probes,
            *probes,
            description=self.description,
            require_interactable=self.require_interactable,
        )

