"""Exception types for extraction and traversal errors.

Only faults that cross a component boundary are exceptions. A missing field,
a stalled paginator or an exhausted budget are ordinary outcomes and are
represented as values (FieldStatus, TerminationReason, a False claim).
"""

from typing import Any


class TrawlException(Exception):
    """Base class for all trawl errors.

    Subclasses carry the URL that triggered the error plus an optional dict
    of context, which is rendered into the message for log readability.
    """

    def __init__(
        self,
        message: str,
        url: str = "",
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable description of the fault.
            url: The page URL involved, if any.
            context: Optional dict of additional context (selector, counts, etc).
        """
        self.message = message
        self.url = url
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with context.

        Returns:
            Formatted error message string.
        """
        parts = [self.message]
        if self.url:
            parts.append(f"URL: {self.url}")

        if self.context:
            parts.append("Context:")
            for key, value in self.context.items():
                parts.append(f"  {key}: {value}")

        return "\n".join(parts)


class ProbeTimeout(TrawlException):
    """Raised by a page collaborator when a bounded probe wait expires.

    The rule engine treats this exactly like "no match"; it only shows up
    in field diagnostics.
    """

    def __init__(self, probe: str, timeout: float, url: str = "") -> None:
        self.probe = probe
        self.timeout = timeout
        super().__init__(
            f"Probe {probe} timed out after {timeout}s",
            url,
            {"probe": probe, "timeout": timeout},
        )


class PageAccessFault(TrawlException):
    """Raised when a page cannot be opened or read.

    Wraps transport errors, browser errors and server errors coming from a
    page source. The traversal coordinator records it per URL and carries on.
    """

    def __init__(
        self,
        url: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, url, context)


class RequiredFieldMissing(TrawlException):
    """Raised when an extraction result lacks a required field.

    Attributes:
        field_name: The first required field that resolved to absent.
        missing: Every required field that resolved to absent.
    """

    def __init__(
        self,
        field_name: str,
        url: str = "",
        missing: tuple[str, ...] = (),
    ) -> None:
        self.field_name = field_name
        self.missing = missing or (field_name,)
        super().__init__(
            f"Required field '{field_name}' not found",
            url,
            {"missing": ", ".join(self.missing)},
        )


class BudgetConfigurationError(TrawlException):
    """Raised before a run starts when its budget can never admit work."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, context=context)


class AccountingClosedError(TrawlException):
    """Raised when an outcome is recorded after the run was finalized."""

    def __init__(self, url: str) -> None:
        super().__init__("Run accounting already finalized", url)


class PaginationStateError(TrawlException):
    """Raised when a terminated pagination state is stepped again."""
