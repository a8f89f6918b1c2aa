"""
Exception hierarchy for the symbol catalog.

Fetch-level errors carry a ``retryable`` flag the paginated fetcher consults
before backing off and trying again.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, Optional


class SymbolCatalogError(Exception):
    """Base error for the symbol catalog."""

    retryable: bool = False

    def __init__(self, message: str, *, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.context = context or {}


class MalformedResponse(SymbolCatalogError):
    """A page payload could not be decoded as the expected shape."""

    retryable = True


class TransientNetworkError(SymbolCatalogError):
    """Connection failure, timeout, throttling or 5xx status."""

    retryable = True


class InvalidCombination(SymbolCatalogError):
    """The provider explicitly rejected the query parameters."""


class StoreUnavailable(SymbolCatalogError):
    """The database file is missing, locked or corrupt."""


class AllCombinationsFailed(SymbolCatalogError):
    """Every attempted taxonomy combination failed during a crawl."""

    def __init__(self, failed: Iterable[Any], *, context: Optional[Dict[str, Any]] = None) -> None:
        self.failed = list(failed)
        super().__init__(
            f"All {len(self.failed)} attempted combinations failed",
            context=context,
        )
