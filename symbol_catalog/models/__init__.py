"""Data models for symbols and crawl bookkeeping."""
from symbol_catalog.models.crawl import (
    CrawlResult,
    CrawlSession,
    FetchOutcome,
    ReconcileMode,
    ReconcileSummary,
    UpdateResult,
)
from symbol_catalog.models.symbol import Symbol, merge_symbol

__all__ = [
    "CrawlResult",
    "CrawlSession",
    "FetchOutcome",
    "ReconcileMode",
    "ReconcileSummary",
    "Symbol",
    "UpdateResult",
    "merge_symbol",
]
