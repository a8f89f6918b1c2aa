"""
Crawl bookkeeping models: per-combination fetch outcomes, the crawl session,
crawl and reconciliation results.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Set

from symbol_catalog.models.symbol import Symbol
from symbol_catalog.taxonomy import Combination


class ReconcileMode(str, Enum):
    """What reconciliation does with stored keys absent from a crawl."""

    RETAIN = "retain"
    PRUNE = "prune"


@dataclass
class FetchOutcome:
    """What happened while paging one combination."""

    combination: Combination
    completed: bool = False
    failed: bool = False
    error: Optional[str] = None
    pages: int = 0
    symbols: int = 0
    skipped: int = 0
    hit_page_cap: bool = False


@dataclass
class CrawlSession:
    """Ephemeral statistics for one crawl; logged, never persisted."""

    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    attempted: Set[Combination] = field(default_factory=set)
    failed: Set[Combination] = field(default_factory=set)
    pages_fetched: int = 0
    symbols_observed: int = 0
    entries_skipped: int = 0
    finished_at: Optional[datetime] = None

    def record(self, outcome: FetchOutcome) -> None:
        self.attempted.add(outcome.combination)
        if outcome.failed:
            self.failed.add(outcome.combination)
        self.pages_fetched += outcome.pages
        self.symbols_observed += outcome.symbols
        self.entries_skipped += outcome.skipped

    def finish(self) -> None:
        self.finished_at = datetime.now(timezone.utc)

    @property
    def elapsed_seconds(self) -> float:
        end = self.finished_at or datetime.now(timezone.utc)
        return (end - self.started_at).total_seconds()

    def summary(self) -> Dict[str, float]:
        return {
            "attempted": len(self.attempted),
            "failed": len(self.failed),
            "pages": self.pages_fetched,
            "observed": self.symbols_observed,
            "skipped": self.entries_skipped,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
        }


@dataclass
class CrawlResult:
    symbols: List[Symbol]
    failed_combinations: List[Combination]
    completed_combinations: List[Combination]
    interrupted_combinations: List[Combination] = field(default_factory=list)
    cancelled: bool = False
    session: CrawlSession = field(default_factory=CrawlSession)

    @property
    def partial(self) -> bool:
        return self.cancelled or bool(self.failed_combinations)


@dataclass
class ReconcileSummary:
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    deleted: int = 0
    retained: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "deleted": self.deleted,
            "retained": self.retained,
        }


@dataclass
class UpdateResult:
    """Outcome of update_database: success, possibly with degraded coverage."""

    success: bool
    failed_combinations: List[Combination]
    reconcile: ReconcileSummary
    mode: ReconcileMode
    cancelled: bool = False
    interrupted_combinations: List[Combination] = field(default_factory=list)
    session: Optional[CrawlSession] = None

    @property
    def degraded(self) -> bool:
        return self.cancelled or bool(self.failed_combinations)
