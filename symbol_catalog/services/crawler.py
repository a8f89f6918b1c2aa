"""
Crawl orchestrator.
Runs paginated fetches for every combination selected by a filter through a
bounded worker pool and merges the results into one deduplicated candidate set.
"""
from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Tuple

from symbol_catalog.errors import AllCombinationsFailed
from symbol_catalog.models.crawl import CrawlResult, CrawlSession, FetchOutcome
from symbol_catalog.models.symbol import Symbol, merge_symbol
from symbol_catalog.services.fetcher import PaginatedFetcher
from symbol_catalog.taxonomy import DEFAULT_TAXONOMY, Combination, CrawlFilter, Taxonomy
from symbol_catalog.utils.logger import get_logger


SymbolKey = Tuple[str, str]


class CrawlOrchestrator:
    """Coordinates fetch workers across taxonomy combinations."""

    def __init__(
        self,
        fetcher: PaginatedFetcher,
        taxonomy: Optional[Taxonomy] = None,
        max_concurrency: int = 4,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.fetcher = fetcher
        self.taxonomy = taxonomy or DEFAULT_TAXONOMY
        self.max_concurrency = max_concurrency
        self.logger = get_logger(__name__)

    async def crawl(
        self,
        crawl_filter: Optional[CrawlFilter] = None,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CrawlResult:
        """
        Crawl every combination matching the filter.

        Args:
            crawl_filter: Taxonomy filter, wildcards allowed (default: everything)
            timeout: Seconds before the crawl stops and returns what it has
            cancel_event: Setting this event stops the crawl the same way

        Returns:
            CrawlResult with deduplicated symbols and per-combination status

        Raises:
            ValueError: the filter selects no combination
            AllCombinationsFailed: every attempted combination failed
        """
        crawl_filter = crawl_filter or CrawlFilter()
        combinations = self.taxonomy.expand(crawl_filter)
        if not combinations:
            raise ValueError(f"Filter {crawl_filter} matches no taxonomy combination")

        session = CrawlSession()
        self.logger.info(
            "Crawl started: %s combinations, concurrency %s, taxonomy %s",
            len(combinations), self.max_concurrency, self.taxonomy.version,
        )

        queue: asyncio.Queue = asyncio.Queue()
        for index, combination in enumerate(combinations):
            queue.put_nowait((index, combination))

        buckets: Dict[int, Dict[SymbolKey, Symbol]] = {}
        outcomes: Dict[int, FetchOutcome] = {}
        stop = asyncio.Event()
        workers = [
            asyncio.create_task(self._worker(queue, stop, buckets, outcomes))
            for _ in range(min(self.max_concurrency, len(combinations)))
        ]
        cancelled = await self._run(workers, stop, timeout, cancel_event)

        # Merge in declaration order so the winner per key does not depend on
        # which worker finished first.
        merged: Dict[SymbolKey, Symbol] = {}
        for index in sorted(buckets):
            for symbol in buckets[index].values():
                merge_symbol(merged, symbol)

        completed: List[Combination] = []
        failed: List[Combination] = []
        interrupted: List[Combination] = []
        for index in sorted(outcomes):
            outcome = outcomes[index]
            session.record(outcome)
            if outcome.failed:
                failed.append(outcome.combination)
            elif outcome.completed:
                completed.append(outcome.combination)
            else:
                interrupted.append(outcome.combination)
        session.finish()

        self.logger.info(
            "Crawl finished: %s unique symbols, %s completed, %s failed, %s interrupted%s",
            len(merged), len(completed), len(failed), len(interrupted),
            " (cancelled)" if cancelled else "",
        )
        if failed:
            self.logger.warning("Failed combinations: %s", ", ".join(str(c) for c in failed))

        if not cancelled and not completed:
            raise AllCombinationsFailed(failed, context={"session": session.summary()})

        return CrawlResult(
            symbols=list(merged.values()),
            failed_combinations=failed,
            completed_combinations=completed,
            interrupted_combinations=interrupted,
            cancelled=cancelled,
            session=session,
        )

    async def _worker(
        self,
        queue: asyncio.Queue,
        stop: asyncio.Event,
        buckets: Dict[int, Dict[SymbolKey, Symbol]],
        outcomes: Dict[int, FetchOutcome],
    ) -> None:
        while not stop.is_set():
            try:
                index, combination = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            outcome = FetchOutcome(combination)
            outcomes[index] = outcome
            bucket = buckets.setdefault(index, {})
            async for symbol in self.fetcher.fetch(combination, outcome):
                merge_symbol(bucket, symbol)

    async def _run(
        self,
        workers: List[asyncio.Task],
        stop: asyncio.Event,
        timeout: Optional[float],
        cancel_event: Optional[asyncio.Event],
    ) -> bool:
        """Wait for the workers; returns True when the crawl was cut short."""
        everything = asyncio.gather(*workers)
        waiters = {everything}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            await self._stop_workers(everything, workers, stop)
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if everything in done:
            if everything.exception() is not None:
                await self._stop_workers(everything, workers, stop)
            # Re-raise anything unexpected from a worker
            everything.result()
            return False

        self.logger.warning("Crawl %s; stopping workers", "timed out" if not done else "cancelled")
        await self._stop_workers(everything, workers, stop)
        return True

    @staticmethod
    async def _stop_workers(everything: asyncio.Future, workers: List[asyncio.Task], stop: asyncio.Event) -> None:
        stop.set()
        everything.cancel()
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
