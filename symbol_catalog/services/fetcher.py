"""
Paginated fetcher.
Pages through one taxonomy combination, pacing and retrying every request.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional

from symbol_catalog.client import RateLimiter, RequestBuilder, Transport
from symbol_catalog.config import Config, CrawlConfig
from symbol_catalog.errors import SymbolCatalogError
from symbol_catalog.models.crawl import FetchOutcome
from symbol_catalog.models.symbol import Symbol
from symbol_catalog.parsers.lookup_parser import LookupParser, ParsedPage
from symbol_catalog.taxonomy import Combination, Taxonomy
from symbol_catalog.utils.logger import get_logger


@dataclass
class RetryPolicy:
    """Bounded exponential backoff for retryable fetch errors."""

    max_attempts: int = 4
    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0

    @classmethod
    def from_config(cls, crawl: CrawlConfig) -> "RetryPolicy":
        return cls(
            max_attempts=crawl.max_attempts,
            base_delay=crawl.backoff_base,
            max_delay=crawl.backoff_max,
        )

    def delay(self, attempt: int) -> float:
        """Wait before the retry that follows the given (1-based) failed attempt."""
        return min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)

    def should_retry(self, attempt: int, error: Exception) -> bool:
        return getattr(error, "retryable", False) and attempt < self.max_attempts


class PaginatedFetcher:
    """
    Lazily yields the symbols of one combination, page by page.

    Each call to fetch() starts again from the first page. Failures never
    escape: they end the stream and are recorded on the FetchOutcome.
    """

    def __init__(
        self,
        transport: Transport,
        parser: LookupParser,
        rate_limiter: RateLimiter,
        request_builder: RequestBuilder,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        page_size: int = 100,
        max_pages: int = 100,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.transport = transport
        self.parser = parser
        self.rate_limiter = rate_limiter
        self.request_builder = request_builder
        self.retry_policy = retry_policy or RetryPolicy()
        self.page_size = page_size
        self.max_pages = max_pages
        self._sleep = sleep
        self.logger = get_logger(__name__)

    @classmethod
    def from_config(
        cls,
        config: Config,
        transport: Transport,
        rate_limiter: RateLimiter,
        taxonomy: Optional[Taxonomy] = None,
    ) -> "PaginatedFetcher":
        return cls(
            transport,
            LookupParser(config.provider.response, taxonomy),
            rate_limiter,
            RequestBuilder(config.provider),
            retry_policy=RetryPolicy.from_config(config.crawl),
            page_size=config.crawl.page_size,
            max_pages=config.crawl.max_pages,
        )

    async def fetch(
        self,
        combination: Combination,
        outcome: Optional[FetchOutcome] = None,
    ) -> AsyncIterator[Symbol]:
        """
        Yield every symbol the provider lists for a combination.

        Args:
            combination: Taxonomy combination to page through
            outcome: Receives page/symbol counts and the completion status
        """
        outcome = outcome or FetchOutcome(combination)
        offset = 0

        while outcome.pages < self.max_pages:
            try:
                page = await self._fetch_page(combination, offset)
            except SymbolCatalogError as exc:
                outcome.failed = True
                outcome.error = f"{type(exc).__name__}: {exc}"
                self.logger.warning("Combination %s failed after %s pages: %s", combination, outcome.pages, exc)
                return

            outcome.pages += 1
            outcome.skipped += page.skipped
            outcome.symbols += len(page.symbols)
            self.logger.debug(
                "%s page %s: %s symbols, %s skipped",
                combination, outcome.pages, len(page.symbols), page.skipped,
            )
            for symbol in page.symbols:
                yield symbol

            if not page.has_next:
                outcome.completed = True
                return
            offset += page.entries

        outcome.hit_page_cap = True
        outcome.completed = True
        self.logger.warning("Combination %s stopped at the %s page cap", combination, self.max_pages)

    async def _fetch_page(self, combination: Combination, offset: int) -> ParsedPage:
        params = self.request_builder.params(combination, offset, self.page_size)
        attempt = 0
        while True:
            attempt += 1
            await self.rate_limiter.acquire()
            try:
                raw = await self.transport.get(params)
                return self.parser.parse_page(raw, combination, offset=offset)
            except SymbolCatalogError as exc:
                if not self.retry_policy.should_retry(attempt, exc):
                    raise
                delay = self.retry_policy.delay(attempt)
                self.logger.info(
                    "Retrying %s offset %s in %.1fs (attempt %s/%s): %s",
                    combination, offset, delay, attempt, self.retry_policy.max_attempts, exc,
                )
                await self._sleep(delay)
