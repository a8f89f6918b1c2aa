"""
Catalog service - crawls the provider into the store and answers lookups.
"""
import asyncio
from typing import List, Optional, Union

from symbol_catalog.client import LookupClient, RateLimiter, Transport, download_seed_database
from symbol_catalog.config import Config
from symbol_catalog.models.crawl import ReconcileMode, UpdateResult
from symbol_catalog.models.symbol import Symbol
from symbol_catalog.repositories.symbol_repository import SymbolRepository
from symbol_catalog.services.crawler import CrawlOrchestrator
from symbol_catalog.services.fetcher import PaginatedFetcher
from symbol_catalog.taxonomy import AssetClass, Category, CrawlFilter, Exchange, Taxonomy
from symbol_catalog.utils.logger import get_logger


class CatalogService:
    """
    Service for keeping the symbol catalog current and reading it back.
    Orchestrates crawling the provider and reconciling into the database.
    """

    def __init__(
        self,
        config: Config,
        symbol_repo: Optional[SymbolRepository] = None,
        transport: Optional[Transport] = None,
        taxonomy: Optional[Taxonomy] = None,
    ):
        """
        Initialize catalog service.

        Args:
            config: Configuration
            symbol_repo: Symbol repository (default: one on config.db_path)
            transport: Provider transport (default: a LookupClient per update)
            taxonomy: Taxonomy to crawl (default: the built-in table)
        """
        self.config = config
        self.symbol_repo = symbol_repo or SymbolRepository(config)
        self.transport = transport
        self.taxonomy = taxonomy
        self.logger = get_logger(__name__)

    def build_crawler(self, transport: Transport) -> CrawlOrchestrator:
        """Wire a crawler whose fetch workers share one rate limiter."""
        rate_limiter = RateLimiter(self.config.crawl.min_request_interval)
        fetcher = PaginatedFetcher.from_config(self.config, transport, rate_limiter, self.taxonomy)
        return CrawlOrchestrator(fetcher, self.taxonomy, self.config.crawl.max_concurrency)

    async def update_database(
        self,
        crawl_filter: Optional[CrawlFilter] = None,
        *,
        mode: Optional[Union[ReconcileMode, str]] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> UpdateResult:
        """
        Crawl the provider and reconcile the results into the store.

        Args:
            crawl_filter: Part of the taxonomy to crawl (default: everything)
            mode: retain or prune (default: config.store.reconcile_mode)
            timeout: Crawl timeout in seconds (default: config.crawl.timeout_seconds)
            cancel_event: Stops the crawl early; collected symbols are still saved

        Returns:
            UpdateResult; failed_combinations is non-empty on degraded runs

        Raises:
            AllCombinationsFailed: nothing usable was fetched; the store is untouched
            StoreUnavailable: the store could not be written; nothing was committed
        """
        crawl_filter = crawl_filter or CrawlFilter()
        mode = ReconcileMode(mode) if mode is not None else self.config.store.reconcile_mode
        if timeout is None:
            timeout = self.config.crawl.timeout_seconds

        transport = self.transport
        owned_client = None
        if transport is None:
            owned_client = transport = LookupClient(self.config)

        try:
            crawler = self.build_crawler(transport)
            result = await crawler.crawl(crawl_filter, timeout=timeout, cancel_event=cancel_event)
        finally:
            if owned_client is not None:
                owned_client.close()

        prune = mode is ReconcileMode.PRUNE
        if prune and result.partial:
            # Absence from an incomplete crawl says nothing about delisting
            self.logger.warning(
                "Crawl incomplete (%s failed, cancelled=%s); not pruning",
                len(result.failed_combinations), result.cancelled,
            )
            prune = False

        summary = await self.symbol_repo.reconcile(result.symbols, prune=prune, scope=crawl_filter)
        self.logger.info("Update complete: %s", result.session.summary())

        return UpdateResult(
            success=True,
            failed_combinations=result.failed_combinations,
            reconcile=summary,
            mode=mode,
            cancelled=result.cancelled,
            interrupted_combinations=result.interrupted_combinations,
            session=result.session,
        )

    async def ensure_store(self) -> None:
        """Fetch the seed database when there is no local store and a seed is configured."""
        if self.symbol_repo.exists or not self.config.store.seed_url:
            return
        await asyncio.to_thread(
            download_seed_database,
            self.config.store.seed_url,
            self.symbol_repo.path,
        )

    async def get_symbols(
        self,
        asset_class: Union[AssetClass, str] = AssetClass.ALL,
        category: Union[Category, str] = Category.ALL,
        exchange: Union[Exchange, str] = Exchange.ALL,
    ) -> List[Symbol]:
        await self.ensure_store()
        return await self.symbol_repo.list_symbols(asset_class, category, exchange)

    async def search_symbols(
        self,
        keyword: str,
        asset_class: Union[AssetClass, str] = AssetClass.ALL,
    ) -> List[Symbol]:
        await self.ensure_store()
        return await self.symbol_repo.search(keyword, asset_class)

    async def get_symbol(self, ticker: str, exchange: Optional[Union[Exchange, str]] = None) -> Optional[Symbol]:
        await self.ensure_store()
        return await self.symbol_repo.get_symbol(ticker, exchange)
