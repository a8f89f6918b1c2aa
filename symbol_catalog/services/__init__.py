from symbol_catalog.services.catalog_service import CatalogService
from symbol_catalog.services.crawler import CrawlOrchestrator
from symbol_catalog.services.fetcher import PaginatedFetcher, RetryPolicy

__all__ = ["CatalogService", "CrawlOrchestrator", "PaginatedFetcher", "RetryPolicy"]
