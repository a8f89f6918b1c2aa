"""
Symbol catalog: crawls a finance provider's instrument lookup into a local
SQLite database and answers listing and search queries from it.

    import asyncio
    from symbol_catalog import AssetClass, Category, Exchange, get_symbols, search_symbols

    symbols = asyncio.run(get_symbols(AssetClass.EQUITY, Category.TECHNOLOGY, Exchange.NASDAQ))
    matches = asyncio.run(search_symbols("Apple", "Equity"))

update_database() reconciles in the mode configured by store.reconcile_mode,
which defaults to "retain": symbols missing from a crawl stay in the store.
"""
from typing import List, Optional, Union

from symbol_catalog.config import Config, get_config
from symbol_catalog.errors import (
    AllCombinationsFailed,
    InvalidCombination,
    MalformedResponse,
    StoreUnavailable,
    SymbolCatalogError,
    TransientNetworkError,
)
from symbol_catalog.models.crawl import ReconcileMode, UpdateResult
from symbol_catalog.models.symbol import Symbol
from symbol_catalog.services.catalog_service import CatalogService
from symbol_catalog.taxonomy import AssetClass, Category, CrawlFilter, Exchange

__version__ = "1.0.0"


def _service(config: Optional[Config] = None) -> CatalogService:
    return CatalogService(config or get_config())


async def get_symbols(
    asset_class: Union[AssetClass, str] = AssetClass.ALL,
    category: Union[Category, str] = Category.ALL,
    exchange: Union[Exchange, str] = Exchange.ALL,
    *,
    config: Optional[Config] = None,
) -> List[Symbol]:
    """Symbols matching the given asset class, category and exchange (ALL = any)."""
    return await _service(config).get_symbols(asset_class, category, exchange)


async def search_symbols(
    keyword: str,
    asset_class: Union[AssetClass, str] = AssetClass.ALL,
    *,
    config: Optional[Config] = None,
) -> List[Symbol]:
    """Symbols whose ticker or name contains keyword, case-insensitively."""
    return await _service(config).search_symbols(keyword, asset_class)


async def get_symbol(
    ticker: str,
    exchange: Optional[Union[Exchange, str]] = None,
    *,
    config: Optional[Config] = None,
) -> Optional[Symbol]:
    return await _service(config).get_symbol(ticker, exchange)


async def update_database(
    crawl_filter: Optional[CrawlFilter] = None,
    *,
    mode: Optional[Union[ReconcileMode, str]] = None,
    timeout: Optional[float] = None,
    config: Optional[Config] = None,
) -> UpdateResult:
    """
    Crawl the provider and reconcile into the local database.

    Raises AllCombinationsFailed when no combination could be fetched and
    StoreUnavailable when the database could not be written.
    """
    return await _service(config).update_database(crawl_filter, mode=mode, timeout=timeout)


async def get_symbols_count(*, config: Optional[Config] = None) -> int:
    service = _service(config)
    await service.ensure_store()
    return await service.symbol_repo.count()


async def get_distinct_asset_classes(*, config: Optional[Config] = None) -> List[str]:
    service = _service(config)
    await service.ensure_store()
    return await service.symbol_repo.distinct_asset_classes()


async def get_distinct_categories(*, config: Optional[Config] = None) -> List[str]:
    service = _service(config)
    await service.ensure_store()
    return await service.symbol_repo.distinct_categories()


async def get_distinct_exchanges(*, config: Optional[Config] = None) -> List[str]:
    service = _service(config)
    await service.ensure_store()
    return await service.symbol_repo.distinct_exchanges()


async def get_symbols_df(*, config: Optional[Config] = None):
    """Whole catalog as a pandas DataFrame, one row per symbol."""
    import pandas as pd

    symbols = await get_symbols(config=config)
    columns = ["ticker", "name", "category", "asset_class", "exchange", "type_code"]
    return pd.DataFrame(
        [
            (s.ticker, s.name, s.category.value, s.asset_class.value, s.exchange, s.type_code)
            for s in symbols
        ],
        columns=columns,
    )


__all__ = [
    "AllCombinationsFailed",
    "AssetClass",
    "CatalogService",
    "Category",
    "Config",
    "CrawlFilter",
    "Exchange",
    "InvalidCombination",
    "MalformedResponse",
    "ReconcileMode",
    "StoreUnavailable",
    "Symbol",
    "SymbolCatalogError",
    "TransientNetworkError",
    "UpdateResult",
    "get_distinct_asset_classes",
    "get_distinct_categories",
    "get_distinct_exchanges",
    "get_symbol",
    "get_symbols",
    "get_symbols_count",
    "get_symbols_df",
    "search_symbols",
    "update_database",
]
