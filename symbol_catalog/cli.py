"""
Command line entry point for the symbol catalog.

Usage examples:
    symbol-catalog update
    symbol-catalog update --asset-class ETF --exchange "NYSE Arca" --prune
    symbol-catalog list --asset-class Equity --category Technology --exchange NASDAQ
    symbol-catalog search apple --asset-class Equity
    symbol-catalog stats
"""
import argparse
import asyncio
import sys
from typing import List, Optional

from symbol_catalog.config import Config, get_config
from symbol_catalog.errors import SymbolCatalogError
from symbol_catalog.models.crawl import ReconcileMode
from symbol_catalog.models.symbol import Symbol
from symbol_catalog.repositories.symbol_repository import SymbolRepository
from symbol_catalog.services.catalog_service import CatalogService
from symbol_catalog.taxonomy import AssetClass, Category, CrawlFilter, Exchange
from symbol_catalog.utils.logger import configure_logging, get_logger


logger = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="Maintain and query the local symbol catalog.")
    parser.add_argument("--config", help="Path to config.yaml (default: bundled or SYMBOL_CATALOG_CONFIG_PATH)")
    parser.add_argument("--db", help="Database file (overrides store.path and SYMBOL_CATALOG_DB_PATH)")
    sub = parser.add_subparsers(dest="command", required=True)

    update = sub.add_parser("update", help="Crawl the provider and reconcile the local database")
    update.add_argument("--asset-class", default=AssetClass.ALL.value, help="Asset class to crawl (default: All)")
    update.add_argument("--category", default=Category.ALL.value, help="Category to crawl (default: All)")
    update.add_argument("--exchange", default=Exchange.ALL.value, help="Exchange to crawl (default: All)")
    update.add_argument("--prune", action="store_true", help="Delete stored symbols the crawl no longer returns")
    update.add_argument("--timeout", type=float, help="Stop the crawl after this many seconds")

    listing = sub.add_parser("list", help="List stored symbols")
    listing.add_argument("--asset-class", default=AssetClass.ALL.value)
    listing.add_argument("--category", default=Category.ALL.value)
    listing.add_argument("--exchange", default=Exchange.ALL.value)

    search = sub.add_parser("search", help="Search stored symbols by ticker or name")
    search.add_argument("keyword")
    search.add_argument("--asset-class", default=AssetClass.ALL.value)

    sub.add_parser("stats", help="Show catalog counts")
    return parser.parse_args(argv)


def _print_symbols(symbols: List[Symbol]) -> None:
    for symbol in symbols:
        print(f"{symbol.ticker:<12} {symbol.exchange:<14} {symbol.asset_class.value:<14} "
              f"{symbol.category.value:<24} {symbol.name}")
    print(f"{len(symbols)} symbols")


async def run(args, config: Config) -> int:
    symbol_repo = SymbolRepository(config, path=args.db) if args.db else None
    service = CatalogService(config, symbol_repo=symbol_repo)

    if args.command == "update":
        crawl_filter = CrawlFilter(
            asset_class=AssetClass(args.asset_class),
            category=Category(args.category),
            exchange=Exchange(args.exchange),
        )
        mode = ReconcileMode.PRUNE if args.prune else None
        result = await service.update_database(crawl_filter, mode=mode, timeout=args.timeout)
        summary = result.reconcile.as_dict()
        print("Update complete: " + ", ".join(f"{k}={v}" for k, v in summary.items()))
        if result.failed_combinations:
            print(f"{len(result.failed_combinations)} combinations failed:")
            for combination in result.failed_combinations:
                print(f"  {combination}")
        if result.interrupted_combinations:
            print(f"{len(result.interrupted_combinations)} combinations were interrupted:")
            for combination in result.interrupted_combinations:
                print(f"  {combination}")
        if result.cancelled:
            print("Crawl was cut short; absent symbols were retained")
        return 0

    if args.command == "list":
        _print_symbols(await service.get_symbols(args.asset_class, args.category, args.exchange))
        return 0

    if args.command == "search":
        _print_symbols(await service.search_symbols(args.keyword, args.asset_class))
        return 0

    await service.ensure_store()
    repo = service.symbol_repo
    print(f"Symbols:       {await repo.count()}")
    print(f"Asset classes: {', '.join(await repo.distinct_asset_classes())}")
    print(f"Categories:    {', '.join(await repo.distinct_categories())}")
    print(f"Exchanges:     {', '.join(await repo.distinct_exchanges())}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config = get_config(config_path=args.config)
    configure_logging(config.logging)

    try:
        return asyncio.run(run(args, config))
    except ValueError as exc:
        # Unknown taxonomy label or a filter matching nothing
        logger.error("%s", exc)
        return 2
    except SymbolCatalogError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
