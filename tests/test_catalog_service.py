"""End-to-end tests: update_database against a simulated provider, then query."""
import asyncio
import sqlite3

import pytest

import symbol_catalog
from symbol_catalog.errors import AllCombinationsFailed, StoreUnavailable
from symbol_catalog.models.crawl import ReconcileMode
from symbol_catalog.repositories.symbol_repository import SCHEMA
from symbol_catalog.services import catalog_service
from symbol_catalog.services.catalog_service import CatalogService
from symbol_catalog.taxonomy import AssetClass, Category, Combination, CrawlFilter, Exchange, Taxonomy

from conftest import FakeTransport, doc, lookup_page, provider_error


TAXONOMY = Taxonomy(
    pairs=[
        (AssetClass.EQUITY, Category.EQUITY),
        (AssetClass.EQUITY, Category.TECHNOLOGY),
        (AssetClass.ETF, Category.BOND),
    ],
    venues={
        AssetClass.EQUITY: [Exchange.NASDAQ, Exchange.NYSE],
        AssetClass.ETF: [Exchange.NYSE_ARCA],
    },
)
EQUITY_EQUITY_NASDAQ = Combination(AssetClass.EQUITY, Category.EQUITY, Exchange.NASDAQ)
EQUITY_EQUITY_NYSE = Combination(AssetClass.EQUITY, Category.EQUITY, Exchange.NYSE)
TECH_NASDAQ = Combination(AssetClass.EQUITY, Category.TECHNOLOGY, Exchange.NASDAQ)
TECH_NYSE = Combination(AssetClass.EQUITY, Category.TECHNOLOGY, Exchange.NYSE)
BOND_ARCA = Combination(AssetClass.ETF, Category.BOND, Exchange.NYSE_ARCA)

BOND_ETFS = [
    doc("BND", "Vanguard Total Bond Market ETF", quote_type="ETF", exchange="PCX"),
    doc("AGG", "iShares Core US Aggregate Bond ETF", quote_type="ETF", exchange="PCX"),
    doc("HYG", "iShares iBoxx High Yield Corporate Bond", quote_type="ETF", exchange="PCX"),
]


def provider(**overrides) -> FakeTransport:
    """A provider that rejects (Equity, Equity, NASDAQ) and serves everything else."""
    transport = FakeTransport()
    transport.add(EQUITY_EQUITY_NASDAQ, provider_error("Bad Request", "Invalid category for exchange"))
    transport.add(EQUITY_EQUITY_NYSE, lookup_page([doc("BRK-B", "Berkshire Hathaway", exchange="NYQ")], total=1))
    transport.add(TECH_NASDAQ, lookup_page([doc("AAPL", "Apple Inc."), doc("MSFT", "Microsoft")], total=3))
    transport.add(TECH_NASDAQ, lookup_page([doc("ETFX", "ETF Tech Holdings")], total=3), offset=2)
    transport.add(TECH_NYSE, lookup_page([doc("IBM", "International Business Machines", exchange="NYQ")], total=1))
    transport.add(BOND_ARCA, lookup_page(BOND_ETFS, total=3))
    for combination, response in overrides.items():
        transport.add(globals()[combination], response)
    return transport


def make_service(config, transport) -> CatalogService:
    return CatalogService(config, transport=transport, taxonomy=TAXONOMY)


class TestUpdateDatabase:

    @pytest.mark.asyncio
    async def test_rejected_combination_is_reported_and_rest_persisted(self, config):
        service = make_service(config, provider())
        result = await service.update_database()

        assert result.success
        assert result.degraded
        assert result.mode is ReconcileMode.RETAIN
        tickers = {s.ticker for s in await service.get_symbols()}
        assert tickers == {"BRK-B", "AAPL", "MSFT", "ETFX", "IBM", "BND", "AGG", "HYG"}
        assert result.reconcile.inserted == 8

    @pytest.mark.asyncio
    async def test_clean_run_has_no_failures(self, config):
        result = await make_service(config, provider()).update_database(CrawlFilter(asset_class=AssetClass.ETF))
        assert result.success
        assert result.failed_combinations == []
        assert not result.degraded

    @pytest.mark.asyncio
    async def test_every_combination_failing_leaves_store_unmodified(self, config):
        service = make_service(config, provider())
        await service.update_database()
        before = [s.model_dump() for s in await service.get_symbols()]

        broken = make_service(config, FakeTransport(default=provider_error("Bad Request")))
        with pytest.raises(AllCombinationsFailed) as exc_info:
            await broken.update_database(mode=ReconcileMode.PRUNE)
        assert len(exc_info.value.failed) == len(TAXONOMY.valid_combinations())
        assert [s.model_dump() for s in await service.get_symbols()] == before

    @pytest.mark.asyncio
    async def test_every_combination_failing_creates_no_store(self, config):
        service = make_service(config, FakeTransport(default=provider_error("Not Found")))
        with pytest.raises(AllCombinationsFailed):
            await service.update_database()
        assert not service.symbol_repo.exists

    @pytest.mark.asyncio
    async def test_repeated_update_is_idempotent(self, config):
        service = make_service(config, provider())
        await service.update_database()
        before = [s.model_dump() for s in await service.get_symbols()]

        result = await make_service(config, provider()).update_database()
        assert result.reconcile.inserted == 0
        assert result.reconcile.updated == 0
        assert result.reconcile.unchanged == 8
        assert [s.model_dump() for s in await service.get_symbols()] == before

    @pytest.mark.asyncio
    async def test_default_mode_retains_absent_symbols(self, config):
        await make_service(config, provider()).update_database()
        shrunk = provider(TECH_NASDAQ=lookup_page([doc("AAPL", "Apple Inc.")], total=1))

        service = make_service(config, shrunk)
        result = await service.update_database()
        assert result.reconcile.retained == 2
        assert {"MSFT", "ETFX"} <= {s.ticker for s in await service.get_symbols()}

    @pytest.mark.asyncio
    async def test_prune_removes_absent_symbols_within_filter(self, config):
        await make_service(config, provider()).update_database()
        shrunk = provider(BOND_ARCA=lookup_page(BOND_ETFS[:1], total=1))

        service = make_service(config, shrunk)
        result = await service.update_database(CrawlFilter(asset_class=AssetClass.ETF), mode="prune")
        assert result.mode is ReconcileMode.PRUNE
        assert result.reconcile.deleted == 2
        tickers = {s.ticker for s in await service.get_symbols()}
        assert "AGG" not in tickers and "HYG" not in tickers
        assert {"BND", "AAPL", "IBM"} <= tickers

    @pytest.mark.asyncio
    async def test_prune_falls_back_to_retain_on_partial_crawl(self, config):
        await make_service(config, provider()).update_database()
        shrunk = provider(TECH_NASDAQ=lookup_page([doc("AAPL", "Apple Inc.")], total=1))

        service = make_service(config, shrunk)
        result = await service.update_database(mode=ReconcileMode.PRUNE)
        assert result.reconcile.deleted == 0
        assert result.reconcile.retained == 2
        assert await service.symbol_repo.count() == 8

    @pytest.mark.asyncio
    async def test_mode_from_config(self, config):
        await make_service(config, provider()).update_database()
        config.store.reconcile_mode = ReconcileMode.PRUNE
        shrunk = provider(BOND_ARCA=lookup_page(BOND_ETFS[:2], total=2))

        result = await make_service(config, shrunk).update_database(CrawlFilter(asset_class=AssetClass.ETF))
        assert result.mode is ReconcileMode.PRUNE
        assert result.reconcile.deleted == 1

    @pytest.mark.asyncio
    async def test_timeout_saves_what_was_collected(self, config):
        async def hang(params):
            await asyncio.sleep(30)
            return lookup_page([], total=0)

        service = make_service(config, provider(BOND_ARCA=hang))
        result = await service.update_database(timeout=0.5, mode=ReconcileMode.PRUNE)

        assert result.cancelled
        assert result.degraded
        assert result.interrupted_combinations == [BOND_ARCA]
        tickers = {s.ticker for s in await service.get_symbols()}
        assert {"AAPL", "IBM", "BRK-B"} <= tickers
        assert not tickers & {"BND", "AGG", "HYG"}

    @pytest.mark.asyncio
    async def test_store_write_failure_surfaces(self, config):
        service = make_service(config, provider())
        service.symbol_repo.path.write_bytes(b"garbage" * 200)
        with pytest.raises(StoreUnavailable):
            await service.update_database()

    @pytest.mark.asyncio
    async def test_owned_client_is_closed(self, config, monkeypatch):
        clients = []

        class FakeClient:
            def __init__(self, config):
                self.closed = False
                clients.append(self)

            async def get(self, params):
                return lookup_page([], total=0)

            def close(self):
                self.closed = True

        monkeypatch.setattr(catalog_service, "LookupClient", FakeClient)
        result = await CatalogService(config, taxonomy=TAXONOMY).update_database()
        assert result.success
        assert len(clients) == 1 and clients[0].closed


class TestQueries:

    @pytest.mark.asyncio
    async def test_list_restricted_to_each_pair_matches_exactly(self, config):
        service = make_service(config, provider())
        await service.update_database()
        for asset_class, category in TAXONOMY.pairs:
            for symbol in await service.get_symbols(asset_class, category):
                assert symbol.asset_class is asset_class
                assert symbol.category is category

    @pytest.mark.asyncio
    async def test_search_etf_within_etf_class(self, config):
        service = make_service(config, provider())
        await service.update_database()

        found = await service.search_symbols("ETF", AssetClass.ETF)
        assert [s.ticker for s in found] == ["AGG", "BND"]
        assert all(s.asset_class is AssetClass.ETF for s in found)
        # The equity named "ETF Tech Holdings" shows up without the filter
        assert "ETFX" in {s.ticker for s in await service.search_symbols("etf")}
        assert await service.search_symbols("zzz_nonexistent", AssetClass.ALL) == []

    @pytest.mark.asyncio
    async def test_missing_store_without_seed_raises(self, config):
        service = make_service(config, provider())
        with pytest.raises(StoreUnavailable):
            await service.get_symbols()

    @pytest.mark.asyncio
    async def test_missing_store_downloads_seed(self, config, monkeypatch):
        config.store.seed_url = "https://example.com/symbols.db"
        downloads = []

        def fake_download(url, path):
            downloads.append(url)
            conn = sqlite3.connect(path)
            conn.executescript(SCHEMA)
            conn.execute(
                "INSERT INTO symbols VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                ("SPY", "NYSE Arca", "SPDR S&P 500 ETF", "ETF", "Equity", "ETF",
                 "2024-01-01T00:00:00+00:00", "2024-01-01T00:00:00+00:00"),
            )
            conn.commit()
            conn.close()
            return path

        monkeypatch.setattr(catalog_service, "download_seed_database", fake_download)
        service = make_service(config, provider())
        symbols = await service.search_symbols("spdr")
        assert [s.ticker for s in symbols] == ["SPY"]
        assert downloads == ["https://example.com/symbols.db"]

        await service.get_symbols()
        assert len(downloads) == 1


class TestPublicApi:

    @pytest.mark.asyncio
    async def test_module_functions_use_given_config(self, config):
        await make_service(config, provider()).update_database()

        assert await symbol_catalog.get_symbols_count(config=config) == 8
        assert await symbol_catalog.get_distinct_asset_classes(config=config) == ["ETF", "Equity"]
        assert await symbol_catalog.get_distinct_categories(config=config) == ["Bond", "Equity", "Technology"]
        assert await symbol_catalog.get_distinct_exchanges(config=config) == ["NASDAQ", "NYSE", "NYSE Arca"]

        apple = await symbol_catalog.get_symbol("AAPL", config=config)
        assert apple.name == "Apple Inc."
        tech = await symbol_catalog.get_symbols("Equity", "Technology", "NASDAQ", config=config)
        assert [s.ticker for s in tech] == ["AAPL", "ETFX", "MSFT"]
        bonds = await symbol_catalog.search_symbols("bond", "ETF", config=config)
        assert len(bonds) == 3

    @pytest.mark.asyncio
    async def test_symbols_dataframe(self, config):
        await make_service(config, provider()).update_database()
        df = await symbol_catalog.get_symbols_df(config=config)
        assert list(df.columns) == ["ticker", "name", "category", "asset_class", "exchange", "type_code"]
        assert len(df) == 8
        assert set(df.loc[df["asset_class"] == "ETF", "ticker"]) == {"BND", "AGG", "HYG"}

    @pytest.mark.asyncio
    async def test_global_config_is_used_by_default(self, config):
        from symbol_catalog.config import set_config

        await make_service(config, provider()).update_database()
        set_config(config)
        assert await symbol_catalog.get_symbols_count() == 8
