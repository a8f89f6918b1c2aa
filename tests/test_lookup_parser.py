"""Tests for the lookup page parser."""
import json

import pytest

from symbol_catalog.errors import InvalidCombination, MalformedResponse
from symbol_catalog.parsers.lookup_parser import LookupParser, parse_page
from symbol_catalog.taxonomy import AssetClass, Category, Combination, Exchange

from conftest import doc, lookup_page, provider_error


TECH_NASDAQ = Combination(AssetClass.EQUITY, Category.TECHNOLOGY, Exchange.NASDAQ)
INDEX_SNP = Combination(AssetClass.INDEX, Category.NONE, Exchange.SNP)


class TestParsePage:

    def test_parses_entries(self):
        raw = lookup_page([doc("AAPL", "Apple Inc."), doc("MSFT", "Microsoft Corporation")], total=2)
        page = parse_page(raw, TECH_NASDAQ)

        assert [s.ticker for s in page.symbols] == ["AAPL", "MSFT"]
        apple = page.symbols[0]
        assert apple.name == "Apple Inc."
        assert apple.asset_class is AssetClass.EQUITY
        assert apple.category is Category.TECHNOLOGY
        assert apple.exchange == "NASDAQ"
        assert apple.type_code == "EQUITY"
        assert page.has_next is False
        assert page.skipped == 0

    def test_html_entities_in_names_are_decoded(self):
        page = parse_page(lookup_page([doc("JNJ", "Johnson &amp; Johnson")], total=1), TECH_NASDAQ)
        assert page.symbols[0].name == "Johnson & Johnson"

    def test_malformed_entries_are_skipped(self):
        documents = [
            doc("AAPL", "Apple Inc."),
            {"shortName": "No ticker"},
            "not an object",
            doc("   "),
        ]
        page = parse_page(lookup_page(documents, total=4), TECH_NASDAQ)
        assert [s.ticker for s in page.symbols] == ["AAPL"]
        assert page.skipped == 3
        assert page.entries == 4

    def test_unknown_fields_ignored_and_missing_fields_fall_back(self):
        page = parse_page(lookup_page([{"symbol": "^GSPC", "unexpected": [1, 2]}], total=1), INDEX_SNP)
        symbol = page.symbols[0]
        assert symbol.asset_class is AssetClass.INDEX
        assert symbol.category is Category.NONE
        assert symbol.exchange == "S&P"
        assert symbol.name == ""

    def test_unknown_exchange_code_kept_verbatim(self):
        page = parse_page(lookup_page([doc("ABC", exchange="XQZ")], total=1), TECH_NASDAQ)
        assert page.symbols[0].exchange == "XQZ"

    def test_row_category_wins_when_valid(self):
        page = parse_page(lookup_page([doc("XOM", sector="Energy")], total=1), TECH_NASDAQ)
        assert page.symbols[0].category is Category.ENERGY

    def test_row_category_invalid_for_asset_class_is_skipped(self):
        # Technology is a known label but not an ETF category; the queried Bond must not replace it
        bond_arca = Combination(AssetClass.ETF, Category.BOND, Exchange.NYSE_ARCA)
        raw = lookup_page([doc("XLK", quote_type="ETF", exchange="PCX", categoryName="Technology")], total=1)
        page = parse_page(raw, bond_arca)
        assert page.symbols == []
        assert page.skipped == 1

    def test_unknown_row_category_falls_back_to_query(self):
        bond_arca = Combination(AssetClass.ETF, Category.BOND, Exchange.NYSE_ARCA)
        raw = lookup_page([doc("BND", quote_type="ETF", exchange="PCX", categoryName="Intermediate Core")], total=1)
        assert parse_page(raw, bond_arca).symbols[0].category is Category.BOND

    def test_row_with_other_asset_class_uses_its_own_pair(self):
        # An ETF row returned while querying equities keeps its own class
        raw = lookup_page([doc("SPY", quote_type="ETF", exchange="PCX", categoryName="Equity")], total=1)
        symbol = parse_page(raw, TECH_NASDAQ).symbols[0]
        assert symbol.asset_class is AssetClass.ETF
        assert symbol.category is Category.EQUITY
        assert symbol.exchange == "NYSE Arca"

    def test_row_without_valid_pair_is_skipped(self):
        raw = lookup_page([doc("SPY", quote_type="ETF", exchange="PCX")], total=1)
        page = parse_page(raw, TECH_NASDAQ)
        assert page.symbols == []
        assert page.skipped == 1

    def test_raw_fmt_values(self):
        entry = {"symbol": {"raw": "IBM", "fmt": "IBM"}, "shortName": {"fmt": "IBM Corp"}, "exchange": "NYQ"}
        page = parse_page(lookup_page([entry], total={"raw": 1}), TECH_NASDAQ)
        assert page.symbols[0].ticker == "IBM"
        assert page.symbols[0].name == "IBM Corp"
        assert page.symbols[0].exchange == "NYSE"


class TestPagination:

    def test_total_drives_has_next(self):
        raw = lookup_page([doc("A"), doc("B")], total=5, start=0)
        assert parse_page(raw, TECH_NASDAQ).has_next is True

        raw = lookup_page([doc("E")], total=5, start=4)
        assert parse_page(raw, TECH_NASDAQ).has_next is False

    def test_requested_offset_used_when_start_missing(self):
        raw = lookup_page([doc("C"), doc("D")], total=4)
        assert parse_page(raw, TECH_NASDAQ, offset=0).has_next is True
        assert parse_page(raw, TECH_NASDAQ, offset=2).has_next is False

    def test_has_more_flag_without_total(self):
        assert parse_page(lookup_page([doc("A")], has_more=True), TECH_NASDAQ).has_next is True
        assert parse_page(lookup_page([doc("A")], has_more=False), TECH_NASDAQ).has_next is False

    def test_zero_entries_with_more_indicator_is_exhaustion(self):
        page = parse_page(lookup_page([], has_more=True, total=100), TECH_NASDAQ)
        assert page.symbols == []
        assert page.has_next is False

    def test_missing_documents_is_empty_page(self):
        raw = json.dumps({"finance": {"result": [{"total": 0}], "error": None}}).encode()
        page = parse_page(raw, TECH_NASDAQ)
        assert page.symbols == []
        assert page.has_next is False


class TestErrors:

    @pytest.mark.parametrize("raw", [
        b"<html>Too many requests</html>",
        b"[1, 2, 3]",
        json.dumps({"finance": {"result": "nope"}}).encode(),
        json.dumps({"finance": {"result": [{"documents": {"a": 1}}]}}).encode(),
        b"\xff\xff\xff",
    ])
    def test_unexpected_shapes_are_malformed(self, raw):
        with pytest.raises(MalformedResponse):
            parse_page(raw, TECH_NASDAQ)

    def test_configured_rejection_code_is_invalid_combination(self):
        with pytest.raises(InvalidCombination):
            parse_page(provider_error("Bad Request", "Invalid category"), TECH_NASDAQ)

    def test_other_provider_errors_are_retryable(self):
        with pytest.raises(MalformedResponse) as exc_info:
            parse_page(provider_error("Internal Server Error"), TECH_NASDAQ)
        assert exc_info.value.retryable

    def test_custom_schema(self, config):
        schema = config.provider.response.model_copy(update={"ticker_fields": ["ticker"]})
        parser = LookupParser(schema)
        page = parser.parse_page(lookup_page([{"ticker": "NVDA", "exchange": "NMS"}], total=1), TECH_NASDAQ)
        assert page.symbols[0].ticker == "NVDA"
