"""
Provider taxonomy: asset classes, categories and exchanges, and the
combinations the lookup endpoint accepts as query parameters.

The tables below are maintained empirically. The provider does not publish
which (asset class, category, exchange) triples it serves, so adding a venue
or category means editing these tables and bumping TAXONOMY_VERSION.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union


TAXONOMY_VERSION = "2024.1"

WILDCARD = "All"


class _LabelEnum(str, Enum):
    """String enum looked up by value, member name or alias, case-insensitively."""

    @classmethod
    def _aliases(cls) -> Dict[str, str]:
        return {}

    @classmethod
    def _missing_(cls, value):
        if not isinstance(value, str):
            return None
        wanted = value.strip().lower()
        wanted = cls._aliases().get(wanted, wanted)
        for member in cls:
            if wanted in (member.value.lower(), member.name.lower()):
                return member
        return None

    def __str__(self) -> str:
        return self.value


class AssetClass(_LabelEnum):
    EQUITY = "Equity"
    ETF = "ETF"
    INDEX = "Index"
    CURRENCY = "Currency"
    FUTURE = "Future"
    OPTION = "Option"
    MUTUAL_FUND = "Mutual Fund"
    CRYPTOCURRENCY = "Cryptocurrency"
    ALL = WILDCARD

    @classmethod
    def _aliases(cls) -> Dict[str, str]:
        return {
            "stocks": "equity",
            "stock": "equity",
            "etfs": "etf",
            "indices": "index",
            "currencies": "currency",
            "futures": "future",
            "options": "option",
            "mutualfund": "mutual fund",
            "mutual funds": "mutual fund",
            "mutualfunds": "mutual fund",
            "crypto": "cryptocurrency",
            "cryptocurrencies": "cryptocurrency",
        }


class Category(_LabelEnum):
    # Equity sectors
    TECHNOLOGY = "Technology"
    HEALTHCARE = "Healthcare"
    FINANCIAL_SERVICES = "Financial Services"
    CONSUMER_CYCLICAL = "Consumer Cyclical"
    CONSUMER_DEFENSIVE = "Consumer Defensive"
    INDUSTRIALS = "Industrials"
    COMMUNICATION_SERVICES = "Communication Services"
    ENERGY = "Energy"
    BASIC_MATERIALS = "Basic Materials"
    REAL_ESTATE = "Real Estate"
    UTILITIES = "Utilities"
    # Fund categories
    EQUITY = "Equity"
    BOND = "Bond"
    COMMODITY = "Commodity"
    CURRENCY = "Currency"
    ALTERNATIVE = "Alternative"
    ALLOCATION = "Allocation"
    MONEY_MARKET = "Money Market"
    # Asset classes the provider does not sub-classify
    NONE = "N/A"
    ALL = WILDCARD

    @classmethod
    def _aliases(cls) -> Dict[str, str]:
        return {
            "financial": "financial services",
            "consumer discretionary": "consumer cyclical",
            "consumer staples": "consumer defensive",
            "communication": "communication services",
            "materials": "basic materials",
            "fixed income": "bond",
            "commodities": "commodity",
            "": "n/a",
        }


class Exchange(_LabelEnum):
    # Listed venues
    NYSE = "NYSE"
    NASDAQ = "NASDAQ"
    NYSE_AMERICAN = "NYSE American"
    NYSE_ARCA = "NYSE Arca"
    OTC = "OTC"
    LSE = "LSE"
    TSX = "TSX"
    XETRA = "XETRA"
    FRANKFURT = "Frankfurt"
    EURONEXT_PARIS = "Euronext Paris"
    EURONEXT_AMSTERDAM = "Euronext Amsterdam"
    SIX = "SIX"
    TOKYO = "Tokyo"
    HONG_KONG = "Hong Kong"
    SHANGHAI = "Shanghai"
    SHENZHEN = "Shenzhen"
    NSE = "NSE"
    BSE = "BSE"
    ASX = "ASX"
    # Index publishers
    SNP = "S&P"
    DOW_JONES = "Dow Jones"
    NASDAQ_GIDS = "Nasdaq GIDS"
    CBOE = "Cboe Indices"
    # Derivatives and quote venues
    CME = "CME"
    NYMEX = "NYMEX"
    CBOT = "CBOT"
    COMEX = "COMEX"
    OPR = "OPR"
    CCY = "CCY"
    CCC = "CCC"
    ALL = WILDCARD


AxisValue = Union[AssetClass, Category, Exchange, str]


ASSET_CLASS_CODES: Dict[AssetClass, str] = {
    AssetClass.EQUITY: "equity",
    AssetClass.ETF: "etf",
    AssetClass.INDEX: "index",
    AssetClass.CURRENCY: "currency",
    AssetClass.FUTURE: "future",
    AssetClass.OPTION: "option",
    AssetClass.MUTUAL_FUND: "mutualfund",
    AssetClass.CRYPTOCURRENCY: "cryptocurrency",
}

# Quote-type codes the provider attaches to each returned entry.
TYPE_CODES: Dict[str, AssetClass] = {
    "EQUITY": AssetClass.EQUITY,
    "ETF": AssetClass.ETF,
    "INDEX": AssetClass.INDEX,
    "CURRENCY": AssetClass.CURRENCY,
    "FUTURE": AssetClass.FUTURE,
    "OPTION": AssetClass.OPTION,
    "MUTUALFUND": AssetClass.MUTUAL_FUND,
    "CRYPTOCURRENCY": AssetClass.CRYPTOCURRENCY,
}

# Query code first; any further codes are aliases seen in responses.
EXCHANGE_CODES: Dict[Exchange, Tuple[str, ...]] = {
    Exchange.NYSE: ("NYQ",),
    Exchange.NASDAQ: ("NMS", "NGM", "NCM", "NAS"),
    Exchange.NYSE_AMERICAN: ("ASE",),
    Exchange.NYSE_ARCA: ("PCX",),
    Exchange.OTC: ("PNK", "OQB", "OQX"),
    Exchange.LSE: ("LSE", "IOB"),
    Exchange.TSX: ("TOR",),
    Exchange.XETRA: ("GER",),
    Exchange.FRANKFURT: ("FRA",),
    Exchange.EURONEXT_PARIS: ("PAR",),
    Exchange.EURONEXT_AMSTERDAM: ("AMS",),
    Exchange.SIX: ("EBS",),
    Exchange.TOKYO: ("JPX",),
    Exchange.HONG_KONG: ("HKG",),
    Exchange.SHANGHAI: ("SHH",),
    Exchange.SHENZHEN: ("SHZ",),
    Exchange.NSE: ("NSI",),
    Exchange.BSE: ("BSE",),
    Exchange.ASX: ("ASX",),
    Exchange.SNP: ("SNP",),
    Exchange.DOW_JONES: ("DJI",),
    Exchange.NASDAQ_GIDS: ("NIM",),
    Exchange.CBOE: ("WCB", "CXI"),
    Exchange.CME: ("CME",),
    Exchange.NYMEX: ("NYM",),
    Exchange.CBOT: ("CBT",),
    Exchange.COMEX: ("CMX",),
    Exchange.OPR: ("OPR",),
    Exchange.CCY: ("CCY",),
    Exchange.CCC: ("CCC",),
}

_CODE_TO_EXCHANGE: Dict[str, Exchange] = {
    code: exchange for exchange, codes in EXCHANGE_CODES.items() for code in codes
}

EQUITY_SECTORS: Tuple[Category, ...] = (
    Category.TECHNOLOGY,
    Category.HEALTHCARE,
    Category.FINANCIAL_SERVICES,
    Category.CONSUMER_CYCLICAL,
    Category.CONSUMER_DEFENSIVE,
    Category.INDUSTRIALS,
    Category.COMMUNICATION_SERVICES,
    Category.ENERGY,
    Category.BASIC_MATERIALS,
    Category.REAL_ESTATE,
    Category.UTILITIES,
)

ETF_CATEGORIES: Tuple[Category, ...] = (
    Category.EQUITY,
    Category.BOND,
    Category.COMMODITY,
    Category.CURRENCY,
    Category.ALTERNATIVE,
    Category.ALLOCATION,
    Category.REAL_ESTATE,
)

MUTUAL_FUND_CATEGORIES: Tuple[Category, ...] = (
    Category.EQUITY,
    Category.BOND,
    Category.ALLOCATION,
    Category.ALTERNATIVE,
    Category.MONEY_MARKET,
)

LISTED_VENUES: Tuple[Exchange, ...] = (
    Exchange.NYSE,
    Exchange.NASDAQ,
    Exchange.NYSE_AMERICAN,
    Exchange.NYSE_ARCA,
    Exchange.OTC,
    Exchange.LSE,
    Exchange.TSX,
    Exchange.XETRA,
    Exchange.FRANKFURT,
    Exchange.EURONEXT_PARIS,
    Exchange.EURONEXT_AMSTERDAM,
    Exchange.SIX,
    Exchange.TOKYO,
    Exchange.HONG_KONG,
    Exchange.SHANGHAI,
    Exchange.SHENZHEN,
    Exchange.NSE,
    Exchange.BSE,
    Exchange.ASX,
)

ETF_VENUES: Tuple[Exchange, ...] = (
    Exchange.NYSE_ARCA,
    Exchange.NASDAQ,
    Exchange.NYSE,
    Exchange.LSE,
    Exchange.TSX,
    Exchange.XETRA,
    Exchange.EURONEXT_PARIS,
    Exchange.EURONEXT_AMSTERDAM,
    Exchange.SIX,
    Exchange.TOKYO,
    Exchange.HONG_KONG,
    Exchange.ASX,
)

DEFAULT_PAIRS: Tuple[Tuple[AssetClass, Category], ...] = (
    *((AssetClass.EQUITY, c) for c in EQUITY_SECTORS),
    *((AssetClass.ETF, c) for c in ETF_CATEGORIES),
    *((AssetClass.MUTUAL_FUND, c) for c in MUTUAL_FUND_CATEGORIES),
    (AssetClass.INDEX, Category.NONE),
    (AssetClass.FUTURE, Category.NONE),
    (AssetClass.OPTION, Category.NONE),
    (AssetClass.CURRENCY, Category.NONE),
    (AssetClass.CRYPTOCURRENCY, Category.NONE),
)

DEFAULT_VENUES: Dict[AssetClass, Tuple[Exchange, ...]] = {
    AssetClass.EQUITY: LISTED_VENUES,
    AssetClass.ETF: ETF_VENUES,
    AssetClass.MUTUAL_FUND: (Exchange.NASDAQ,),
    AssetClass.INDEX: (
        Exchange.SNP,
        Exchange.DOW_JONES,
        Exchange.NASDAQ_GIDS,
        Exchange.CBOE,
        Exchange.LSE,
        Exchange.XETRA,
        Exchange.EURONEXT_PARIS,
        Exchange.TOKYO,
        Exchange.HONG_KONG,
    ),
    AssetClass.FUTURE: (Exchange.CME, Exchange.NYMEX, Exchange.CBOT, Exchange.COMEX),
    AssetClass.OPTION: (Exchange.OPR,),
    AssetClass.CURRENCY: (Exchange.CCY,),
    AssetClass.CRYPTOCURRENCY: (Exchange.CCC,),
}


def is_wildcard(value: Optional[AxisValue]) -> bool:
    """True for the query-time "match all" value of any taxonomy axis."""
    if value is None:
        return True
    if isinstance(value, Enum):
        value = value.value
    return str(value).strip().lower() == WILDCARD.lower()


def provider_code(value: Union[AssetClass, Category, Exchange]) -> str:
    """Code the provider expects for a concrete axis value in a query."""
    if is_wildcard(value):
        raise ValueError("Wildcard values have no provider code")
    if isinstance(value, AssetClass):
        return ASSET_CLASS_CODES[value]
    if isinstance(value, Exchange):
        return EXCHANGE_CODES[value][0]
    if isinstance(value, Category):
        return value.name.lower()
    raise TypeError(f"Not a taxonomy value: {value!r}")


def asset_class_for_type_code(code: Optional[str]) -> Optional[AssetClass]:
    if not code:
        return None
    return TYPE_CODES.get(str(code).strip().upper())


def category_for_label(label: Optional[str]) -> Optional[Category]:
    if label is None:
        return None
    try:
        category = Category(str(label))
    except ValueError:
        return None
    return None if category is Category.ALL else category


def exchange_label(code: Optional[str]) -> Optional[str]:
    """
    Stored exchange label for a provider exchange code.

    Known codes map to their Exchange value; unknown market-specific codes are
    kept verbatim so no listing is lost.
    """
    if code is None:
        return None
    code = str(code).strip()
    if not code:
        return None
    exchange = _CODE_TO_EXCHANGE.get(code.upper())
    if exchange is not None:
        return exchange.value
    try:
        exchange = Exchange(code)
    except ValueError:
        return code
    return None if exchange is Exchange.ALL else exchange.value


def _axis_matches(wanted: Optional[AxisValue], actual: str) -> bool:
    if is_wildcard(wanted):
        return True
    value = wanted.value if isinstance(wanted, Enum) else str(wanted)
    return value.lower() == actual.lower()


@dataclass(frozen=True)
class Combination:
    """One concrete (asset class, category, exchange) query key."""

    asset_class: AssetClass
    category: Category
    exchange: Exchange

    def __post_init__(self):
        for axis in (self.asset_class, self.category, self.exchange):
            if is_wildcard(axis):
                raise ValueError(f"Combination cannot hold a wildcard: {self}")

    def __str__(self) -> str:
        return f"{self.asset_class.value}/{self.category.value}/{self.exchange.value}"


@dataclass(frozen=True)
class CrawlFilter:
    """Taxonomy filter where any axis may be the ALL wildcard."""

    asset_class: AssetClass = AssetClass.ALL
    category: Category = Category.ALL
    exchange: Exchange = Exchange.ALL

    def matches(self, combination: Combination) -> bool:
        return self.matches_values(
            combination.asset_class.value,
            combination.category.value,
            combination.exchange.value,
        )

    def matches_values(self, asset_class: str, category: str, exchange: str) -> bool:
        """Match stored labels, e.g. a database row."""
        return (
            _axis_matches(self.asset_class, asset_class)
            and _axis_matches(self.category, category)
            and _axis_matches(self.exchange, exchange)
        )

    @property
    def is_everything(self) -> bool:
        return all(is_wildcard(axis) for axis in (self.asset_class, self.category, self.exchange))

    def __str__(self) -> str:
        return f"{self.asset_class}/{self.category}/{self.exchange}"


@dataclass
class Taxonomy:
    """Declared valid (asset class, category) pairs and the venues per asset class."""

    pairs: Sequence[Tuple[AssetClass, Category]] = DEFAULT_PAIRS
    venues: Mapping[AssetClass, Sequence[Exchange]] = field(
        default_factory=lambda: dict(DEFAULT_VENUES)
    )
    version: str = TAXONOMY_VERSION

    def __post_init__(self):
        self.pairs = tuple(self.pairs)
        for asset_class, category in self.pairs:
            if is_wildcard(asset_class) or is_wildcard(category):
                raise ValueError("Taxonomy pairs cannot contain wildcards")
        for asset_class, exchanges in self.venues.items():
            if any(is_wildcard(e) for e in exchanges):
                raise ValueError(f"Venues for {asset_class} cannot contain wildcards")
        self._pair_set = frozenset(self.pairs)

    def is_valid_pair(self, asset_class: AssetClass, category: Category) -> bool:
        return (asset_class, category) in self._pair_set

    def valid_combinations(self) -> List[Combination]:
        """Every concrete combination, in declaration order."""
        return [
            Combination(asset_class, category, exchange)
            for asset_class, category in self.pairs
            for exchange in self.venues.get(asset_class, ())
        ]

    def expand(self, crawl_filter: CrawlFilter) -> List[Combination]:
        """Concrete combinations selected by a (possibly wildcarded) filter."""
        return [c for c in self.valid_combinations() if crawl_filter.matches(c)]


DEFAULT_TAXONOMY = Taxonomy()


def valid_combinations() -> List[Combination]:
    return DEFAULT_TAXONOMY.valid_combinations()
