"""Shared fixtures: a fake provider transport and a throwaway configuration."""
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import pytest

from symbol_catalog.config import Config, CrawlConfig, StoreConfig, reset_config
from symbol_catalog.taxonomy import Category, Combination, provider_code


Response = Union[bytes, Exception, Callable[[Dict[str, Any]], Awaitable[bytes]]]


def lookup_page(
    documents: List[Any],
    *,
    total: Optional[int] = None,
    start: Optional[int] = None,
    has_more: Optional[bool] = None,
) -> bytes:
    """Build a lookup response body shaped like the provider's."""
    result: Dict[str, Any] = {"documents": documents, "count": len(documents)}
    if total is not None:
        result["total"] = total
    if start is not None:
        result["start"] = start
    if has_more is not None:
        result["hasMore"] = has_more
    return json.dumps({"finance": {"result": [result], "error": None}}).encode()


def provider_error(code: str, description: str = "") -> bytes:
    return json.dumps(
        {"finance": {"result": None, "error": {"code": code, "description": description or code}}}
    ).encode()


def doc(symbol: str, name: str = "", exchange: str = "NMS", quote_type: str = "EQUITY", **extra) -> Dict[str, Any]:
    entry = {"symbol": symbol, "shortName": name, "exchange": exchange, "quoteType": quote_type}
    entry.update(extra)
    return entry


def query_key(combination: Combination, offset: int = 0) -> Tuple[str, Optional[str], str, int]:
    category = None if combination.category is Category.NONE else provider_code(combination.category)
    return (
        provider_code(combination.asset_class),
        category,
        provider_code(combination.exchange),
        offset,
    )


class FakeTransport:
    """
    In-memory provider. Responses are registered per (combination, offset);
    a list of responses is consumed one per request, the last one repeating.
    """

    def __init__(self, default: Optional[Response] = None):
        self.routes: Dict[tuple, List[Response]] = {}
        self.default = default
        self.requests: List[Dict[str, Any]] = []

    def add(self, combination: Combination, *responses: Response, offset: int = 0) -> "FakeTransport":
        self.routes[query_key(combination, offset)] = list(responses)
        return self

    async def get(self, params: Dict[str, Any]) -> bytes:
        self.requests.append(dict(params))
        key = (params["type"], params.get("category"), params["exchange"], params["start"])
        responses = self.routes.get(key)
        if responses:
            response = responses.pop(0) if len(responses) > 1 else responses[0]
        elif self.default is not None:
            response = self.default
        else:
            response = lookup_page([], total=0)

        if isinstance(response, Exception):
            raise response
        if callable(response):
            return await response(params)
        return response

    def count(self, combination: Combination) -> int:
        code = provider_code(combination.exchange)
        asset = provider_code(combination.asset_class)
        return sum(1 for p in self.requests if p["type"] == asset and p["exchange"] == code)


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    monkeypatch.delenv("SYMBOL_CATALOG_DB_PATH", raising=False)
    monkeypatch.delenv("SYMBOL_CATALOG_CONFIG_PATH", raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(
        crawl=CrawlConfig(
            page_size=2,
            max_pages=10,
            max_concurrency=3,
            min_request_interval=0.0,
            max_attempts=3,
            backoff_base=0.0,
            backoff_max=0.0,
        ),
        store=StoreConfig(path=str(tmp_path / "symbols.db")),
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
