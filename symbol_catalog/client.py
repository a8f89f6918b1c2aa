"""
Lookup API client.
Sends paced GET requests to the provider and hands back raw response bytes.
"""
import asyncio
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import requests

from symbol_catalog.config import Config, ProviderConfig
from symbol_catalog.errors import InvalidCombination, StoreUnavailable, TransientNetworkError
from symbol_catalog.taxonomy import Category, Combination, provider_code
from symbol_catalog.utils.logger import get_logger


# Statuses the provider uses to reject a query outright
REJECTED_STATUSES = {400, 404, 422}


class RateLimiter:
    """
    Minimum-interval pacing shared by every fetch worker.

    One instance is created per crawl and injected into each fetcher; the
    lock serialises updates of last_request across concurrent workers.
    """

    def __init__(self, min_interval: float = 0.5):
        self.min_interval = min_interval
        self.last_request = 0.0
        self._lock = asyncio.Lock()

    @classmethod
    def per_second(cls, max_per_second: float) -> "RateLimiter":
        return cls(min_interval=1.0 / max_per_second if max_per_second else 0.0)

    async def acquire(self):
        """Wait if necessary to respect the minimum interval"""
        async with self._lock:
            elapsed = time.monotonic() - self.last_request
            if elapsed < self.min_interval:
                await asyncio.sleep(self.min_interval - elapsed)
            self.last_request = time.monotonic()


class Transport(Protocol):
    """Anything that can send one GET and return the body or fail."""

    async def get(self, params: Dict[str, Any]) -> bytes:
        ...


class RequestBuilder:
    """Turns a combination and page offset into lookup query parameters."""

    def __init__(self, provider: ProviderConfig):
        self.provider = provider

    def params(self, combination: Combination, offset: int, count: int) -> Dict[str, Any]:
        params: Dict[str, Any] = dict(self.provider.static_params)
        params[self.provider.type_param] = provider_code(combination.asset_class)
        if self.provider.category_param and combination.category is not Category.NONE:
            params[self.provider.category_param] = provider_code(combination.category)
        if self.provider.exchange_param:
            params[self.provider.exchange_param] = provider_code(combination.exchange)
        params[self.provider.offset_param] = offset
        params[self.provider.count_param] = count
        return params


class LookupClient:
    """
    HTTP transport for the lookup endpoint, built on a requests session.
    Blocking calls run in a worker thread so many fetches can be in flight.
    """

    def __init__(self, config: Config, session: Optional[requests.Session] = None):
        self.config = config
        self.provider = config.provider
        self.logger = get_logger(__name__)
        self._session = session or requests.Session()
        self._session.headers.update({
            "User-Agent": self.provider.user_agent,
            "Accept": "application/json",
        })

    async def get(self, params: Dict[str, Any]) -> bytes:
        return await asyncio.to_thread(self._get, params)

    def _get(self, params: Dict[str, Any]) -> bytes:
        url = self.provider.lookup_url
        try:
            resp = self._session.get(url, params=params, timeout=self.provider.timeout_seconds)
        except requests.RequestException as exc:
            raise TransientNetworkError(
                f"GET {url} failed: {exc}", context={"params": params}
            ) from exc

        if resp.status_code in REJECTED_STATUSES:
            raise InvalidCombination(
                f"Provider rejected query with HTTP {resp.status_code}",
                context={"params": params, "body": resp.text[:200]},
            )
        if resp.status_code != 200:
            # 429, 5xx and auth hiccups (stale crumb) clear up on retry
            raise TransientNetworkError(
                f"Provider returned HTTP {resp.status_code}",
                context={"params": params, "body": resp.text[:200]},
            )
        return resp.content

    def close(self):
        self._session.close()


def download_seed_database(url: str, path: Path, timeout: float = 60.0) -> Path:
    """
    Download a prebuilt symbols database to path.

    The file is written beside the target and renamed into place, so a failed
    download never leaves a truncated database behind.
    """
    logger = get_logger(__name__)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    partial = path.with_name(path.name + ".part")
    logger.info("Downloading seed database from %s", url)
    try:
        with requests.get(url, stream=True, timeout=timeout) as resp:
            resp.raise_for_status()
            with open(partial, "wb") as f:
                for chunk in resp.iter_content(chunk_size=1 << 16):
                    f.write(chunk)
    except (requests.RequestException, OSError) as exc:
        if partial.exists():
            partial.unlink()
        raise StoreUnavailable(f"Unable to download seed database from {url}: {exc}") from exc
    os.replace(partial, path)
    logger.info("Seed database saved to %s", path)
    return path
