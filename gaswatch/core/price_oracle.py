# /gaswatch/core/price_oracle.py
# Batched USD price cache for every configured native token.
import asyncio
import time
from typing import Callable, Dict, Iterable

import aiohttp

from gaswatch.core.chains import ChainConfig
from gaswatch.core.config import settings
from gaswatch.core.logger import get_logger, PRICE_REFRESHES

log = get_logger(__name__)


class PriceUnavailable(Exception):
    """The price API could not be used for this refresh. Never leaves the oracle."""


class PriceOracle:
    """
    Holds the price table: token id -> USD price, seeded with each chain's static
    fallback price so every configured token always has a non-zero value.

    ``get_prices()`` serves the cache while it is younger than the TTL. Otherwise
    it performs one batched request; concurrent callers share the same in-flight
    refresh. A failed refresh keeps the previous prices and does not advance the
    refresh timestamp, so the next call tries again.
    """

    def __init__(
        self,
        chains: Iterable[ChainConfig],
        session: aiohttp.ClientSession | None = None,
        ttl: float | None = None,
        url: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fallback: Dict[str, float] = {}
        for chain in chains:
            self._fallback.setdefault(chain.native_token, chain.fallback_price_usd)
        self._prices: Dict[str, float] = dict(self._fallback)
        self.tokens = sorted(self._fallback)

        self.ttl = ttl if ttl is not None else settings.PRICE_CACHE_TTL_SECONDS
        self.url = url or settings.PRICE_API_URL
        self.timeout = aiohttp.ClientTimeout(total=settings.PRICE_TIMEOUT_SECONDS)
        self._clock = clock
        self._session = session
        self._owns_session = session is None

        self.last_refresh: float | None = None
        self._inflight: asyncio.Task | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def is_fresh(self) -> bool:
        return self.last_refresh is not None and self._clock() - self.last_refresh < self.ttl

    def snapshot(self) -> Dict[str, float]:
        return dict(self._prices)

    async def get_prices(self) -> Dict[str, float]:
        if self.is_fresh():
            return self.snapshot()

        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.create_task(self._refresh())
        # Shielded so a cancelled caller does not cancel the refresh other callers wait on.
        await asyncio.shield(self._inflight)
        return self.snapshot()

    async def get_price(self, token: str) -> float:
        prices = await self.get_prices()
        if token in prices:
            return prices[token]
        log.warning("PRICE_TOKEN_NOT_CONFIGURED", token=token)
        return 0.0

    async def _refresh(self):
        try:
            data = await self._fetch()
        except PriceUnavailable as e:
            PRICE_REFRESHES.labels("failed").inc()
            log.warning("PRICE_REFRESH_FAILED", error=str(e), serving="stale_or_fallback")
            return

        updated = []
        for token in self.tokens:
            entry = data.get(token)
            usd = entry.get("usd") if isinstance(entry, dict) else None
            if isinstance(usd, (int, float)) and not isinstance(usd, bool) and usd > 0:
                self._prices[token] = float(usd)
                updated.append(token)
        self.last_refresh = self._clock()
        PRICE_REFRESHES.labels("ok").inc()
        log.info("PRICE_TABLE_REFRESHED", updated=len(updated), requested=len(self.tokens))

    async def _fetch(self) -> dict:
        params = {"ids": ",".join(self.tokens), "vs_currencies": "usd"}
        headers = {}
        if settings.PRICE_API_KEY:
            headers["x-cg-demo-api-key"] = settings.PRICE_API_KEY.get_secret_value()
        try:
            async with self._get_session().get(self.url, params=params, headers=headers, timeout=self.timeout) as resp:
                data = await resp.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise PriceUnavailable("price request timed out") from e
        except aiohttp.ClientError as e:
            raise PriceUnavailable(f"price request failed: {e}") from e
        except ValueError as e:
            raise PriceUnavailable("price API returned non-JSON body") from e

        if not isinstance(data, dict):
            raise PriceUnavailable("price API returned a non-object body")
        if "status" in data:
            # CoinGecko reports rate limiting as {"status": {"error_code": 429, ...}}.
            raise PriceUnavailable(f"price API error status: {data['status']}")
        return data

    async def close(self):
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
