"""
Price sources for active markets.

The arena asks for UP/DOWN prices once per cycle; a market without prices
is skipped for trading and valued at entry for mark-to-market.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import aiohttp

from strategy_arena.markets import Market
from strategy_arena.retry import RetryConfig, retry_http_request
from strategy_arena.trade_ledger import MarketPrices

logger = logging.getLogger(__name__)

CLOB_API_URL = "https://clob.polymarket.com"


class PriceSource(ABC):
    @abstractmethod
    async def get_prices(self, market: Market) -> Optional[MarketPrices]:
        """Current prices, or None if unavailable"""
        pass

    async def close(self) -> None:
        pass


class StaticPriceSource(PriceSource):
    """In-memory prices, set by hand or by a test."""

    def __init__(self, prices: Optional[dict[str, MarketPrices]] = None):
        self.prices: dict[str, MarketPrices] = dict(prices or {})

    def set_prices(self, market: str, up: float, down: Optional[float] = None) -> None:
        self.prices[market] = MarketPrices(up=up, down=1.0 - up if down is None else down)

    async def get_prices(self, market: Market) -> Optional[MarketPrices]:
        return self.prices.get(market.identifier)


class ClobPriceSource(PriceSource):
    """
    Polymarket CLOB midpoints over aiohttp.

    Uses GET /midpoint?token_id=... for each outcome token. When a market
    has no DOWN token, DOWN is priced as 1 - UP.
    """

    def __init__(
        self,
        base_url: str = CLOB_API_URL,
        session: Optional[aiohttp.ClientSession] = None,
        retry_config: Optional[RetryConfig] = None,
        timeout_sec: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self.retry_config = retry_config or RetryConfig(max_retries=2, base_delay=0.5, max_delay=5.0)
        self.timeout = aiohttp.ClientTimeout(total=timeout_sec)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def _midpoint(self, token_id: str) -> float:
        session = await self._get_session()
        resp = await retry_http_request(
            session,
            "GET",
            f"{self.base_url}/midpoint",
            config=self.retry_config,
            params={"token_id": token_id},
        )
        async with resp:
            if resp.status != 200:
                raise ValueError(f"midpoint for {token_id} returned HTTP {resp.status}")
            data = await resp.json()
        return float(data["mid"])

    async def get_prices(self, market: Market) -> Optional[MarketPrices]:
        if not market.up_token:
            logger.debug(f"No UP token for {market.identifier}, no prices")
            return None

        try:
            up = await self._midpoint(market.up_token)
            down = await self._midpoint(market.down_token) if market.down_token else 1.0 - up
        except (aiohttp.ClientError, asyncio.TimeoutError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to fetch prices for {market.identifier}: {e}")
            return None

        return MarketPrices(up=up, down=down)
