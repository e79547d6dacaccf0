"""
Tests for price sources and HTTP retry.
"""
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from strategy_arena.markets import Market
from strategy_arena.price_feed import ClobPriceSource, StaticPriceSource
from strategy_arena.retry import RetryConfig, calculate_delay, retry_http_request

FAST_RETRY = RetryConfig(max_retries=2, base_delay=0.1, jitter=False)


def make_response(status=200, payload=None):
    resp = MagicMock()
    resp.status = status
    resp.json = AsyncMock(return_value=payload)
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=False)
    return resp


def make_session(*responses):
    session = MagicMock(spec=aiohttp.ClientSession)
    session.closed = False
    session.request = AsyncMock(side_effect=list(responses))
    return session


@pytest.fixture
def no_sleep():
    with patch("strategy_arena.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


class TestStaticPriceSource:

    @pytest.mark.asyncio
    async def test_known_and_unknown_markets(self):
        source = StaticPriceSource()
        source.set_prices("btc", up=0.3)

        prices = await source.get_prices(Market("btc"))

        assert prices.up == 0.3
        assert prices.down == pytest.approx(0.7)
        assert await source.get_prices(Market("eth")) is None


class TestClobPriceSource:

    @pytest.mark.asyncio
    async def test_fetches_both_midpoints(self):
        session = make_session(make_response(payload={"mid": "0.62"}), make_response(payload={"mid": "0.39"}))
        source = ClobPriceSource(base_url="https://clob.test/", session=session, retry_config=FAST_RETRY)

        prices = await source.get_prices(Market("btc", up_token="u1", down_token="d1"))

        assert (prices.up, prices.down) == (0.62, 0.39)
        method, url = session.request.await_args_list[0].args
        assert (method, url) == ("GET", "https://clob.test/midpoint")
        assert session.request.await_args_list[1].kwargs["params"] == {"token_id": "d1"}

    @pytest.mark.asyncio
    async def test_down_derived_without_down_token(self):
        session = make_session(make_response(payload={"mid": 0.25}))
        source = ClobPriceSource(session=session, retry_config=FAST_RETRY)

        prices = await source.get_prices(Market("btc", up_token="u1"))

        assert prices.down == pytest.approx(0.75)
        assert session.request.await_count == 1

    @pytest.mark.asyncio
    async def test_no_up_token_no_prices(self):
        session = make_session()
        source = ClobPriceSource(session=session)

        assert await source.get_prices(Market("btc")) is None
        session.request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_http_error_gives_none(self, no_sleep):
        session = make_session(make_response(status=404))
        source = ClobPriceSource(session=session, retry_config=FAST_RETRY)

        assert await source.get_prices(Market("btc", up_token="u1")) is None

    @pytest.mark.asyncio
    async def test_missing_mid_gives_none(self):
        session = make_session(make_response(payload={"error": "no orderbook"}))
        source = ClobPriceSource(session=session, retry_config=FAST_RETRY)

        assert await source.get_prices(Market("btc", up_token="u1")) is None

    @pytest.mark.asyncio
    async def test_close_leaves_injected_session_open(self):
        session = make_session()
        source = ClobPriceSource(session=session)

        await source.close()

        session.close.assert_not_called()


class TestRetry:

    def test_delay_grows_and_caps(self):
        config = RetryConfig(base_delay=1.0, max_delay=5.0, jitter=False)

        assert [calculate_delay(i, config) for i in range(4)] == [1.0, 2.0, 4.0, 5.0]

    @pytest.mark.asyncio
    async def test_retryable_status_retried(self, no_sleep):
        session = make_session(make_response(status=503), make_response(status=200, payload={}))

        resp = await retry_http_request(session, "GET", "https://clob.test", config=FAST_RETRY)

        assert resp.status == 200
        assert session.request.await_count == 2
        no_sleep.assert_awaited_once_with(0.1)

    @pytest.mark.asyncio
    async def test_last_response_returned_when_retries_exhausted(self, no_sleep):
        session = make_session(*(make_response(status=429) for _ in range(3)))

        resp = await retry_http_request(session, "GET", "https://clob.test", config=FAST_RETRY)

        assert resp.status == 429
        assert session.request.await_count == 3

    @pytest.mark.asyncio
    async def test_transport_error_raised_after_retries(self, no_sleep):
        session = make_session(*(aiohttp.ClientConnectionError("reset") for _ in range(3)))

        with pytest.raises(aiohttp.ClientConnectionError):
            await retry_http_request(session, "GET", "https://clob.test", config=FAST_RETRY)

        assert no_sleep.await_count == 2
