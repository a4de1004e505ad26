"""
Tests for the Binance futures price source.

HTTP is replaced by patching _make_request; retries sleep
through a patched asyncio.sleep.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from core.clock import to_milliseconds
from core.exceptions import TransientSourceFailure
from data_sources.exceptions import FetchError, NormalizationError, RateLimitError
from data_sources.models import Interval, SourceStatus
from data_sources.providers.binance import BinanceFuturesPriceSource
from tests.helpers import T0


OPEN_MS = to_milliseconds(T0)


def kline_payload(open_ms=OPEN_MS):
    return [
        open_ms, "100.0", "101.5", "99.0", "100.5", "12.5",
        open_ms + 3_599_999, "1250.0", 42, "6.0", "600.0", "0",
    ]


@pytest.fixture
def source():
    return BinanceFuturesPriceSource(max_retries=3)


class TestPrices:

    @pytest.mark.asyncio
    async def test_current_price(self, source):
        request = AsyncMock(return_value={"symbol": "BTCUSDT", "price": "43250.10"})
        with patch.object(source, "_make_request", request):
            price = await source.get_current_price("btcusdt")

        assert price == Decimal("43250.10")
        url = request.call_args.args[0]
        assert url == "https://fapi.binance.com/fapi/v1/ticker/price"
        assert request.call_args.kwargs["params"] == {"symbol": "BTCUSDT"}

    @pytest.mark.asyncio
    async def test_malformed_price(self, source):
        with patch.object(source, "_make_request", AsyncMock(return_value={"code": -1})):
            with pytest.raises(NormalizationError):
                await source.get_current_price("BTCUSDT")

    @pytest.mark.asyncio
    async def test_non_positive_price(self, source):
        with patch.object(source, "_make_request", AsyncMock(return_value={"price": "0"})):
            with pytest.raises(NormalizationError):
                await source.get_current_price("BTCUSDT")

    def test_custom_base_url(self):
        source = BinanceFuturesPriceSource(base_url="http://localhost:9000/")
        assert source._base_url == "http://localhost:9000"


class TestKlines:

    @pytest.mark.asyncio
    async def test_parses_and_sorts(self, source):
        payload = [kline_payload(OPEN_MS + 3_600_000), kline_payload()]
        request = AsyncMock(return_value=payload)
        with patch.object(source, "_make_request", request):
            bars = await source.get_klines(
                "BTCUSDT", Interval.H1, start=T0, end=T0 + timedelta(hours=3), limit=5000
            )

        assert [b.open_time for b in bars] == [T0, T0 + timedelta(hours=1)]
        assert bars[0].high == Decimal("101.5")
        assert bars[0].quote_volume == Decimal("1250.0")
        assert bars[0].close_time == T0 + timedelta(hours=1) - timedelta(milliseconds=1)

        params = request.call_args.kwargs["params"]
        assert params["interval"] == "1h"
        assert params["startTime"] == OPEN_MS
        assert params["limit"] == BinanceFuturesPriceSource.MAX_KLINE_LIMIT

    @pytest.mark.asyncio
    async def test_malformed_row(self, source):
        with patch.object(source, "_make_request", AsyncMock(return_value=[[OPEN_MS, "x"]])):
            with pytest.raises(NormalizationError):
                await source.get_klines("BTCUSDT", Interval.H1)

    @pytest.mark.asyncio
    async def test_rejects_inverted_window(self, source):
        with pytest.raises(ValueError):
            await source.get_klines("BTCUSDT", Interval.H1, start=T0, end=T0)


class TestRetries:

    @pytest.mark.asyncio
    async def test_server_errors_are_retried(self, source):
        request = AsyncMock(side_effect=[
            FetchError("HTTP 502", source_name="binance_futures", status_code=502),
            {"price": "100"},
        ])
        with patch.object(source, "_make_request", request), \
                patch("data_sources.base.asyncio.sleep", AsyncMock()) as sleep:
            price = await source.get_current_price("BTCUSDT")

        assert price == Decimal("100")
        assert request.await_count == 2
        sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_rate_limit_honours_retry_after(self, source):
        request = AsyncMock(side_effect=[
            RateLimitError(source_name="binance_futures", retry_after_seconds=7),
            {"price": "100"},
        ])
        with patch.object(source, "_make_request", request), \
                patch("data_sources.base.asyncio.sleep", AsyncMock()) as sleep:
            await source.get_current_price("BTCUSDT")

        sleep.assert_awaited_once_with(7)

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self, source):
        request = AsyncMock(side_effect=FetchError("HTTP 400", status_code=400))
        with patch.object(source, "_make_request", request):
            with pytest.raises(FetchError):
                await source.get_current_price("BAD")

        assert request.await_count == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries_are_transient(self, source):
        request = AsyncMock(side_effect=FetchError("HTTP 503", status_code=503))
        with patch.object(source, "_make_request", request), \
                patch("data_sources.base.asyncio.sleep", AsyncMock()):
            with pytest.raises(TransientSourceFailure) as exc_info:
                await source.get_current_price("BTCUSDT")

        assert request.await_count == 3
        assert exc_info.value.is_retryable
        assert "3 attempts" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_health_degrades_and_recovers(self):
        source = BinanceFuturesPriceSource(max_retries=1)
        failing = AsyncMock(side_effect=FetchError("HTTP 503", status_code=503))
        with patch.object(source, "_make_request", failing):
            for _ in range(3):
                with pytest.raises(FetchError):
                    await source.get_current_price("BTCUSDT")

        assert source.get_health().status is SourceStatus.DEGRADED

        with patch.object(source, "_make_request", AsyncMock(return_value={"price": "1"})):
            await source.get_current_price("BTCUSDT")

        health = source.get_health()
        assert health.status is SourceStatus.HEALTHY
        assert health.consecutive_failures == 0
        assert health.uptime_percentage == 25.0
