"""
Binance Price Source - Futures public API adapter.

Endpoints used:
- /fapi/v1/ticker/price - Latest price
- /fapi/v1/klines - Kline/candlestick data

No authentication required.
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import aiohttp

from core.clock import from_milliseconds, to_milliseconds
from data_sources.base import HttpPriceSource
from data_sources.exceptions import NormalizationError
from data_sources.models import Interval, Kline, KlineRequest


logger = logging.getLogger(__name__)


class BinanceFuturesPriceSource(HttpPriceSource):
    """
    Binance USD-M futures price source.

    Rate limits:
    - 2400 request weight/minute, IP based
    """

    BASE_URL = "https://fapi.binance.com"
    MAX_KLINE_LIMIT = 1500

    def __init__(
        self,
        base_url: str = BASE_URL,
        timeout: float = HttpPriceSource.DEFAULT_TIMEOUT,
        max_retries: int = HttpPriceSource.MAX_RETRIES,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(timeout, max_retries, session)
        self._base_url = base_url.rstrip("/")

    @property
    def name(self) -> str:
        return "binance_futures"

    async def get_current_price(self, symbol: str) -> Decimal:
        url = f"{self._base_url}/fapi/v1/ticker/price"
        params = {"symbol": symbol.upper()}

        data = await self._with_retry(lambda: self._make_request(url, params=params))
        return self._parse_price(symbol, data)

    async def get_klines(
        self,
        symbol: str,
        interval: Interval,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 500,
    ) -> list[Kline]:
        request = KlineRequest(
            symbol=symbol,
            interval=interval,
            start_time=start,
            end_time=end,
            limit=min(limit, self.MAX_KLINE_LIMIT),
        )
        request.validate()

        url = f"{self._base_url}/fapi/v1/klines"
        params: dict[str, Any] = {
            "symbol": request.symbol.upper(),
            "interval": request.interval.value,
            "limit": request.limit,
        }
        if request.start_time:
            params["startTime"] = to_milliseconds(request.start_time)
        if request.end_time:
            params["endTime"] = to_milliseconds(request.end_time)

        data = await self._with_retry(lambda: self._make_request(url, params=params))
        klines = [self._parse_kline(symbol, interval, row) for row in data or []]
        klines.sort(key=lambda k: k.open_time)
        return klines

    # --------------------------------------------------------
    # Parsing
    # --------------------------------------------------------

    def _parse_price(self, symbol: str, data: Any) -> Decimal:
        try:
            price = Decimal(str(data["price"]))
        except (KeyError, TypeError, InvalidOperation) as e:
            raise NormalizationError(
                message="Malformed ticker payload",
                source_name=self.name,
                raw_data=data,
                symbol=symbol,
                original_error=e,
            ) from e
        if price <= 0:
            raise NormalizationError(
                message=f"Non-positive price {price}",
                source_name=self.name,
                raw_data=data,
                symbol=symbol,
            )
        return price

    def _parse_kline(self, symbol: str, interval: Interval, row: Any) -> Kline:
        # [open_time, open, high, low, close, volume, close_time, quote_volume, ...]
        try:
            return Kline(
                symbol=symbol.upper(),
                interval=interval,
                open_time=from_milliseconds(int(row[0])),
                close_time=from_milliseconds(int(row[6])),
                open=Decimal(str(row[1])),
                high=Decimal(str(row[2])),
                low=Decimal(str(row[3])),
                close=Decimal(str(row[4])),
                volume=Decimal(str(row[5])),
                quote_volume=Decimal(str(row[7])),
            )
        except (IndexError, TypeError, ValueError, InvalidOperation) as e:
            raise NormalizationError(
                message="Malformed kline row",
                source_name=self.name,
                raw_data=row,
                symbol=symbol,
                original_error=e,
            ) from e


__all__ = ["BinanceFuturesPriceSource"]
