"""
Data Sources Package - Market price layer used by the tracker.

Quick Start:
    from data_sources import BinanceFuturesPriceSource, Interval

    async def sample():
        async with BinanceFuturesPriceSource() as source:
            price = await source.get_current_price("BTCUSDT")
            bars = await source.get_klines("BTCUSDT", Interval.H1, limit=24)

Adding New Providers:
    1. Extend PriceSource (or HttpPriceSource for REST APIs)
    2. Implement get_current_price() and get_klines()
    3. Raise DataSourceError subclasses on failure
"""

from data_sources.base import HttpPriceSource, PriceSource
from data_sources.exceptions import (
    DataSourceError,
    FetchError,
    NormalizationError,
    RateLimitError,
)
from data_sources.models import (
    Interval,
    Kline,
    KlineRequest,
    SourceHealth,
    SourceStatus,
)
from data_sources.providers import BinanceFuturesPriceSource


__all__ = [
    # Base
    "PriceSource",
    "HttpPriceSource",

    # Models
    "Interval",
    "Kline",
    "KlineRequest",
    "SourceHealth",
    "SourceStatus",

    # Exceptions
    "DataSourceError",
    "FetchError",
    "NormalizationError",
    "RateLimitError",

    # Providers
    "BinanceFuturesPriceSource",
]
