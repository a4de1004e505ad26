"""
Providers package - Price source implementations.
"""

from data_sources.providers.binance import BinanceFuturesPriceSource


__all__ = [
    "BinanceFuturesPriceSource",
]
