"""
Data Source Models - Market data returned by price sources.

Prices and volumes are Decimal, parsed from the provider's
string representation so no binary float noise leaks in.
Timestamps are timezone-aware UTC.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class Interval(str, Enum):
    """Kline intervals supported by the tracker."""

    M1 = "1m"
    M5 = "5m"
    M15 = "15m"
    M30 = "30m"
    H1 = "1h"
    H4 = "4h"
    D1 = "1d"

    @property
    def seconds(self) -> int:
        return _INTERVAL_SECONDS[self]

    @classmethod
    def parse(cls, value: str) -> "Interval":
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unsupported kline interval: {value}") from None


_INTERVAL_SECONDS = {
    Interval.M1: 60,
    Interval.M5: 300,
    Interval.M15: 900,
    Interval.M30: 1800,
    Interval.H1: 3600,
    Interval.H4: 14400,
    Interval.D1: 86400,
}


class SourceStatus(str, Enum):
    """Health status of a price source."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Kline:
    """One OHLCV bar."""

    symbol: str
    interval: Interval
    open_time: datetime
    close_time: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
    quote_volume: Decimal = Decimal("0")

    def is_closed(self, now: datetime) -> bool:
        """A bar is final once its close time has passed."""
        return self.close_time < now

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "interval": self.interval.value,
            "open_time": self.open_time.isoformat(),
            "close_time": self.close_time.isoformat(),
            "open": str(self.open),
            "high": str(self.high),
            "low": str(self.low),
            "close": str(self.close),
            "volume": str(self.volume),
            "quote_volume": str(self.quote_volume),
        }


@dataclass
class SourceHealth:
    """Health status of a price source."""

    status: SourceStatus
    last_check: datetime
    latency_ms: Optional[float] = None
    error_count: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    consecutive_failures: int = 0
    uptime_percentage: float = 100.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "latency_ms": self.latency_ms,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "consecutive_failures": self.consecutive_failures,
            "uptime_percentage": self.uptime_percentage,
        }


@dataclass
class KlineRequest:
    """Parameters of a kline query."""

    symbol: str
    interval: Interval = Interval.H1
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    limit: int = 500

    def validate(self) -> None:
        if not self.symbol:
            raise ValueError("Symbol is required")
        if self.limit < 1 or self.limit > 1500:
            raise ValueError("Limit must be between 1 and 1500")
        if self.start_time and self.end_time and self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


__all__ = [
    "Interval",
    "SourceStatus",
    "Kline",
    "SourceHealth",
    "KlineRequest",
]
