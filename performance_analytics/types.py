"""
Performance Analytics - Types.

============================================================
PURPOSE
============================================================
Statistics read-model and the keys it is sliced by.

Statistics are purely derived: recomputable at any time from
signals, tracking rows, kline tracking rows and outcomes.
Snapshots are appended; the latest per key is current.

Rates are expressed in percent (75 means 75%).

============================================================
"""

from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple


ALL_TIME_START = datetime(2020, 1, 1, tzinfo=timezone.utc)


# ============================================================
# PERIODS
# ============================================================

class Period(Enum):
    """Rolling window labels."""

    LAST_24H = "24h"
    LAST_7D = "7d"
    LAST_30D = "30d"
    ALL = "all"

    def window(self, now: datetime) -> Tuple[datetime, datetime]:
        """(start, end) of the window ending at now."""
        if self is Period.ALL:
            return ALL_TIME_START, now
        return now - PERIOD_LENGTHS[self], now

    @classmethod
    def parse(cls, label: str) -> "Period":
        """Look up a period by label, raising ValueError on unknown labels."""
        for period in cls:
            if period.value == label:
                return period
        raise ValueError(f"Unknown period: {label}")


PERIOD_LENGTHS = {
    Period.LAST_24H: timedelta(hours=24),
    Period.LAST_7D: timedelta(days=7),
    Period.LAST_30D: timedelta(days=30),
}


# ============================================================
# SCOPE
# ============================================================

@dataclass(frozen=True)
class StatisticsScope:
    """
    Slice of signals a snapshot covers.

    strategy_name=None means every strategy; symbol=None means
    every symbol. Both None is the overall scope.
    """

    strategy_name: Optional[str] = None
    symbol: Optional[str] = None

    @classmethod
    def overall(cls) -> "StatisticsScope":
        return cls()

    @property
    def is_overall(self) -> bool:
        return self.strategy_name is None and self.symbol is None

    def matches(self, strategy_name: str, symbol: str) -> bool:
        """Whether a signal with these attributes belongs to the scope."""
        if self.strategy_name is not None and strategy_name != self.strategy_name:
            return False
        if self.symbol is not None and symbol != self.symbol:
            return False
        return True

    def label(self) -> str:
        return f"{self.strategy_name or '*'}/{self.symbol or '*'}"


# ============================================================
# STATISTICS
# ============================================================

@dataclass(frozen=True)
class Statistics:
    """Aggregate snapshot over a (strategy?, symbol?, period) slice."""

    strategy_name: Optional[str]
    symbol: Optional[str]
    period_label: str
    period_start: datetime
    period_end: datetime
    calculated_at: datetime

    # Signal counts (signals generated in the window)
    total_signals: int = 0
    confirmed_signals: int = 0
    invalidated_signals: int = 0

    # Outcome counts (signals closed in the window)
    profitable_signals: int = 0
    losing_signals: int = 0
    neutral_signals: int = 0

    # Realised performance
    win_rate: Optional[Decimal] = None
    """profitable / (profitable + losing) * 100; BREAKEVEN excluded."""

    profit_factor: Optional[Decimal] = None
    """Sum of gains / |sum of losses|; absent without losses."""

    avg_profit_pct: Optional[Decimal] = None
    avg_loss_pct: Optional[Decimal] = None
    """Average magnitude of losing final_pnl_pct (positive number)."""

    avg_holding_hours: Optional[Decimal] = None
    best_signal_pct: Optional[Decimal] = None
    worst_signal_pct: Optional[Decimal] = None
    avg_mfe_pct: Optional[Decimal] = None
    avg_mae_pct: Optional[Decimal] = None

    # Kline-based theoretical performance
    kline_theoretical_win_rate: Optional[Decimal] = None
    kline_close_win_rate: Optional[Decimal] = None
    total_kline_hours: int = 0
    profitable_kline_hours_high: int = 0
    profitable_kline_hours_close: int = 0

    # Hourly return distribution
    avg_hourly_return_pct: Optional[Decimal] = None
    max_hourly_return_pct: Optional[Decimal] = None
    min_hourly_return_pct: Optional[Decimal] = None

    avg_max_potential_profit_pct: Optional[Decimal] = None
    avg_max_potential_loss_pct: Optional[Decimal] = None

    @property
    def scope(self) -> StatisticsScope:
        return StatisticsScope(self.strategy_name, self.symbol)

    @property
    def key(self) -> Tuple[Optional[str], Optional[str], str]:
        """Identity of the slice, independent of when it was calculated."""
        return (self.strategy_name, self.symbol, self.period_label)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


__all__ = [
    "ALL_TIME_START",
    "Period",
    "StatisticsScope",
    "Statistics",
]
