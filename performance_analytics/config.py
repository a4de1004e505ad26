"""
Performance Analytics - Configuration.

============================================================
PURPOSE
============================================================
Configuration for the statistics aggregator and the
statistics monitor.

============================================================
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Tuple

from core.exceptions import ConfigurationError
from .types import Period


# ============================================================
# AGGREGATION CONFIGURATION
# ============================================================

@dataclass
class AggregationConfig:
    """Which slices calculate_all() produces."""

    periods: Tuple[str, ...] = ("24h", "7d", "30d", "all")
    """Period labels computed on every run."""

    include_overall: bool = True
    """Also compute the (all strategies, all symbols) scope."""

    include_symbol_scopes: bool = True
    """Also compute strategy+symbol scopes, not only per strategy."""

    skip_empty_scopes: bool = True
    """Do not append snapshots for scopes without any signal in the window."""

    def parsed_periods(self) -> Tuple[Period, ...]:
        return tuple(Period.parse(label) for label in self.periods)

    def validate(self) -> None:
        if not self.periods:
            raise ConfigurationError("at least one period is required", config_key="periods")
        try:
            self.parsed_periods()
        except ValueError as e:
            raise ConfigurationError(str(e), config_key="periods") from e


# ============================================================
# MONITOR CONFIGURATION
# ============================================================

@dataclass
class MonitorConfig:
    """Thresholds for flagging a change between two snapshots."""

    enabled: bool = True

    win_rate_change_threshold: Decimal = Decimal("5.0")
    """Percentage points."""

    profit_ratio_change_threshold: Decimal = Decimal("5.0")
    """Percentage points of profitable / total signals."""

    avg_profit_change_threshold: Decimal = Decimal("20.0")
    """Relative change, percent."""

    avg_loss_change_threshold: Decimal = Decimal("20.0")
    """Relative change, percent."""

    profit_factor_change_threshold: Decimal = Decimal("20.0")
    """Relative change, percent."""

    signal_count_change_threshold: Decimal = Decimal("50.0")
    """Relative change, percent."""


# ============================================================
# MASTER CONFIGURATION
# ============================================================

@dataclass
class PerformanceAnalyticsConfig:
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)

    def validate(self) -> None:
        self.aggregation.validate()

    @classmethod
    def for_testing(cls) -> "PerformanceAnalyticsConfig":
        return cls(aggregation=AggregationConfig(skip_empty_scopes=False))


__all__ = [
    "AggregationConfig",
    "MonitorConfig",
    "PerformanceAnalyticsConfig",
]
