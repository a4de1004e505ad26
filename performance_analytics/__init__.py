"""
Performance Analytics Package.

Statistics over signal outcomes and kline tracking, sliced by
strategy, symbol and rolling period, plus a monitor that flags
significant changes between consecutive snapshots.

Import the aggregator and monitor from their modules:
    from performance_analytics.aggregator import StatisticsAggregator
    from performance_analytics.monitor import StatisticsMonitor
"""

from .config import AggregationConfig, MonitorConfig, PerformanceAnalyticsConfig
from .types import ALL_TIME_START, Period, Statistics, StatisticsScope


__all__ = [
    "ALL_TIME_START",
    "Period",
    "Statistics",
    "StatisticsScope",
    "AggregationConfig",
    "MonitorConfig",
    "PerformanceAnalyticsConfig",
]
