"""
Performance Analytics - Statistics Monitor.

============================================================
PURPOSE
============================================================
Compares each new statistics snapshot with the previous one
for the same (strategy, symbol, period) key and logs the
metrics that moved more than their threshold.

CHANGE TYPES:
- percentage_points: win rate, profitable-signal ratio
- percentage: relative change of average profit, average
  loss, profit factor and signal count

Alerting only. Nothing here changes stored data.

============================================================
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Sequence

from core.exceptions import StorageFailure
from signal_lifecycle.types import HUNDRED, ZERO, quantize_pct
from storage.repositories.signal_store import SignalStore
from .config import MonitorConfig
from .types import Statistics


class ChangeType(Enum):
    PERCENTAGE = "percentage"
    PERCENTAGE_POINTS = "percentage_points"


@dataclass(frozen=True)
class MetricChange:
    """A metric that moved past its threshold."""

    metric_name: str
    previous_value: str
    current_value: str
    change: Decimal
    change_type: ChangeType

    def describe(self) -> str:
        unit = "pts" if self.change_type is ChangeType.PERCENTAGE_POINTS else "%"
        return (
            f"{self.metric_name}: {self.previous_value} -> {self.current_value} "
            f"({self.change:+.2f}{unit})"
        )


class StatisticsMonitor:
    """Detects and logs significant changes between snapshots."""

    def __init__(
        self,
        store: SignalStore,
        config: Optional[MonitorConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._config = config or MonitorConfig()
        self._logger = logger or logging.getLogger(__name__)

    async def check(self, current: Statistics) -> List[MetricChange]:
        """Compare current with its predecessor; log and return significant changes."""
        if not self._config.enabled:
            return []

        previous = await self._store.get_previous_statistics(current)
        if previous is None:
            self._logger.debug(
                f"No previous calculation for {current.scope.label()} {current.period_label}"
            )
            return []

        changes = self.detect_significant_changes(current, previous)
        if changes:
            self.log_changes(current, previous, changes)
        return changes

    async def check_all(self, snapshots: Sequence[Statistics]) -> int:
        """
        Check every snapshot.

        Returns:
            Number of snapshots with at least one significant change
        """
        if not self._config.enabled:
            self._logger.debug("Statistics monitoring is disabled")
            return 0

        warnings = 0
        for stats in snapshots:
            try:
                changes = await self.check(stats)
            except StorageFailure as e:
                self._logger.warning(
                    f"Failed to monitor statistics {stats.scope.label()} {stats.period_label}: {e}"
                )
                continue
            if changes:
                warnings += 1

        self._logger.info(
            f"Statistics monitoring completed: {len(snapshots)} monitored, {warnings} warnings"
        )
        return warnings

    def detect_significant_changes(
        self,
        current: Statistics,
        previous: Statistics,
    ) -> List[MetricChange]:
        cfg = self._config
        changes: List[MetricChange] = []

        if current.win_rate is not None and previous.win_rate is not None:
            delta = current.win_rate - previous.win_rate
            if abs(delta) >= cfg.win_rate_change_threshold:
                changes.append(MetricChange(
                    "Win Rate",
                    f"{previous.win_rate:.2f}%",
                    f"{current.win_rate:.2f}%",
                    delta,
                    ChangeType.PERCENTAGE_POINTS,
                ))

        if current.total_signals > 0 and previous.total_signals > 0:
            prev_ratio = _ratio(previous.profitable_signals, previous.total_signals)
            curr_ratio = _ratio(current.profitable_signals, current.total_signals)
            delta = curr_ratio - prev_ratio
            if abs(delta) >= cfg.profit_ratio_change_threshold:
                changes.append(MetricChange(
                    "Profitable Signals Ratio",
                    f"{prev_ratio:.2f}%",
                    f"{curr_ratio:.2f}%",
                    delta,
                    ChangeType.PERCENTAGE_POINTS,
                ))

        relative = (
            ("Average Profit", current.avg_profit_pct, previous.avg_profit_pct,
             cfg.avg_profit_change_threshold, "%"),
            ("Average Loss", current.avg_loss_pct, previous.avg_loss_pct,
             cfg.avg_loss_change_threshold, "%"),
            ("Profit Factor", current.profit_factor, previous.profit_factor,
             cfg.profit_factor_change_threshold, ""),
        )
        for name, curr, prev, threshold, suffix in relative:
            if curr is None or prev is None or prev == ZERO:
                continue
            pct = quantize_pct((curr - prev) / prev * HUNDRED)
            if abs(pct) >= threshold:
                changes.append(MetricChange(
                    name,
                    f"{prev:.2f}{suffix}",
                    f"{curr:.2f}{suffix}",
                    pct,
                    ChangeType.PERCENTAGE,
                ))

        if previous.total_signals > 0:
            pct = quantize_pct(
                Decimal(current.total_signals - previous.total_signals)
                / Decimal(previous.total_signals) * HUNDRED
            )
            if abs(pct) >= cfg.signal_count_change_threshold:
                changes.append(MetricChange(
                    "Total Signals",
                    str(previous.total_signals),
                    str(current.total_signals),
                    pct,
                    ChangeType.PERCENTAGE,
                ))

        return changes

    def log_changes(
        self,
        current: Statistics,
        previous: Statistics,
        changes: Sequence[MetricChange],
    ) -> None:
        lines = [
            "STATISTICS CHANGE DETECTED",
            f"Strategy: {current.strategy_name or 'ALL'}",
            f"Symbol:   {current.symbol or 'ALL'}",
            f"Period:   {current.period_label}",
            f"Previous: {previous.calculated_at.isoformat()}",
            f"Current:  {current.calculated_at.isoformat()}",
        ]
        lines.extend(f"  {change.describe()}" for change in changes)
        self._logger.warning("\n".join(lines))


def _ratio(part: int, whole: int) -> Decimal:
    return quantize_pct(Decimal(part) / Decimal(whole) * HUNDRED)


__all__ = ["ChangeType", "MetricChange", "StatisticsMonitor"]
