"""
Performance Analytics - Statistics Aggregator.

============================================================
PURPOSE
============================================================
Derives Statistics snapshots from stored signals, outcomes
and kline tracking rows.

WINDOWS:
- Signal counts: signals generated inside [start, end]
- Outcome metrics: CLOSED signals whose closed_at is inside
  [start, end]
- Kline metrics: kline rows of those closed signals

FORMULAS:
- win_rate = profitable / (profitable + losing) * 100,
  BREAKEVEN excluded, absent when nothing was decisive
- profit_factor = sum of gains / |sum of losses|, absent
  without losses
- kline win rates = profitable bars / total bars * 100

compute_statistics() is pure and order-independent: inputs
are sorted before folding, so the same rows always give the
same snapshot.

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from itertools import chain
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from core.clock import ClockProtocol, SystemClock
from core.exceptions import StorageFailure
from signal_lifecycle.types import (
    HUNDRED,
    OutcomeClassification,
    Signal,
    SignalKlineTracking,
    SignalOutcome,
    SignalStatus,
    ZERO,
    quantize_hours,
    quantize_pct,
)
from storage.repositories.signal_store import SignalStore
from .config import AggregationConfig
from .monitor import StatisticsMonitor
from .types import Period, Statistics, StatisticsScope


SECONDS_PER_HOUR = Decimal("3600")


# ============================================================
# PURE COMPUTATION
# ============================================================

@dataclass
class AggregationInput:
    """Rows a snapshot is computed from."""

    generated: Sequence[Signal] = field(default_factory=list)
    """Signals generated in the window."""

    closed: Sequence[Signal] = field(default_factory=list)
    """CLOSED signals whose closed_at is in the window."""

    outcomes: Mapping[str, SignalOutcome] = field(default_factory=dict)
    klines: Mapping[str, Sequence[SignalKlineTracking]] = field(default_factory=dict)

    def for_scope(self, scope: StatisticsScope) -> "AggregationInput":
        """Restrict signals to those the scope covers."""
        return AggregationInput(
            generated=[s for s in self.generated if scope.matches(s.strategy_name, s.symbol)],
            closed=[s for s in self.closed if scope.matches(s.strategy_name, s.symbol)],
            outcomes=self.outcomes,
            klines=self.klines,
        )

    def is_empty(self) -> bool:
        return not self.generated and not self.closed


def compute_statistics(
    scope: StatisticsScope,
    period_label: str,
    period_start: datetime,
    period_end: datetime,
    calculated_at: datetime,
    data: AggregationInput,
    logger: Optional[logging.Logger] = None,
) -> Statistics:
    """
    Fold one scope's rows into a Statistics snapshot.

    Args:
        scope: Strategy / symbol slice
        period_label: Label stored on the snapshot
        period_start: Window start (inclusive)
        period_end: Window end (inclusive)
        calculated_at: Snapshot timestamp
        data: Candidate rows; signals outside the scope are ignored
        logger: Receives a warning per closed signal without an outcome

    Returns:
        The snapshot
    """
    log = logger or logging.getLogger(__name__)
    data = data.for_scope(scope)

    generated = sorted(data.generated, key=lambda s: s.signal_id)
    closed = sorted(data.closed, key=lambda s: s.signal_id)

    total = len(generated)
    confirmed = sum(1 for s in generated if s.confirmed_at is not None)
    invalidated = sum(1 for s in generated if s.status is SignalStatus.INVALIDATED)

    outcome_metrics = _outcome_metrics(closed, data.outcomes, log)
    kline_metrics = _kline_metrics(closed, data.klines)

    return Statistics(
        strategy_name=scope.strategy_name,
        symbol=scope.symbol,
        period_label=period_label,
        period_start=period_start,
        period_end=period_end,
        calculated_at=calculated_at,
        total_signals=total,
        confirmed_signals=confirmed,
        invalidated_signals=invalidated,
        **outcome_metrics,
        **kline_metrics,
    )


def _outcome_metrics(
    closed: Sequence[Signal],
    outcomes: Mapping[str, SignalOutcome],
    log: logging.Logger,
) -> Dict[str, object]:
    profitable = losing = neutral = 0
    gains: List[Decimal] = []
    losses: List[Decimal] = []
    holding_hours: List[Decimal] = []
    mfes: List[Decimal] = []
    maes: List[Decimal] = []

    for signal in closed:
        outcome = outcomes.get(signal.signal_id)
        if outcome is None:
            neutral += 1
            log.warning(f"Closed signal missing outcome: {signal.signal_id}")
            continue

        elapsed = Decimal(str((outcome.closed_at - signal.generated_at).total_seconds()))
        holding_hours.append(elapsed / SECONDS_PER_HOUR)
        mfes.append(outcome.max_profit_pct)
        maes.append(outcome.max_drawdown_pct)

        if outcome.classification is OutcomeClassification.PROFIT:
            profitable += 1
            gains.append(outcome.final_pnl_pct)
        elif outcome.classification is OutcomeClassification.LOSS:
            losing += 1
            losses.append(outcome.final_pnl_pct)
        else:
            neutral += 1

    decisive = profitable + losing
    total_gain = sum(gains, ZERO)
    total_loss = abs(sum(losses, ZERO))

    return {
        "profitable_signals": profitable,
        "losing_signals": losing,
        "neutral_signals": neutral,
        "win_rate": _rate(profitable, decisive),
        "profit_factor": quantize_pct(total_gain / total_loss) if total_loss != ZERO else None,
        "avg_profit_pct": _mean(gains),
        "avg_loss_pct": _mean([abs(v) for v in losses]),
        "avg_holding_hours": quantize_hours(sum(holding_hours, ZERO) / len(holding_hours))
        if holding_hours else None,
        "best_signal_pct": max(gains) if gains else None,
        "worst_signal_pct": min(losses) if losses else None,
        "avg_mfe_pct": _mean(mfes),
        "avg_mae_pct": _mean(maes),
    }


def _kline_metrics(
    closed: Sequence[Signal],
    klines: Mapping[str, Sequence[SignalKlineTracking]],
) -> Dict[str, object]:
    rows: List[SignalKlineTracking] = []
    for signal in closed:
        rows.extend(sorted(klines.get(signal.signal_id, ()), key=lambda k: k.kline_open_time))

    total = len(rows)
    at_high = sum(1 for k in rows if k.is_profitable_at_high)
    at_close = sum(1 for k in rows if k.is_profitable_at_close)
    returns = [k.hourly_return_pct for k in rows]

    return {
        "total_kline_hours": total,
        "profitable_kline_hours_high": at_high,
        "profitable_kline_hours_close": at_close,
        "kline_theoretical_win_rate": _rate(at_high, total),
        "kline_close_win_rate": _rate(at_close, total),
        "avg_hourly_return_pct": _mean(returns),
        "max_hourly_return_pct": max(returns) if returns else None,
        "min_hourly_return_pct": min(returns) if returns else None,
        "avg_max_potential_profit_pct": _mean([k.max_potential_profit_pct for k in rows]),
        "avg_max_potential_loss_pct": _mean([k.max_potential_loss_pct for k in rows]),
    }


def _rate(numerator: int, denominator: int) -> Optional[Decimal]:
    if denominator == 0:
        return None
    return quantize_pct(Decimal(numerator) / Decimal(denominator) * HUNDRED)


def _mean(values: Sequence[Decimal]) -> Optional[Decimal]:
    if not values:
        return None
    return quantize_pct(sum(values, ZERO) / Decimal(len(values)))


# ============================================================
# AGGREGATOR
# ============================================================

class StatisticsAggregator:
    """Loads rows from the store and appends statistics snapshots."""

    def __init__(
        self,
        store: SignalStore,
        config: Optional[AggregationConfig] = None,
        monitor: Optional[StatisticsMonitor] = None,
        clock: Optional[ClockProtocol] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._config = config or AggregationConfig()
        self._monitor = monitor
        self._clock = clock or SystemClock()
        self._logger = logger or logging.getLogger(__name__)

    async def aggregate(
        self,
        scope: StatisticsScope,
        period: Period,
        now: Optional[datetime] = None,
    ) -> Statistics:
        """Compute (without storing) the snapshot for one scope and period."""
        now = now or self._clock.now()
        start, end = period.window(now)
        data = await self._load(start, end)
        return compute_statistics(
            scope, period.value, start, end, now, data, logger=self._logger
        )

    async def calculate_all(self, now: Optional[datetime] = None) -> List[Statistics]:
        """
        Compute and append snapshots for every configured period and scope.

        Scopes: each strategy over all its symbols, each strategy and
        symbol pair, and the overall scope.
        """
        now = now or self._clock.now()
        written: List[Statistics] = []

        for period in self._config.parsed_periods():
            start, end = period.window(now)
            data = await self._load(start, end)

            for scope in self._scopes(data):
                scoped = data.for_scope(scope)
                if self._config.skip_empty_scopes and scoped.is_empty():
                    continue
                stats = compute_statistics(
                    scope, period.value, start, end, now, scoped, logger=self._logger
                )
                await self._store.write_statistics_snapshot(stats)
                written.append(stats)

        self._logger.info(
            f"Statistics calculation completed: {len(written)} snapshots "
            f"over {len(self._config.periods)} periods"
        )

        if self._monitor is not None:
            await self._monitor.check_all(written)
        return written

    def _scopes(self, data: AggregationInput) -> List[StatisticsScope]:
        strategies: Set[str] = set()
        pairs: Set[Tuple[str, str]] = set()
        for signal in chain(data.generated, data.closed):
            strategies.add(signal.strategy_name)
            pairs.add((signal.strategy_name, signal.symbol))

        scopes = [StatisticsScope(strategy_name=name) for name in sorted(strategies)]
        if self._config.include_symbol_scopes:
            scopes.extend(
                StatisticsScope(strategy_name=name, symbol=symbol)
                for name, symbol in sorted(pairs)
            )
        if self._config.include_overall:
            scopes.append(StatisticsScope.overall())
        return scopes

    async def _load(self, start: datetime, end: datetime) -> AggregationInput:
        generated = await self._store.get_signals_generated_between(start, end)
        closed = await self._store.get_closed_signals_between(start, end)
        closed_ids = [s.signal_id for s in closed]

        try:
            outcomes = await self._store.get_outcomes_by_ids(closed_ids)
        except StorageFailure as e:
            self._logger.warning(f"Failed to fetch signal outcomes: {e}")
            outcomes = {}

        try:
            klines = await self._store.get_kline_tracking_by_ids(closed_ids)
        except StorageFailure as e:
            self._logger.warning(f"Failed to fetch kline tracking: {e}")
            klines = {}

        return AggregationInput(
            generated=generated,
            closed=closed,
            outcomes=outcomes,
            klines=klines,
        )


__all__ = [
    "AggregationInput",
    "compute_statistics",
    "StatisticsAggregator",
]
