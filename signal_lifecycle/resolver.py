"""
Signal Lifecycle - Outcome Resolver.

============================================================
PURPOSE
============================================================
Computes the terminal outcome of a CLOSED signal from its
tracking history.

- final_pnl_pct: direction-adjusted change of the tracking
  point nearest closed_at (ties go to the later point)
- classification: BREAKEVEN within +/- epsilon, else sign
- MFE / MAE: best / worst direction-adjusted change seen at
  any point, including each point's running extrema
- risk_reward_ratio: MFE / |MAE|, absent when MAE is zero
- total_tracking_hours: closed_at - confirmed_at

DETERMINISM:
Decimal arithmetic, fixed quantisation, no clock reads.
The same signal and history always yield an equal outcome.

============================================================
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from core.exceptions import ComputationInvariantViolation
from .config import CloseConditionConfig, ResolverConfig
from .rules import CloseThresholds
from .types import (
    ExitReason,
    OutcomeClassification,
    Signal,
    SignalOutcome,
    SignalStatus,
    SignalTracking,
    ZERO,
    quantize_hours,
    quantize_pct,
)


SECONDS_PER_HOUR = Decimal("3600")


class OutcomeResolver:
    """Pure function object: (signal, tracking history) -> SignalOutcome."""

    def __init__(
        self,
        config: Optional[ResolverConfig] = None,
        close_defaults: Optional[CloseConditionConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._config = config or ResolverConfig()
        self._close_defaults = close_defaults or CloseConditionConfig()
        self._logger = logger or logging.getLogger(__name__)

    @property
    def breakeven_epsilon(self) -> Decimal:
        return self._config.breakeven_epsilon_pct

    def resolve(
        self,
        signal: Signal,
        history: Sequence[SignalTracking],
    ) -> SignalOutcome:
        """
        Resolve the outcome of a closed signal.

        Args:
            signal: Signal in CLOSED status with confirmed_at and closed_at set
            history: Every tracking point recorded for the signal

        Returns:
            The outcome

        Raises:
            ComputationInvariantViolation: If the signal or history
                breaks a lifecycle invariant
        """
        self._check_invariants(signal, history)
        points = sorted(history, key=lambda t: t.tracked_at)
        closed_at = signal.closed_at
        direction = signal.direction

        nearest = self._nearest_point(points, closed_at)
        final_pnl = quantize_pct(direction.adjust(nearest.price_change_pct))

        (mfe, peak_at), (mae, trough_at) = self._excursions(signal, points)

        risk_reward: Optional[Decimal] = None
        if mae != ZERO:
            risk_reward = quantize_pct(mfe / abs(mae))

        elapsed = Decimal(str((closed_at - signal.confirmed_at).total_seconds()))
        thresholds = CloseThresholds.for_signal(signal, self._close_defaults)

        outcome = SignalOutcome(
            signal_id=signal.signal_id,
            classification=self.classify(final_pnl),
            final_pnl_pct=final_pnl,
            max_profit_pct=mfe,
            max_drawdown_pct=mae,
            risk_reward_ratio=risk_reward,
            total_tracking_hours=quantize_hours(elapsed / SECONDS_PER_HOUR),
            closed_at=closed_at,
            exit_reason=signal.exit_reason,
            hours_to_peak=_whole_hours(signal.generated_at, peak_at),
            hours_to_trough=_whole_hours(signal.generated_at, trough_at),
            profit_target_hit=(
                signal.exit_reason is ExitReason.TAKE_PROFIT
                or mfe >= thresholds.profit_target_pct
            ),
            stop_loss_hit=(
                signal.exit_reason is ExitReason.STOP_LOSS
                or mae <= -thresholds.stop_loss_pct
            ),
        )

        self._logger.debug(
            f"Resolved signal {signal.signal_id}: {outcome.classification.value} "
            f"final={final_pnl} mfe={mfe} mae={mae} rr={risk_reward}"
        )
        return outcome

    def classify(self, final_pnl_pct: Decimal) -> OutcomeClassification:
        """PROFIT / LOSS, or BREAKEVEN within the epsilon band."""
        if abs(final_pnl_pct) <= self._config.breakeven_epsilon_pct:
            return OutcomeClassification.BREAKEVEN
        if final_pnl_pct > ZERO:
            return OutcomeClassification.PROFIT
        return OutcomeClassification.LOSS

    # --------------------------------------------------------
    # Helpers
    # --------------------------------------------------------

    @staticmethod
    def _check_invariants(signal: Signal, history: Sequence[SignalTracking]) -> None:
        if signal.status is not SignalStatus.CLOSED:
            raise ComputationInvariantViolation(
                f"cannot resolve outcome for signal in {signal.status.value}",
                signal_id=signal.signal_id,
            )
        if signal.closed_at is None or signal.confirmed_at is None:
            raise ComputationInvariantViolation(
                "closed signal is missing confirmed_at or closed_at",
                signal_id=signal.signal_id,
            )
        if signal.closed_at < signal.confirmed_at:
            raise ComputationInvariantViolation(
                "closed_at precedes confirmed_at",
                signal_id=signal.signal_id,
            )
        if not history:
            raise ComputationInvariantViolation(
                "no tracking history to resolve from",
                signal_id=signal.signal_id,
            )
        foreign = {t.signal_id for t in history} - {signal.signal_id}
        if foreign:
            raise ComputationInvariantViolation(
                "tracking history contains points of other signals",
                signal_id=signal.signal_id,
                context={"foreign": sorted(foreign)},
            )

    @staticmethod
    def _nearest_point(
        points: List[SignalTracking],
        closed_at: datetime,
    ) -> SignalTracking:
        return min(
            points,
            key=lambda t: (
                abs((t.tracked_at - closed_at).total_seconds()),
                -t.tracked_at.timestamp(),
            ),
        )

    @staticmethod
    def _excursions(
        signal: Signal,
        points: List[SignalTracking],
    ) -> Tuple[Tuple[Decimal, datetime], Tuple[Decimal, datetime]]:
        adjust = signal.direction.adjust
        # Entry baseline: excursions are measured from 0% at generation.
        candidates: List[Tuple[Decimal, datetime]] = [
            (quantize_pct(ZERO), signal.generated_at)
        ]
        for point in points:
            candidates.append((quantize_pct(adjust(point.price_change_pct)), point.tracked_at))
            candidates.append((quantize_pct(adjust(point.highest_price_pct)), point.highest_price_at))
            candidates.append((quantize_pct(adjust(point.lowest_price_pct)), point.lowest_price_at))

        # Earliest observation wins ties so hours_to_peak is stable.
        best = max(candidates, key=lambda c: (c[0], -c[1].timestamp()))
        worst = min(candidates, key=lambda c: (c[0], c[1].timestamp()))
        return best, worst


def _whole_hours(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 3600)


__all__ = ["OutcomeResolver"]
