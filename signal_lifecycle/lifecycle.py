"""
Signal Lifecycle - Lifecycle Manager.

============================================================
PURPOSE
============================================================
Owns the signal state machine and applies confirmation,
invalidation and closure transitions.

CONTRACT:
    advance(signal, snapshot) -> (new_status, transitioned)

- Terminal signals: no-op, (status, False)
- PENDING: confirm (and immediately start tracking) when the
  confirmation rule holds by the deadline; invalidate once the
  deadline has passed
- CONFIRMED: start tracking
- TRACKING: close when a close condition fires, resolving the
  outcome in the same store transaction; invalidate when the
  invalidation rule fires

CONCURRENCY:
Every transition is a compare-and-set on the store keyed by
signal_id. The loser of a race gets ConflictError, re-reads the
signal and performs no write.

============================================================
"""

import dataclasses
import logging
from typing import Callable, List, Optional, Tuple

from core.clock import ClockProtocol, SystemClock
from core.exceptions import ComputationInvariantViolation, ConflictError
from storage.repositories.signal_store import SignalStore
from .config import LifecycleConfig
from .resolver import OutcomeResolver
from .rules import (
    CloseThresholds,
    SignalRule,
    direction_holds_rule,
    evaluate_close,
    never_rule,
)
from .state_machine import StateTransitionEvent, TransitionGuard, describe_transition
from .types import (
    ExitReason,
    MarketSnapshot,
    Signal,
    SignalOutcome,
    SignalStatus,
)


TransitionListener = Callable[[StateTransitionEvent], None]


class LifecycleManager:
    """Applies lifecycle transitions to signals through the store."""

    def __init__(
        self,
        store: SignalStore,
        resolver: Optional[OutcomeResolver] = None,
        config: Optional[LifecycleConfig] = None,
        clock: Optional[ClockProtocol] = None,
        confirmation_rule: SignalRule = direction_holds_rule,
        invalidation_rule: SignalRule = never_rule,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._config = config or LifecycleConfig()
        self._resolver = resolver or OutcomeResolver(close_defaults=self._config.close)
        self._clock = clock or SystemClock()
        self._confirmation_rule = confirmation_rule
        self._invalidation_rule = invalidation_rule
        self._logger = logger or logging.getLogger(__name__)
        self._listeners: List[TransitionListener] = []

    # --------------------------------------------------------
    # Listeners
    # --------------------------------------------------------

    def add_listener(self, listener: TransitionListener) -> None:
        """Register a callback invoked after each applied transition."""
        self._listeners.append(listener)

    def remove_listener(self, listener: TransitionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # --------------------------------------------------------
    # Advance
    # --------------------------------------------------------

    async def advance(
        self,
        signal: Signal,
        snapshot: MarketSnapshot,
    ) -> Tuple[SignalStatus, bool]:
        """
        Move a signal forward given a market observation.

        Args:
            signal: Signal as last read from the store
            snapshot: Current market observation for the signal's symbol

        Returns:
            Tuple of (status after the call, whether a transition was applied)
        """
        if signal.status.is_terminal():
            return signal.status, False
        if signal.needs_inspection:
            # Flagged signals wait for manual inspection
            return signal.status, False

        try:
            if signal.status is SignalStatus.PENDING:
                return await self._advance_pending(signal, snapshot)
            if signal.status is SignalStatus.CONFIRMED:
                await self._start_tracking(signal, snapshot)
                return SignalStatus.TRACKING, True
            return await self._advance_tracking(signal, snapshot)
        except ConflictError as e:
            current = await self._store.get_signal(signal.signal_id)
            self._logger.info(
                f"Signal {signal.signal_id}: lost transition race "
                f"(expected {e.context.get('expected')}, found {current.status.value})"
            )
            return current.status, False
        except ComputationInvariantViolation as e:
            self._logger.error(
                f"Signal {signal.signal_id}: invariant violation, flagging for inspection: {e}"
            )
            await self._store.flag_for_inspection(signal.signal_id, str(e))
            return signal.status, False

    async def _advance_pending(
        self,
        signal: Signal,
        snapshot: MarketSnapshot,
    ) -> Tuple[SignalStatus, bool]:
        if snapshot.observed_at > signal.confirmation_end:
            await self._transition(
                signal,
                SignalStatus.INVALIDATED,
                reason="confirmation deadline elapsed",
                changes={"invalidated_at": snapshot.observed_at},
            )
            return SignalStatus.INVALIDATED, True

        if not self._confirmation_rule(signal, snapshot):
            return SignalStatus.PENDING, False

        confirmed = await self._transition(
            signal,
            SignalStatus.CONFIRMED,
            reason="confirmation condition met",
            changes={"confirmed_at": snapshot.observed_at},
        )
        await self._start_tracking(confirmed, snapshot)
        return SignalStatus.TRACKING, True

    async def _start_tracking(self, signal: Signal, snapshot: MarketSnapshot) -> Signal:
        return await self._transition(
            signal,
            SignalStatus.TRACKING,
            reason="tracking started",
        )

    async def _advance_tracking(
        self,
        signal: Signal,
        snapshot: MarketSnapshot,
    ) -> Tuple[SignalStatus, bool]:
        thresholds = CloseThresholds.for_signal(signal, self._config.close)
        exit_reason = evaluate_close(signal, snapshot, thresholds)

        if exit_reason is not None:
            closed = await self._close(signal, snapshot, exit_reason)
            return (SignalStatus.CLOSED, True) if closed else (signal.status, False)

        if self._invalidation_rule(signal, snapshot):
            await self._transition(
                signal,
                SignalStatus.INVALIDATED,
                reason="premise violated during tracking",
                changes={"invalidated_at": snapshot.observed_at},
            )
            return SignalStatus.INVALIDATED, True

        return SignalStatus.TRACKING, False

    async def _close(
        self,
        signal: Signal,
        snapshot: MarketSnapshot,
        exit_reason: ExitReason,
    ) -> bool:
        changes = {
            "closed_at": snapshot.observed_at,
            "exit_price": snapshot.price,
            "exit_reason": exit_reason,
        }
        closed_view = dataclasses.replace(signal, status=SignalStatus.CLOSED, **changes)

        try:
            history = await self._store.get_tracking_history(signal.signal_id)
            outcome = self._resolver.resolve(closed_view, history)
        except ComputationInvariantViolation as e:
            self._logger.error(
                f"Signal {signal.signal_id}: outcome resolution failed, "
                f"flagging for inspection: {e}"
            )
            await self._store.flag_for_inspection(signal.signal_id, str(e))
            return False

        await self._transition(
            signal,
            SignalStatus.CLOSED,
            reason=_CLOSE_REASONS[exit_reason],
            changes=changes,
            outcome=outcome,
        )
        self._logger.info(
            f"Signal {signal.signal_id} closed: {outcome.classification.value} "
            f"final={outcome.final_pnl_pct}% reason={exit_reason.value}"
        )
        return True

    # --------------------------------------------------------
    # Transition
    # --------------------------------------------------------

    async def _transition(
        self,
        signal: Signal,
        to_status: SignalStatus,
        reason: str,
        changes: Optional[dict] = None,
        outcome: Optional[SignalOutcome] = None,
    ) -> Signal:
        allowed, why = TransitionGuard.can_transition(signal.status, to_status)
        if not allowed:
            raise ComputationInvariantViolation(why, signal_id=signal.signal_id)

        target = dataclasses.replace(signal, status=to_status, **(changes or {}))
        valid, why = TransitionGuard.validate_signal_for_status(
            target, to_status, has_outcome=outcome is not None
        )
        if not valid:
            raise ComputationInvariantViolation(why, signal_id=signal.signal_id)

        stored = await self._store.apply_status_transition(
            signal.signal_id,
            expected=signal.status,
            new=to_status,
            changes=changes,
            outcome=outcome,
        )

        event = describe_transition(signal, to_status, reason, at=self._clock.now())
        self._logger.info(
            f"Signal {signal.signal_id}: {signal.status.value} -> {to_status.value} ({reason})"
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                self._logger.error(f"Transition listener error: {e}")

        return stored


_CLOSE_REASONS = {
    ExitReason.STOP_LOSS: "stop loss hit",
    ExitReason.TAKE_PROFIT: "profit target reached",
    ExitReason.TIME_LIMIT: "tracking period elapsed",
}


__all__ = ["LifecycleManager", "TransitionListener"]
