"""
Tests for the signal state machine, lifecycle rules and config.

============================================================
PURPOSE
============================================================
- Only the legal edges are allowed
- Terminal states absorb
- Close conditions fire in SL -> TP -> TIME order with
  per-signal overrides
============================================================
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from core.exceptions import ConfigurationError
from signal_lifecycle.config import (
    CloseConditionConfig,
    SignalLifecycleConfig,
    TrackerConfig,
)
from signal_lifecycle.rules import (
    CloseThresholds,
    direction_holds_rule,
    evaluate_close,
    never_rule,
    reversal_rule,
)
from signal_lifecycle.state_machine import (
    VALID_TRANSITIONS,
    TransitionGuard,
    describe_transition,
    next_statuses,
)
from signal_lifecycle.types import (
    Direction,
    ExitReason,
    MarketSnapshot,
    SignalStatus,
    to_jsonable,
)
from tests.helpers import T0, make_signal


def snapshot(price: str, minutes: int = 10) -> MarketSnapshot:
    return MarketSnapshot("BTCUSDT", Decimal(price), T0 + timedelta(minutes=minutes))


# ============================================================
# TRANSITIONS
# ============================================================

class TestTransitionGuard:
    """Legal edges of the lifecycle graph."""

    @pytest.mark.parametrize("src,dst", [
        (SignalStatus.PENDING, SignalStatus.CONFIRMED),
        (SignalStatus.PENDING, SignalStatus.INVALIDATED),
        (SignalStatus.CONFIRMED, SignalStatus.TRACKING),
        (SignalStatus.TRACKING, SignalStatus.CLOSED),
        (SignalStatus.TRACKING, SignalStatus.INVALIDATED),
    ])
    def test_legal_edges(self, src, dst):
        allowed, _ = TransitionGuard.can_transition(src, dst)
        assert allowed

    @pytest.mark.parametrize("src,dst", [
        (SignalStatus.PENDING, SignalStatus.TRACKING),
        (SignalStatus.PENDING, SignalStatus.CLOSED),
        (SignalStatus.CONFIRMED, SignalStatus.CLOSED),
        (SignalStatus.CONFIRMED, SignalStatus.INVALIDATED),
        (SignalStatus.TRACKING, SignalStatus.PENDING),
    ])
    def test_illegal_edges(self, src, dst):
        allowed, reason = TransitionGuard.can_transition(src, dst)
        assert not allowed
        assert "Invalid transition" in reason

    @pytest.mark.parametrize("terminal", [SignalStatus.CLOSED, SignalStatus.INVALIDATED])
    def test_terminal_states_absorb(self, terminal):
        assert next_statuses(terminal) == frozenset()
        for target in SignalStatus:
            allowed, reason = TransitionGuard.can_transition(terminal, target)
            assert not allowed
            assert "terminal" in reason

    def test_every_status_has_an_entry(self):
        assert set(VALID_TRANSITIONS) == set(SignalStatus)

    def test_closed_requires_outcome_and_timestamps(self):
        signal = make_signal(
            status=SignalStatus.CLOSED,
            confirmed_at=T0,
            closed_at=T0 + timedelta(hours=1),
        )
        valid, _ = TransitionGuard.validate_signal_for_status(signal, SignalStatus.CLOSED)
        assert not valid
        valid, _ = TransitionGuard.validate_signal_for_status(
            signal, SignalStatus.CLOSED, has_outcome=True
        )
        assert valid

    def test_tracking_requires_confirmed_at(self):
        signal = make_signal(status=SignalStatus.TRACKING)
        valid, reason = TransitionGuard.validate_signal_for_status(signal, SignalStatus.TRACKING)
        assert not valid
        assert "confirmed_at" in reason

    def test_invalidated_requires_timestamp(self):
        valid, _ = TransitionGuard.validate_signal_for_status(
            make_signal(), SignalStatus.INVALIDATED
        )
        assert not valid

    def test_describe_transition(self):
        event = describe_transition(make_signal(), SignalStatus.CONFIRMED, "ok", at=T0)
        assert event.from_status is SignalStatus.PENDING
        assert event.to_status is SignalStatus.CONFIRMED
        assert event.timestamp == T0


# ============================================================
# RULES
# ============================================================

class TestRules:
    """Confirmation, invalidation and close conditions."""

    def test_direction_holds_inside_window(self):
        signal = make_signal()
        assert direction_holds_rule(signal, snapshot("100.5"))
        assert direction_holds_rule(signal, snapshot("100"))
        assert not direction_holds_rule(signal, snapshot("99.9"))

    def test_direction_holds_outside_window(self):
        signal = make_signal()
        assert not direction_holds_rule(signal, snapshot("101", minutes=121))

    def test_direction_holds_short(self):
        signal = make_signal(direction=Direction.SHORT)
        assert direction_holds_rule(signal, snapshot("99"))
        assert not direction_holds_rule(signal, snapshot("101"))

    def test_never_and_reversal_rules(self):
        signal = make_signal()
        assert not never_rule(signal, snapshot("1"))
        rule = reversal_rule(Decimal("1.5"))
        assert rule(signal, snapshot("98.5"))
        assert not rule(signal, snapshot("98.6"))

    def test_defaults_when_snapshot_empty(self):
        thresholds = CloseThresholds.for_signal(make_signal(), CloseConditionConfig())
        assert thresholds.profit_target_pct == Decimal("5.0")
        assert thresholds.stop_loss_pct == Decimal("2.0")
        assert thresholds.tracking_hours == 24

    def test_snapshot_overrides(self):
        signal = make_signal(config_snapshot={
            "profit_target_pct": 3,
            "stop_loss_pct": "1.5",
            "tracking_hours": 12,
        })
        thresholds = CloseThresholds.for_signal(signal, CloseConditionConfig())
        assert thresholds.profit_target_pct == Decimal("3")
        assert thresholds.stop_loss_pct == Decimal("1.5")
        assert thresholds.tracking_hours == 12

    def test_invalid_overrides_fall_back(self):
        signal = make_signal(config_snapshot={"stop_loss_pct": "abc", "profit_target_pct": -1})
        thresholds = CloseThresholds.for_signal(signal, CloseConditionConfig())
        assert thresholds.stop_loss_pct == Decimal("2.0")
        assert thresholds.profit_target_pct == Decimal("5.0")

    def test_close_order(self):
        signal = make_signal()
        thresholds = CloseThresholds.for_signal(signal, CloseConditionConfig())
        assert evaluate_close(signal, snapshot("98"), thresholds) is ExitReason.STOP_LOSS
        assert evaluate_close(signal, snapshot("105"), thresholds) is ExitReason.TAKE_PROFIT
        assert evaluate_close(signal, snapshot("101"), thresholds) is None
        assert evaluate_close(
            signal, snapshot("101", minutes=24 * 60), thresholds
        ) is ExitReason.TIME_LIMIT

    def test_stop_loss_wins_over_time_limit(self):
        signal = make_signal()
        thresholds = CloseThresholds.for_signal(signal, CloseConditionConfig())
        late = snapshot("97", minutes=25 * 60)
        assert evaluate_close(signal, late, thresholds) is ExitReason.STOP_LOSS

    def test_explicit_prices_take_precedence(self):
        signal = make_signal(
            direction=Direction.SHORT,
            stop_loss_price=Decimal("100.5"),
            target_price=Decimal("99"),
        )
        thresholds = CloseThresholds.for_signal(signal, CloseConditionConfig())
        assert evaluate_close(signal, snapshot("100.6"), thresholds) is ExitReason.STOP_LOSS
        assert evaluate_close(signal, snapshot("99"), thresholds) is ExitReason.TAKE_PROFIT
        assert evaluate_close(signal, snapshot("99.5"), thresholds) is None


# ============================================================
# CONFIG
# ============================================================

class TestLifecycleConfig:

    def test_defaults_validate(self):
        SignalLifecycleConfig().validate()
        SignalLifecycleConfig.for_testing().validate()

    def test_rejects_bad_interval(self):
        config = SignalLifecycleConfig(tracker=TrackerConfig(tracking_interval_seconds=0))
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_rejects_negative_epsilon(self):
        config = SignalLifecycleConfig()
        config.resolver.breakeven_epsilon_pct = Decimal("-0.1")
        with pytest.raises(ConfigurationError):
            config.validate()


# ============================================================
# SERIALISATION
# ============================================================

class TestToJsonable:

    def test_nested_values(self):
        value = {
            "price": Decimal("101.50"),
            "direction": Direction.SHORT,
            "at": T0,
            "levels": (Decimal("1"), [ExitReason.TAKE_PROFIT]),
            3: None,
        }

        assert to_jsonable(value) == {
            "price": "101.50",
            "direction": "SHORT",
            "at": T0.isoformat(),
            "levels": ["1", ["TP"]],
            "3": None,
        }
