"""
Signal Lifecycle - Rules.

============================================================
PURPOSE
============================================================
Conditions the lifecycle manager evaluates on each advance.

- Confirmation rule: PENDING -> CONFIRMED
- Invalidation rule: TRACKING -> INVALIDATED
- Close conditions: TRACKING -> CLOSED

CLOSE CONDITION ORDER:
1. Stop loss (explicit price, else percentage)
2. Take profit (explicit price, else percentage)
3. Time limit (hours since generation)

Thresholds come from the signal's config_snapshot, falling
back to CloseConditionConfig defaults.

============================================================
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping, Optional

from core.clock import hours_between
from .config import CloseConditionConfig
from .types import (
    Direction,
    ExitReason,
    MarketSnapshot,
    Signal,
    ZERO,
    to_decimal,
)


logger = logging.getLogger(__name__)


SignalRule = Callable[[Signal, MarketSnapshot], bool]
"""(signal, snapshot) -> whether the condition holds."""


# ============================================================
# CONFIRMATION / INVALIDATION RULES
# ============================================================

def direction_holds_rule(signal: Signal, snapshot: MarketSnapshot) -> bool:
    """
    Default confirmation rule.

    Confirms when the observation falls inside the confirmation
    window and price has not moved against the call.
    """
    if snapshot.observed_at < signal.confirmation_start:
        return False
    if snapshot.observed_at > signal.confirmation_end:
        return False
    return signal.adjusted_change_pct(snapshot.price) >= ZERO


def never_rule(signal: Signal, snapshot: MarketSnapshot) -> bool:
    """Rule that never fires (default invalidation rule)."""
    return False


def reversal_rule(threshold_pct: Decimal) -> SignalRule:
    """
    Invalidation rule factory: premise is violated once the
    direction-adjusted change drops to -threshold_pct.
    """
    limit = -to_decimal(threshold_pct)

    def rule(signal: Signal, snapshot: MarketSnapshot) -> bool:
        return signal.adjusted_change_pct(snapshot.price) <= limit

    return rule


# ============================================================
# CLOSE THRESHOLDS
# ============================================================

@dataclass(frozen=True)
class CloseThresholds:
    """Effective close-condition thresholds for one signal."""

    profit_target_pct: Decimal
    stop_loss_pct: Decimal
    tracking_hours: int

    @classmethod
    def for_signal(
        cls,
        signal: Signal,
        defaults: CloseConditionConfig,
    ) -> "CloseThresholds":
        snapshot = signal.config_snapshot or {}
        return cls(
            profit_target_pct=_decimal_setting(
                snapshot, "profit_target_pct", defaults.profit_target_pct
            ),
            stop_loss_pct=_decimal_setting(
                snapshot, "stop_loss_pct", defaults.stop_loss_pct
            ),
            tracking_hours=int(_decimal_setting(
                snapshot, "tracking_hours", Decimal(defaults.tracking_hours)
            )),
        )


def _decimal_setting(snapshot: Mapping[str, Any], key: str, default: Decimal) -> Decimal:
    value = snapshot.get(key)
    if value is None or isinstance(value, bool):
        return default
    try:
        parsed = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        logger.warning(f"Ignoring invalid config_snapshot value {key}={value!r}")
        return default
    if parsed <= ZERO:
        logger.warning(f"Ignoring non-positive config_snapshot value {key}={value!r}")
        return default
    return parsed


# ============================================================
# CLOSE CONDITIONS
# ============================================================

def is_stop_loss_hit(
    signal: Signal,
    price: Decimal,
    thresholds: CloseThresholds,
) -> bool:
    """Explicit stop price if set, else percentage stop."""
    if signal.stop_loss_price is not None and signal.stop_loss_price > ZERO:
        if signal.direction is Direction.SHORT:
            return price >= signal.stop_loss_price
        return price <= signal.stop_loss_price
    return signal.adjusted_change_pct(price) <= -thresholds.stop_loss_pct


def is_take_profit_hit(
    signal: Signal,
    price: Decimal,
    thresholds: CloseThresholds,
) -> bool:
    """Explicit target price if set, else percentage target."""
    if signal.target_price is not None and signal.target_price > ZERO:
        if signal.direction is Direction.SHORT:
            return price <= signal.target_price
        return price >= signal.target_price
    return signal.adjusted_change_pct(price) >= thresholds.profit_target_pct


def evaluate_close(
    signal: Signal,
    snapshot: MarketSnapshot,
    thresholds: CloseThresholds,
) -> Optional[ExitReason]:
    """Which close condition fires for this observation, if any."""
    if is_stop_loss_hit(signal, snapshot.price, thresholds):
        return ExitReason.STOP_LOSS
    if is_take_profit_hit(signal, snapshot.price, thresholds):
        return ExitReason.TAKE_PROFIT
    if hours_between(signal.generated_at, snapshot.observed_at) >= thresholds.tracking_hours:
        return ExitReason.TIME_LIMIT
    return None


__all__ = [
    "SignalRule",
    "direction_holds_rule",
    "never_rule",
    "reversal_rule",
    "CloseThresholds",
    "is_stop_loss_hit",
    "is_take_profit_hit",
    "evaluate_close",
]
