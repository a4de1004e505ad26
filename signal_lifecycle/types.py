"""
Signal Lifecycle - Types.

============================================================
PURPOSE
============================================================
Type definitions for the signal lifecycle engine.

Signal is the aggregate root. Tracking points, kline trackings
and the outcome are owned by exactly one signal and are
immutable once written.

All prices and percentages are Decimal. Percentages are
expressed in percent units (5 means 5%).

============================================================
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from decimal import Decimal, ROUND_HALF_EVEN
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional


PCT_QUANTUM = Decimal("0.0001")
HOURS_QUANTUM = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")


def quantize_pct(value: Decimal) -> Decimal:
    """Round a percentage to storage precision."""
    return value.quantize(PCT_QUANTUM, rounding=ROUND_HALF_EVEN)


def quantize_hours(value: Decimal) -> Decimal:
    """Round an hour count to storage precision."""
    return value.quantize(HOURS_QUANTUM, rounding=ROUND_HALF_EVEN)


def to_decimal(value: Any) -> Decimal:
    """Convert floats/ints/strings to Decimal without binary noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_jsonable(value: Any) -> Any:
    """Decimals as strings, enums as values, datetimes as ISO 8601."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


# ============================================================
# ENUMS
# ============================================================

class SignalStatus(Enum):
    """
    Signal lifecycle status.

    State Machine:

    PENDING ──────► INVALIDATED
       │                ▲
       ▼                │
    CONFIRMED           │
       │                │
       ▼                │
    TRACKING ───────────┘
       │
       ▼
    CLOSED

    CLOSED and INVALIDATED are terminal.
    """

    PENDING = "PENDING"
    """Generated, awaiting confirmation."""

    CONFIRMED = "CONFIRMED"
    """Confirmation condition held before the deadline."""

    TRACKING = "TRACKING"
    """Under active monitoring."""

    CLOSED = "CLOSED"
    """Close condition fired, outcome resolved."""

    INVALIDATED = "INVALIDATED"
    """Expired unconfirmed or premise violated."""

    def is_terminal(self) -> bool:
        """Check if this is a terminal status."""
        return self in TERMINAL_STATUSES

    def is_trackable(self) -> bool:
        """Check if tracking points are recorded in this status."""
        return self in TRACKABLE_STATUSES


TERMINAL_STATUSES: FrozenSet[SignalStatus] = frozenset({
    SignalStatus.CLOSED,
    SignalStatus.INVALIDATED,
})

TRACKABLE_STATUSES: FrozenSet[SignalStatus] = frozenset({
    SignalStatus.CONFIRMED,
    SignalStatus.TRACKING,
})

ACTIVE_STATUSES: FrozenSet[SignalStatus] = frozenset({
    SignalStatus.PENDING,
    SignalStatus.CONFIRMED,
    SignalStatus.TRACKING,
})


class Direction(Enum):
    """Signal direction."""

    LONG = "LONG"
    SHORT = "SHORT"

    def adjust(self, change_pct: Decimal) -> Decimal:
        """Make a raw price change direction-aware (positive = favourable)."""
        if self is Direction.SHORT:
            return -change_pct
        return change_pct


class OutcomeClassification(Enum):
    """Terminal classification of a closed signal."""

    PROFIT = "PROFIT"
    LOSS = "LOSS"
    BREAKEVEN = "BREAKEVEN"


class ExitReason(Enum):
    """Which close condition fired."""

    STOP_LOSS = "SL"
    TAKE_PROFIT = "TP"
    TIME_LIMIT = "TIME"


# ============================================================
# SIGNAL
# ============================================================

@dataclass(frozen=True)
class MarketContext:
    """Market conditions captured when the signal was generated."""

    long_account_ratio: Optional[Decimal] = None
    short_account_ratio: Optional[Decimal] = None
    long_position_ratio: Optional[Decimal] = None
    short_position_ratio: Optional[Decimal] = None
    long_trader_count: Optional[int] = None
    short_trader_count: Optional[int] = None
    funding_rate: Optional[Decimal] = None
    open_interest: Optional[Decimal] = None


@dataclass(frozen=True)
class Signal:
    """
    A directional call on a futures symbol.

    Instances are immutable snapshots of the stored row; the
    lifecycle manager produces updated copies with
    dataclasses.replace and persists them through the store.
    """

    signal_id: str
    """Unique, immutable identifier."""

    symbol: str
    """Trading symbol (e.g., BTCUSDT)."""

    direction: Direction
    """LONG or SHORT."""

    strategy_name: str
    """Strategy that generated the signal."""

    generated_at: datetime
    """Generation timestamp (UTC)."""

    price_at_signal: Decimal
    """Reference price for every % change."""

    confirmation_start: datetime
    """Confirmation window opens."""

    confirmation_end: datetime
    """Confirmation deadline; PENDING past this is invalidated."""

    status: SignalStatus = SignalStatus.PENDING

    context: MarketContext = field(default_factory=MarketContext)
    """Market context at generation."""

    reason: str = ""
    """Free-text rationale from the generator."""

    config_snapshot: Dict[str, Any] = field(default_factory=dict)
    """Strategy configuration at generation (profit_target_pct, stop_loss_pct, tracking_hours)."""

    stop_loss_price: Optional[Decimal] = None
    target_price: Optional[Decimal] = None

    confirmed_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    invalidated_at: Optional[datetime] = None

    exit_price: Optional[Decimal] = None
    exit_reason: Optional[ExitReason] = None

    needs_inspection: bool = False
    """Set when an invariant violation blocked an automatic transition."""

    inspection_note: Optional[str] = None

    def raw_change_pct(self, price: Decimal) -> Decimal:
        """(price - price_at_signal) / price_at_signal * 100, unrounded."""
        if self.price_at_signal == ZERO:
            return ZERO
        return (price - self.price_at_signal) / self.price_at_signal * HUNDRED

    def price_change_pct(self, price: Decimal) -> Decimal:
        """Raw % change rounded to storage precision."""
        return quantize_pct(self.raw_change_pct(price))

    def adjusted_change_pct(self, price: Decimal) -> Decimal:
        """Direction-aware % change rounded to storage precision."""
        return quantize_pct(self.direction.adjust(self.raw_change_pct(price)))


# ============================================================
# MARKET SNAPSHOT
# ============================================================

@dataclass(frozen=True)
class MarketSnapshot:
    """Observation handed to the lifecycle manager."""

    symbol: str
    price: Decimal
    observed_at: datetime


# ============================================================
# TRACKING
# ============================================================

@dataclass(frozen=True)
class SignalTracking:
    """One sampled observation of a signal's price path."""

    signal_id: str
    tracked_at: datetime
    bucket_start: datetime
    """Idempotency key together with signal_id."""

    hours_tracked: Decimal
    """Hours since generation."""

    current_price: Decimal
    price_change_pct: Decimal
    """Raw change vs price_at_signal (not direction-adjusted)."""

    highest_price: Decimal
    highest_price_pct: Decimal
    highest_price_at: datetime

    lowest_price: Decimal
    lowest_price_pct: Decimal
    lowest_price_at: datetime

    is_profit_target_hit: bool = False
    is_stop_loss_hit: bool = False


@dataclass(frozen=True)
class SignalKlineTracking:
    """One closed kline since generation, annotated with performance metrics."""

    signal_id: str
    kline_open_time: datetime
    kline_close_time: datetime
    hours_since_signal: Decimal

    open_price: Decimal
    high_price: Decimal
    low_price: Decimal
    close_price: Decimal
    volume: Decimal
    quote_volume: Decimal

    # Direction-adjusted changes vs price_at_signal
    open_change_pct: Decimal
    high_change_pct: Decimal
    low_change_pct: Decimal
    close_change_pct: Decimal

    hourly_return_pct: Decimal
    """(close - open) / open * 100, raw market move."""

    max_potential_profit_pct: Decimal
    """Best direction-adjusted change inside the bar."""

    max_potential_loss_pct: Decimal
    """Worst direction-adjusted change inside the bar."""

    is_profitable_at_high: bool
    """Profitable at the bar's favourable extreme."""

    is_profitable_at_close: bool


# ============================================================
# OUTCOME
# ============================================================

@dataclass(frozen=True)
class SignalOutcome:
    """Terminal resolution of a CLOSED signal."""

    signal_id: str
    classification: OutcomeClassification
    final_pnl_pct: Decimal
    max_profit_pct: Decimal
    """MFE, direction-adjusted."""

    max_drawdown_pct: Decimal
    """MAE, direction-adjusted."""

    risk_reward_ratio: Optional[Decimal]
    """Absent when MAE is zero."""

    total_tracking_hours: Decimal
    closed_at: datetime
    exit_reason: Optional[ExitReason] = None
    hours_to_peak: Optional[int] = None
    hours_to_trough: Optional[int] = None
    profit_target_hit: bool = False
    stop_loss_hit: bool = False

    def is_profit(self) -> bool:
        return self.classification is OutcomeClassification.PROFIT

    def is_loss(self) -> bool:
        return self.classification is OutcomeClassification.LOSS

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["classification"] = self.classification.value
        data["exit_reason"] = self.exit_reason.value if self.exit_reason else None
        return data


__all__ = [
    "PCT_QUANTUM",
    "quantize_pct",
    "quantize_hours",
    "to_decimal",
    "to_jsonable",
    "SignalStatus",
    "TERMINAL_STATUSES",
    "TRACKABLE_STATUSES",
    "ACTIVE_STATUSES",
    "Direction",
    "OutcomeClassification",
    "ExitReason",
    "MarketContext",
    "Signal",
    "MarketSnapshot",
    "SignalTracking",
    "SignalKlineTracking",
    "SignalOutcome",
]
