"""
Signal Domain ORM Models.

============================================================
PURPOSE
============================================================
Tables backing the signal lifecycle engine: signals, their
tracking samples, kline tracking rows, outcomes, and the
statistics snapshots derived from them.

============================================================
DATA LIFECYCLE ROLE
============================================================
- signals: MUTABLE (status transitions only, compare-and-set)
- signal_tracking: APPEND-ONLY, unique (signal_id, bucket_start)
- signal_kline_tracking: APPEND-ONLY, unique (signal_id, kline_open_time)
- signal_outcomes: WRITE-ONCE, unique signal_id
- strategy_statistics: APPEND-ONLY snapshots

============================================================
MODELS
============================================================
- SignalRecord
- SignalTrackingRecord
- SignalKlineTrackingRecord
- SignalOutcomeRecord
- StrategyStatisticsRecord

Column names mirror the domain dataclass fields so records
convert field by field.

============================================================
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import PERCENT, Base, TimestampMixin


class SignalRecord(Base, TimestampMixin):
    """
    Signals.

    ============================================================
    MUTABILITY
    ============================================================
    Only the lifecycle columns change after insert: status,
    confirmed_at, closed_at, invalidated_at, exit_price,
    exit_reason and the inspection flag. Status updates are
    conditional on the expected current status.
    ============================================================
    """

    __tablename__ = "signals"

    signal_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Unique signal identifier"
    )

    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    direction: Mapped[str] = mapped_column(String(8), nullable=False, comment="LONG or SHORT")
    strategy_name: Mapped[str] = mapped_column(String(100), nullable=False)

    generated_at: Mapped[datetime] = mapped_column(nullable=False)
    price_at_signal: Mapped[Decimal] = mapped_column(nullable=False)
    confirmation_start: Mapped[datetime] = mapped_column(nullable=False)
    confirmation_end: Mapped[datetime] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="PENDING, CONFIRMED, TRACKING, CLOSED or INVALIDATED"
    )

    context: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Market context at generation"
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    config_snapshot: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Strategy configuration at generation"
    )

    stop_loss_price: Mapped[Optional[Decimal]] = mapped_column(nullable=True)
    target_price: Mapped[Optional[Decimal]] = mapped_column(nullable=True)

    confirmed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    invalidated_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    exit_price: Mapped[Optional[Decimal]] = mapped_column(nullable=True)
    exit_reason: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)

    needs_inspection: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    inspection_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_signal_status", "status"),
        Index("idx_signal_symbol", "symbol"),
        Index("idx_signal_strategy", "strategy_name"),
        Index("idx_signal_generated_at", "generated_at"),
        Index("idx_signal_closed_at", "closed_at"),
    )


class SignalTrackingRecord(Base):
    """Price samples. One row per signal per tracking interval bucket."""

    __tablename__ = "signal_tracking"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    signal_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("signals.signal_id", ondelete="CASCADE"),
        nullable=False,
    )

    tracked_at: Mapped[datetime] = mapped_column(nullable=False)
    bucket_start: Mapped[datetime] = mapped_column(
        nullable=False,
        comment="Start of the tracking interval bucket (idempotency key)"
    )
    hours_tracked: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)

    current_price: Mapped[Decimal] = mapped_column(nullable=False)
    price_change_pct: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)

    highest_price: Mapped[Decimal] = mapped_column(nullable=False)
    highest_price_pct: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)
    highest_price_at: Mapped[datetime] = mapped_column(nullable=False)

    lowest_price: Mapped[Decimal] = mapped_column(nullable=False)
    lowest_price_pct: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)
    lowest_price_at: Mapped[datetime] = mapped_column(nullable=False)

    is_profit_target_hit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_stop_loss_hit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("signal_id", "bucket_start", name="uq_tracking_signal_bucket"),
        Index("idx_tracking_signal_time", "signal_id", "tracked_at"),
    )


class SignalKlineTrackingRecord(Base):
    """Closed klines since generation, one row per signal per bar."""

    __tablename__ = "signal_kline_tracking"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    signal_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("signals.signal_id", ondelete="CASCADE"),
        nullable=False,
    )

    kline_open_time: Mapped[datetime] = mapped_column(nullable=False)
    kline_close_time: Mapped[datetime] = mapped_column(nullable=False)
    hours_since_signal: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)

    open_price: Mapped[Decimal] = mapped_column(nullable=False)
    high_price: Mapped[Decimal] = mapped_column(nullable=False)
    low_price: Mapped[Decimal] = mapped_column(nullable=False)
    close_price: Mapped[Decimal] = mapped_column(nullable=False)
    volume: Mapped[Decimal] = mapped_column(nullable=False)
    quote_volume: Mapped[Decimal] = mapped_column(nullable=False)

    open_change_pct: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)
    high_change_pct: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)
    low_change_pct: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)
    close_change_pct: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)

    hourly_return_pct: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)
    max_potential_profit_pct: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)
    max_potential_loss_pct: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)

    is_profitable_at_high: Mapped[bool] = mapped_column(Boolean, nullable=False)
    is_profitable_at_close: Mapped[bool] = mapped_column(Boolean, nullable=False)

    __table_args__ = (
        UniqueConstraint("signal_id", "kline_open_time", name="uq_kline_signal_open_time"),
    )


class SignalOutcomeRecord(Base):
    """Terminal outcome of a CLOSED signal. Exactly one per closed signal."""

    __tablename__ = "signal_outcomes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    signal_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("signals.signal_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    classification: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="PROFIT, LOSS or BREAKEVEN"
    )
    final_pnl_pct: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)
    max_profit_pct: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)
    max_drawdown_pct: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)
    risk_reward_ratio: Mapped[Optional[Decimal]] = mapped_column(PERCENT, nullable=True)
    total_tracking_hours: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)
    closed_at: Mapped[datetime] = mapped_column(nullable=False)

    exit_reason: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    hours_to_peak: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    hours_to_trough: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    profit_target_hit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    stop_loss_hit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class StrategyStatisticsRecord(Base):
    """
    Statistics snapshots.

    strategy_name / symbol NULL mean "all". The latest row per
    (strategy_name, symbol, period_label) is the current value;
    older rows form the history.
    """

    __tablename__ = "strategy_statistics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    strategy_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    symbol: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    period_label: Mapped[str] = mapped_column(String(8), nullable=False)
    period_start: Mapped[datetime] = mapped_column(nullable=False)
    period_end: Mapped[datetime] = mapped_column(nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(nullable=False)

    total_signals: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    confirmed_signals: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    invalidated_signals: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    profitable_signals: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    losing_signals: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    neutral_signals: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    win_rate: Mapped[Optional[Decimal]] = mapped_column(PERCENT, nullable=True)
    profit_factor: Mapped[Optional[Decimal]] = mapped_column(PERCENT, nullable=True)
    avg_profit_pct: Mapped[Optional[Decimal]] = mapped_column(PERCENT, nullable=True)
    avg_loss_pct: Mapped[Optional[Decimal]] = mapped_column(PERCENT, nullable=True)
    avg_holding_hours: Mapped[Optional[Decimal]] = mapped_column(PERCENT, nullable=True)
    best_signal_pct: Mapped[Optional[Decimal]] = mapped_column(PERCENT, nullable=True)
    worst_signal_pct: Mapped[Optional[Decimal]] = mapped_column(PERCENT, nullable=True)
    avg_mfe_pct: Mapped[Optional[Decimal]] = mapped_column(PERCENT, nullable=True)
    avg_mae_pct: Mapped[Optional[Decimal]] = mapped_column(PERCENT, nullable=True)

    kline_theoretical_win_rate: Mapped[Optional[Decimal]] = mapped_column(PERCENT, nullable=True)
    kline_close_win_rate: Mapped[Optional[Decimal]] = mapped_column(PERCENT, nullable=True)
    total_kline_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    profitable_kline_hours_high: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    profitable_kline_hours_close: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    avg_hourly_return_pct: Mapped[Optional[Decimal]] = mapped_column(PERCENT, nullable=True)
    max_hourly_return_pct: Mapped[Optional[Decimal]] = mapped_column(PERCENT, nullable=True)
    min_hourly_return_pct: Mapped[Optional[Decimal]] = mapped_column(PERCENT, nullable=True)
    avg_max_potential_profit_pct: Mapped[Optional[Decimal]] = mapped_column(PERCENT, nullable=True)
    avg_max_potential_loss_pct: Mapped[Optional[Decimal]] = mapped_column(PERCENT, nullable=True)

    __table_args__ = (
        Index("idx_stats_key", "strategy_name", "symbol", "period_label", "calculated_at"),
        Index("idx_stats_calculated_at", "calculated_at"),
    )
