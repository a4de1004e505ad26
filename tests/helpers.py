"""
Shared test builders: signals, tracking points, outcomes and a
scriptable price source.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from data_sources.base import PriceSource
from data_sources.exceptions import FetchError
from data_sources.models import Interval, Kline
from signal_lifecycle.types import (
    Direction,
    OutcomeClassification,
    Signal,
    SignalKlineTracking,
    SignalOutcome,
    SignalStatus,
    SignalTracking,
)


T0 = datetime(2025, 1, 1, 0, 0, tzinfo=timezone.utc)


def make_signal(
    signal_id: str = "sig-1",
    symbol: str = "BTCUSDT",
    direction: Direction = Direction.LONG,
    strategy_name: str = "smart_money",
    generated_at: datetime = T0,
    price: str = "100",
    status: SignalStatus = SignalStatus.PENDING,
    confirmation_hours: int = 2,
    config_snapshot: Optional[dict] = None,
    **overrides,
) -> Signal:
    return Signal(
        signal_id=signal_id,
        symbol=symbol,
        direction=direction,
        strategy_name=strategy_name,
        generated_at=generated_at,
        price_at_signal=Decimal(price),
        confirmation_start=generated_at,
        confirmation_end=generated_at + timedelta(hours=confirmation_hours),
        status=status,
        config_snapshot=config_snapshot or {},
        **overrides,
    )


def make_closed_signal(
    signal_id: str,
    closed_at: datetime,
    strategy_name: str = "smart_money",
    symbol: str = "BTCUSDT",
    generated_at: Optional[datetime] = None,
) -> Signal:
    generated_at = generated_at or closed_at - timedelta(hours=4)
    return make_signal(
        signal_id=signal_id,
        symbol=symbol,
        strategy_name=strategy_name,
        generated_at=generated_at,
        status=SignalStatus.CLOSED,
        confirmed_at=generated_at + timedelta(minutes=5),
        closed_at=closed_at,
    )


def make_outcome(
    signal_id: str,
    final_pnl_pct: str,
    closed_at: datetime,
    classification: Optional[OutcomeClassification] = None,
) -> SignalOutcome:
    final = Decimal(final_pnl_pct)
    if classification is None:
        if final > 0:
            classification = OutcomeClassification.PROFIT
        elif final < 0:
            classification = OutcomeClassification.LOSS
        else:
            classification = OutcomeClassification.BREAKEVEN
    return SignalOutcome(
        signal_id=signal_id,
        classification=classification,
        final_pnl_pct=final,
        max_profit_pct=max(final, Decimal("0")),
        max_drawdown_pct=min(final, Decimal("0")),
        risk_reward_ratio=None,
        total_tracking_hours=Decimal("4.00"),
        closed_at=closed_at,
    )


def make_point(
    signal: Signal,
    tracked_at: datetime,
    price: str,
    high: Optional[str] = None,
    low: Optional[str] = None,
) -> SignalTracking:
    current = Decimal(price)
    highest = Decimal(high) if high else current
    lowest = Decimal(low) if low else current
    return SignalTracking(
        signal_id=signal.signal_id,
        tracked_at=tracked_at,
        bucket_start=tracked_at,
        hours_tracked=Decimal("0"),
        current_price=current,
        price_change_pct=signal.price_change_pct(current),
        highest_price=highest,
        highest_price_pct=signal.price_change_pct(highest),
        highest_price_at=tracked_at,
        lowest_price=lowest,
        lowest_price_pct=signal.price_change_pct(lowest),
        lowest_price_at=tracked_at,
    )


def make_kline_row(
    signal_id: str,
    open_time: datetime,
    profitable_high: bool = True,
    profitable_close: bool = False,
    hourly_return: str = "0.5",
) -> SignalKlineTracking:
    return SignalKlineTracking(
        signal_id=signal_id,
        kline_open_time=open_time,
        kline_close_time=open_time + timedelta(hours=1) - timedelta(milliseconds=1),
        hours_since_signal=Decimal("1.00"),
        open_price=Decimal("100"),
        high_price=Decimal("101"),
        low_price=Decimal("99"),
        close_price=Decimal("100.5"),
        volume=Decimal("10"),
        quote_volume=Decimal("1000"),
        open_change_pct=Decimal("0"),
        high_change_pct=Decimal("1"),
        low_change_pct=Decimal("-1"),
        close_change_pct=Decimal("0.5"),
        hourly_return_pct=Decimal(hourly_return),
        max_potential_profit_pct=Decimal("1"),
        max_potential_loss_pct=Decimal("-1"),
        is_profitable_at_high=profitable_high,
        is_profitable_at_close=profitable_close,
    )


def make_bar(
    open_time: datetime,
    open_: str = "100",
    high: str = "101",
    low: str = "99",
    close: str = "100.5",
    symbol: str = "BTCUSDT",
) -> Kline:
    return Kline(
        symbol=symbol,
        interval=Interval.H1,
        open_time=open_time,
        close_time=open_time + timedelta(hours=1) - timedelta(milliseconds=1),
        open=Decimal(open_),
        high=Decimal(high),
        low=Decimal(low),
        close=Decimal(close),
        volume=Decimal("10"),
        quote_volume=Decimal("1000"),
    )


class FakePriceSource(PriceSource):
    """
    Scriptable price source.

    prices: symbol -> price, or symbol -> list consumed one per call
    failing: symbols whose calls raise FetchError
    delay: seconds every call sleeps before answering
    """

    def __init__(
        self,
        prices: Optional[Dict[str, object]] = None,
        klines: Optional[Dict[str, Sequence[Kline]]] = None,
        failing: Sequence[str] = (),
        delay: float = 0.0,
    ):
        self.prices: Dict[str, object] = dict(prices or {})
        self.klines: Dict[str, List[Kline]] = {k: list(v) for k, v in (klines or {}).items()}
        self.failing = set(failing)
        self.delay = delay
        self.price_calls: List[str] = []
        self.kline_calls: List[tuple] = []
        self.closed = False

    @property
    def name(self) -> str:
        return "fake"

    async def get_current_price(self, symbol: str) -> Decimal:
        self.price_calls.append(symbol)
        if self.delay:
            await asyncio.sleep(self.delay)
        if symbol in self.failing:
            raise FetchError(message="HTTP 503", source_name=self.name, status_code=503, symbol=symbol)
        value = self.prices[symbol]
        if isinstance(value, list):
            value = value.pop(0)
        return Decimal(str(value))

    async def get_klines(
        self,
        symbol: str,
        interval: Interval,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 500,
    ) -> List[Kline]:
        self.kline_calls.append((symbol, start, end))
        if self.delay:
            await asyncio.sleep(self.delay)
        if symbol in self.failing:
            raise FetchError(message="HTTP 503", source_name=self.name, status_code=503, symbol=symbol)
        bars = [
            k for k in self.klines.get(symbol, [])
            if (start is None or k.open_time >= start) and (end is None or k.open_time <= end)
        ]
        return sorted(bars, key=lambda k: k.open_time)[:limit]

    async def close(self) -> None:
        self.closed = True
