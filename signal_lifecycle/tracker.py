"""
Signal Lifecycle - Tracker.

============================================================
PURPOSE
============================================================
Samples the market for every active signal and records its
price path.

PRICE TICKS (every tracking interval):
- PENDING: the observation is handed to the lifecycle manager
  (confirmation / expiry); a first tracking point is recorded
  when the signal is confirmed
- CONFIRMED / TRACKING: one tracking point per interval bucket,
  running high/low carried forward from the latest stored row,
  then the same observation is handed to the lifecycle manager
  so close conditions see the freshly recorded sample

KLINE TRACKING (hourly):
- Only closed bars that open at or after generated_at
- Resumes after the last tracked bar
- Bars are fetched once per symbol and shared by its signals

FAILURE ISOLATION:
A failing or slow price source only skips the affected signal
(or symbol) for this run. Every price-source call is bounded
by asyncio.wait_for.

============================================================
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

from core.clock import ClockProtocol, SystemClock, interval_bucket, truncate_to_hour
from core.exceptions import SignalEngineError, TransientSourceFailure
from data_sources.base import PriceSource
from data_sources.models import Interval, Kline
from storage.repositories.signal_store import SignalStore
from .config import TrackerConfig, CloseConditionConfig
from .lifecycle import LifecycleManager
from .rules import CloseThresholds, is_stop_loss_hit, is_take_profit_hit
from .types import (
    Direction,
    HUNDRED,
    OutcomeClassification,
    Signal,
    SignalKlineTracking,
    SignalStatus,
    SignalTracking,
    TRACKABLE_STATUSES,
    ZERO,
    MarketSnapshot,
    quantize_hours,
    quantize_pct,
)


SECONDS_PER_HOUR = Decimal("3600")


@dataclass
class TrackingCycleResult:
    """Summary of one pass over the active signals."""

    started_at: datetime
    signals_seen: int = 0
    points_recorded: int = 0
    already_ticked: int = 0
    kline_rows_recorded: int = 0
    awaiting_inspection: int = 0
    """Flagged signals left untouched this cycle."""

    transitions: Dict[str, str] = field(default_factory=dict)
    """signal_id -> status reached in this cycle."""

    failures: Dict[str, str] = field(default_factory=dict)
    """signal_id (or symbol) -> error message."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "signals_seen": self.signals_seen,
            "points_recorded": self.points_recorded,
            "already_ticked": self.already_ticked,
            "kline_rows_recorded": self.kline_rows_recorded,
            "awaiting_inspection": self.awaiting_inspection,
            "transitions": dict(self.transitions),
            "failures": dict(self.failures),
        }


class Tracker:
    """Records tracking points and kline rows for active signals."""

    def __init__(
        self,
        store: SignalStore,
        price_source: PriceSource,
        lifecycle: LifecycleManager,
        config: Optional[TrackerConfig] = None,
        close_defaults: Optional[CloseConditionConfig] = None,
        clock: Optional[ClockProtocol] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._price_source = price_source
        self._lifecycle = lifecycle
        self._config = config or TrackerConfig()
        self._close_defaults = close_defaults or CloseConditionConfig()
        self._clock = clock or SystemClock()
        self._logger = logger or logging.getLogger(__name__)
        self._kline_interval = Interval.parse(self._config.kline_interval)

        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = defaultdict(int)
        self._pool = asyncio.Semaphore(self._config.max_concurrent_ticks)

    # --------------------------------------------------------
    # Per-signal locks
    # --------------------------------------------------------

    @asynccontextmanager
    async def _signal_lock(self, signal_id: str) -> AsyncIterator[None]:
        """Serialise work on one signal; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.get(signal_id)
        if lock is None:
            lock = self._locks[signal_id] = asyncio.Lock()
        self._lock_users[signal_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[signal_id] -= 1
            if not self._lock_users[signal_id]:
                del self._lock_users[signal_id]
                del self._locks[signal_id]

    # --------------------------------------------------------
    # Price ticks
    # --------------------------------------------------------

    async def tick(
        self,
        signal: Signal,
        now: Optional[datetime] = None,
        with_klines: bool = False,
    ) -> Tuple[Optional[SignalTracking], List[SignalKlineTracking]]:
        """
        Sample one signal.

        Args:
            signal: Signal to sample; its current state is re-read from the store
            now: Observation time (defaults to the clock)
            with_klines: Also record any newly closed klines

        Returns:
            (tracking point recorded by this call or None, kline rows recorded)

        Raises:
            TransientSourceFailure: If the price source failed or timed out
        """
        now = now or self._clock.now()

        async with self._signal_lock(signal.signal_id):
            current = await self._store.get_signal(signal.signal_id)
            if current.status.is_terminal():
                return None, []
            if current.needs_inspection:
                self._logger.debug(f"Signal {current.signal_id}: awaiting inspection, not ticked")
                return None, []

            price = await self._fetch_price(current.symbol)
            snapshot = MarketSnapshot(symbol=current.symbol, price=price, observed_at=now)

            point: Optional[SignalTracking] = None
            if current.status.is_trackable():
                point = await self._record_point(current, snapshot)
                if point is None:
                    self._logger.debug(
                        f"Signal {current.signal_id}: already ticked in bucket "
                        f"{interval_bucket(now, self._config.tracking_interval_seconds).isoformat()}"
                    )
                    return None, []
                status, _ = await self._lifecycle.advance(current, snapshot)
            else:
                status, _ = await self._lifecycle.advance(current, snapshot)
                if status.is_trackable():
                    confirmed = await self._store.get_signal(current.signal_id)
                    point = await self._record_point(confirmed, snapshot)

            klines: List[SignalKlineTracking] = []
            if with_klines and not status.is_terminal():
                bars = await self._fetch_klines(
                    current.symbol, await self._kline_start(current), now
                )
                klines = await self._record_klines(current, bars, now)

        return point, klines

    async def track_all(self, now: Optional[datetime] = None) -> TrackingCycleResult:
        """
        Tick every active signal concurrently.

        Failures are isolated per signal and reported in the result.
        """
        now = now or self._clock.now()
        result = TrackingCycleResult(started_at=now)

        signals = await self._store.get_active_signals()
        result.signals_seen = len(signals)
        if not signals:
            return result

        await asyncio.gather(*(self._tick_isolated(s, now, result) for s in signals))

        self._logger.info(
            f"Tracking cycle: {result.signals_seen} active, "
            f"{result.points_recorded} points, {len(result.transitions)} transitions, "
            f"{len(result.failures)} failures"
        )
        return result

    async def _tick_isolated(
        self,
        signal: Signal,
        now: datetime,
        result: TrackingCycleResult,
    ) -> None:
        async with self._pool:
            try:
                point, _ = await self.tick(signal, now)
                current = await self._store.get_signal(signal.signal_id)
            except TransientSourceFailure as e:
                self._logger.warning(f"Signal {signal.signal_id}: tick skipped: {e}")
                result.failures[signal.signal_id] = str(e)
                return
            except SignalEngineError as e:
                self._logger.error(f"Signal {signal.signal_id}: tick failed: {e}")
                result.failures[signal.signal_id] = str(e)
                return
            except Exception as e:
                self._logger.exception(f"Signal {signal.signal_id}: unexpected tick error: {e}")
                result.failures[signal.signal_id] = str(e)
                return

        if point is not None:
            result.points_recorded += 1
        elif signal.needs_inspection:
            result.awaiting_inspection += 1
        elif signal.status.is_trackable():
            result.already_ticked += 1

        if current.status is not signal.status:
            result.transitions[signal.signal_id] = current.status.value

    async def _fetch_price(self, symbol: str) -> Decimal:
        try:
            return await asyncio.wait_for(
                self._price_source.get_current_price(symbol),
                timeout=self._config.price_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise TransientSourceFailure(
                f"price fetch timed out after {self._config.price_timeout_seconds}s",
                symbol=symbol,
                cause=e,
            ) from e

    async def _record_point(
        self,
        signal: Signal,
        snapshot: MarketSnapshot,
    ) -> Optional[SignalTracking]:
        previous = await self._store.get_latest_tracking(signal.signal_id)
        point = self.build_tracking_point(signal, snapshot, previous)
        inserted = await self._store.insert_tracking_point(point)
        return point if inserted else None

    def build_tracking_point(
        self,
        signal: Signal,
        snapshot: MarketSnapshot,
        previous: Optional[SignalTracking] = None,
    ) -> SignalTracking:
        """Tracking point for snapshot with running extrema carried from previous."""
        price = snapshot.price
        now = snapshot.observed_at

        highest_price, highest_at = price, now
        lowest_price, lowest_at = price, now
        if previous is not None:
            if previous.highest_price >= price:
                highest_price, highest_at = previous.highest_price, previous.highest_price_at
            if previous.lowest_price <= price:
                lowest_price, lowest_at = previous.lowest_price, previous.lowest_price_at

        thresholds = CloseThresholds.for_signal(signal, self._close_defaults)
        elapsed = Decimal(str((now - signal.generated_at).total_seconds()))

        return SignalTracking(
            signal_id=signal.signal_id,
            tracked_at=now,
            bucket_start=interval_bucket(now, self._config.tracking_interval_seconds),
            hours_tracked=quantize_hours(elapsed / SECONDS_PER_HOUR),
            current_price=price,
            price_change_pct=signal.price_change_pct(price),
            highest_price=highest_price,
            highest_price_pct=signal.price_change_pct(highest_price),
            highest_price_at=highest_at,
            lowest_price=lowest_price,
            lowest_price_pct=signal.price_change_pct(lowest_price),
            lowest_price_at=lowest_at,
            is_profit_target_hit=is_take_profit_hit(signal, price, thresholds),
            is_stop_loss_hit=is_stop_loss_hit(signal, price, thresholds),
        )

    # --------------------------------------------------------
    # Kline tracking
    # --------------------------------------------------------

    async def track_klines(
        self,
        signal: Signal,
        now: Optional[datetime] = None,
    ) -> List[SignalKlineTracking]:
        """Record newly closed klines for one signal."""
        now = now or self._clock.now()
        async with self._signal_lock(signal.signal_id):
            bars = await self._fetch_klines(signal.symbol, await self._kline_start(signal), now)
            return await self._record_klines(signal, bars, now)

    async def track_all_klines(self, now: Optional[datetime] = None) -> TrackingCycleResult:
        """
        Record newly closed klines for every trackable signal.

        Bars are fetched once per symbol from the earliest start any
        of its signals needs.
        """
        now = now or self._clock.now()
        result = TrackingCycleResult(started_at=now)

        signals = await self._store.get_signals_by_status(*TRACKABLE_STATUSES)
        result.signals_seen = len(signals)

        by_symbol: Dict[str, List[Signal]] = defaultdict(list)
        for signal in signals:
            by_symbol[signal.symbol].append(signal)

        for symbol in sorted(by_symbol):
            group = by_symbol[symbol]
            try:
                starts = [await self._kline_start(s) for s in group]
                bars = await self._fetch_klines(symbol, min(starts), now)
            except TransientSourceFailure as e:
                self._logger.warning(f"Kline fetch for {symbol} skipped: {e}")
                result.failures[symbol] = str(e)
                continue

            for signal in group:
                try:
                    async with self._signal_lock(signal.signal_id):
                        rows = await self._record_klines(signal, bars, now)
                except SignalEngineError as e:
                    self._logger.error(f"Signal {signal.signal_id}: kline tracking failed: {e}")
                    result.failures[signal.signal_id] = str(e)
                    continue
                result.kline_rows_recorded += len(rows)

        self._logger.info(
            f"Kline cycle: {len(by_symbol)} symbols, {result.signals_seen} signals, "
            f"{result.kline_rows_recorded} rows, {len(result.failures)} failures"
        )
        return result

    async def _kline_start(self, signal: Signal) -> datetime:
        latest = await self._store.get_latest_kline_tracking(signal.signal_id)
        if latest is not None:
            return latest.kline_close_time
        return truncate_to_hour(signal.generated_at)

    async def _fetch_klines(self, symbol: str, start: datetime, now: datetime) -> List[Kline]:
        try:
            return await asyncio.wait_for(
                self._price_source.get_klines(
                    symbol,
                    self._kline_interval,
                    start=start,
                    end=now,
                    limit=self._config.kline_limit,
                ),
                timeout=self._config.price_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise TransientSourceFailure(
                f"kline fetch timed out after {self._config.price_timeout_seconds}s",
                symbol=symbol,
                cause=e,
            ) from e

    async def _record_klines(
        self,
        signal: Signal,
        bars: Sequence[Kline],
        now: datetime,
    ) -> List[SignalKlineTracking]:
        latest = await self._store.get_latest_kline_tracking(signal.signal_id)
        recorded: List[SignalKlineTracking] = []

        for bar in sorted(bars, key=lambda k: k.open_time):
            if bar.open_time < signal.generated_at or not bar.is_closed(now):
                continue
            if latest is not None and bar.open_time <= latest.kline_open_time:
                continue
            row = self.build_kline_row(signal, bar)
            if await self._store.insert_kline_tracking(row):
                recorded.append(row)

        if recorded:
            self._logger.debug(f"Signal {signal.signal_id}: recorded {len(recorded)} kline rows")
        return recorded

    @staticmethod
    def build_kline_row(signal: Signal, bar: Kline) -> SignalKlineTracking:
        """Annotate one closed bar with the signal's direction-adjusted performance."""
        if signal.direction is Direction.SHORT:
            favourable, adverse = bar.low, bar.high
        else:
            favourable, adverse = bar.high, bar.low

        hourly_return = ZERO
        if bar.open != ZERO:
            hourly_return = quantize_pct((bar.close - bar.open) / bar.open * HUNDRED)

        max_profit = signal.adjusted_change_pct(favourable)
        close_change = signal.adjusted_change_pct(bar.close)
        elapsed = Decimal(str((bar.open_time - signal.generated_at).total_seconds()))

        return SignalKlineTracking(
            signal_id=signal.signal_id,
            kline_open_time=bar.open_time,
            kline_close_time=bar.close_time,
            hours_since_signal=quantize_hours(elapsed / SECONDS_PER_HOUR),
            open_price=bar.open,
            high_price=bar.high,
            low_price=bar.low,
            close_price=bar.close,
            volume=bar.volume,
            quote_volume=bar.quote_volume,
            open_change_pct=signal.adjusted_change_pct(bar.open),
            high_change_pct=signal.adjusted_change_pct(bar.high),
            low_change_pct=signal.adjusted_change_pct(bar.low),
            close_change_pct=close_change,
            hourly_return_pct=hourly_return,
            max_potential_profit_pct=max_profit,
            max_potential_loss_pct=signal.adjusted_change_pct(adverse),
            is_profitable_at_high=max_profit > ZERO,
            is_profitable_at_close=close_change > ZERO,
        )

    # --------------------------------------------------------
    # Status
    # --------------------------------------------------------

    async def get_tracking_status(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Counts of signals under tracking and outcomes closed in the last 24h."""
        now = now or self._clock.now()
        pending = await self._store.get_signals_by_status(SignalStatus.PENDING)
        confirmed = await self._store.get_signals_by_status(SignalStatus.CONFIRMED)
        tracking = await self._store.get_signals_by_status(SignalStatus.TRACKING)

        closed = await self._store.get_closed_signals_between(now - timedelta(hours=24), now)
        outcomes = await self._store.get_outcomes_by_ids([s.signal_id for s in closed])
        by_class = {c.value: 0 for c in OutcomeClassification}
        for outcome in outcomes.values():
            by_class[outcome.classification.value] += 1

        return {
            "pending": len(pending),
            "confirmed": len(confirmed),
            "tracking": len(tracking),
            "closed_24h": len(closed),
            "outcomes_24h": by_class,
            "checked_at": now.isoformat(),
        }


__all__ = ["Tracker", "TrackingCycleResult"]
