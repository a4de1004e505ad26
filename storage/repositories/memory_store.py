"""
In-Memory Signal Store.

============================================================
PURPOSE
============================================================
Process-local implementation of the SignalStore contract.

Used by tests and dry runs. A single asyncio.Lock serialises
writes so compare-and-set transitions and outcome writes are
atomic, the same guarantees the SQL store gets from its
transactions.

============================================================
"""

import asyncio
import dataclasses
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from core.exceptions import ConflictError, NotFoundError
from performance_analytics.types import Statistics
from signal_lifecycle.types import (
    ACTIVE_STATUSES,
    Signal,
    SignalKlineTracking,
    SignalOutcome,
    SignalStatus,
    SignalTracking,
)
from storage.repositories.exceptions import DuplicateRecordError
from storage.repositories.signal_store import SignalFilter, SignalStore


class InMemorySignalStore(SignalStore):
    """Dictionary-backed SignalStore."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._signals: Dict[str, Signal] = {}
        self._tracking: Dict[str, Dict[datetime, SignalTracking]] = {}
        self._klines: Dict[str, Dict[datetime, SignalKlineTracking]] = {}
        self._outcomes: Dict[str, SignalOutcome] = {}
        self._statistics: List[Statistics] = []
        self._lock = asyncio.Lock()
        self._logger = logger or logging.getLogger("repository.memory")

    # =========================================================
    # SIGNALS
    # =========================================================

    async def insert_signal(self, signal: Signal) -> None:
        async with self._lock:
            if signal.signal_id in self._signals:
                raise DuplicateRecordError("memory", "signal_id", signal.signal_id)
            self._signals[signal.signal_id] = signal

    async def get_signal(self, signal_id: str) -> Signal:
        signal = self._signals.get(signal_id)
        if signal is None:
            raise NotFoundError("Signal", signal_id)
        return signal

    async def list_signals(
        self,
        filters: SignalFilter,
        page: int,
        limit: int,
    ) -> Tuple[List[Signal], int]:
        matches = [s for s in self._signals.values() if _matches(s, filters)]
        matches.sort(key=lambda s: (s.generated_at, s.signal_id), reverse=True)
        offset = (page - 1) * limit
        return matches[offset:offset + limit], len(matches)

    async def get_active_signals(self) -> List[Signal]:
        return await self.get_signals_by_status(*ACTIVE_STATUSES)

    async def get_signals_by_status(self, *statuses: SignalStatus) -> List[Signal]:
        wanted = set(statuses)
        return _oldest_first(s for s in self._signals.values() if s.status in wanted)

    async def get_signals_generated_between(
        self,
        start: datetime,
        end: datetime,
    ) -> List[Signal]:
        return _oldest_first(
            s for s in self._signals.values() if start <= s.generated_at <= end
        )

    async def get_closed_signals_between(
        self,
        start: datetime,
        end: datetime,
    ) -> List[Signal]:
        return _oldest_first(
            s for s in self._signals.values()
            if s.status is SignalStatus.CLOSED
            and s.closed_at is not None
            and start <= s.closed_at <= end
        )

    # =========================================================
    # STATUS TRANSITIONS
    # =========================================================

    async def apply_status_transition(
        self,
        signal_id: str,
        expected: SignalStatus,
        new: SignalStatus,
        changes: Optional[Mapping[str, Any]] = None,
        outcome: Optional[SignalOutcome] = None,
    ) -> Signal:
        async with self._lock:
            current = self._signals.get(signal_id)
            if current is None:
                raise NotFoundError("Signal", signal_id)
            if current.status is not expected:
                raise ConflictError(signal_id, expected, current.status)
            if outcome is not None and signal_id in self._outcomes:
                raise DuplicateRecordError("memory", "signal_id", signal_id)

            updated = dataclasses.replace(current, status=new, **dict(changes or {}))
            self._signals[signal_id] = updated
            if outcome is not None:
                self._outcomes[signal_id] = outcome
            return updated

    async def flag_for_inspection(self, signal_id: str, note: str) -> None:
        async with self._lock:
            current = self._signals.get(signal_id)
            if current is None:
                raise NotFoundError("Signal", signal_id)
            self._signals[signal_id] = dataclasses.replace(
                current, needs_inspection=True, inspection_note=note
            )

    # =========================================================
    # TRACKING
    # =========================================================

    async def insert_tracking_point(self, tracking: SignalTracking) -> bool:
        async with self._lock:
            rows = self._tracking.setdefault(tracking.signal_id, {})
            if tracking.bucket_start in rows:
                return False
            rows[tracking.bucket_start] = tracking
            return True

    async def get_latest_tracking(self, signal_id: str) -> Optional[SignalTracking]:
        history = await self.get_tracking_history(signal_id)
        return history[-1] if history else None

    async def get_tracking_history(self, signal_id: str) -> List[SignalTracking]:
        rows = self._tracking.get(signal_id, {})
        return sorted(rows.values(), key=lambda t: t.tracked_at)

    async def insert_kline_tracking(self, tracking: SignalKlineTracking) -> bool:
        async with self._lock:
            rows = self._klines.setdefault(tracking.signal_id, {})
            if tracking.kline_open_time in rows:
                return False
            rows[tracking.kline_open_time] = tracking
            return True

    async def get_latest_kline_tracking(
        self,
        signal_id: str,
    ) -> Optional[SignalKlineTracking]:
        rows = await self.get_kline_tracking(signal_id)
        return rows[-1] if rows else None

    async def get_kline_tracking(self, signal_id: str) -> List[SignalKlineTracking]:
        rows = self._klines.get(signal_id, {})
        return sorted(rows.values(), key=lambda k: k.kline_open_time)

    async def get_kline_tracking_by_ids(
        self,
        signal_ids: Sequence[str],
    ) -> Dict[str, List[SignalKlineTracking]]:
        return {
            signal_id: await self.get_kline_tracking(signal_id)
            for signal_id in signal_ids
            if signal_id in self._klines
        }

    # =========================================================
    # OUTCOMES
    # =========================================================

    async def write_outcome(
        self,
        signal_id: str,
        outcome: SignalOutcome,
        replace: bool = False,
    ) -> None:
        async with self._lock:
            if signal_id not in self._signals:
                raise NotFoundError("Signal", signal_id)
            if signal_id in self._outcomes and not replace:
                raise DuplicateRecordError("memory", "signal_id", signal_id)
            self._outcomes[signal_id] = outcome

    async def get_outcome(self, signal_id: str) -> Optional[SignalOutcome]:
        return self._outcomes.get(signal_id)

    async def get_outcomes_by_ids(
        self,
        signal_ids: Iterable[str],
    ) -> Dict[str, SignalOutcome]:
        return {
            signal_id: self._outcomes[signal_id]
            for signal_id in signal_ids
            if signal_id in self._outcomes
        }

    # =========================================================
    # STATISTICS
    # =========================================================

    async def write_statistics_snapshot(self, stats: Statistics) -> None:
        async with self._lock:
            self._statistics.append(stats)

    async def get_latest_statistics(
        self,
        period_label: Optional[str] = None,
        strategy_name: Optional[str] = None,
    ) -> List[Statistics]:
        latest: Dict[tuple, Statistics] = {}
        for stats in self._statistics:
            if period_label is not None and stats.period_label != period_label:
                continue
            if strategy_name is not None and stats.strategy_name != strategy_name:
                continue
            latest[stats.key] = stats
        return list(latest.values())

    async def get_previous_statistics(self, stats: Statistics) -> Optional[Statistics]:
        previous = None
        for candidate in self._statistics:
            if candidate.key != stats.key:
                continue
            if candidate.calculated_at < stats.calculated_at:
                previous = candidate
        return previous

    async def get_statistics_history(
        self,
        start: datetime,
        end: datetime,
        strategy_name: Optional[str] = None,
        symbol: Optional[str] = None,
    ) -> List[Statistics]:
        return [
            s for s in self._statistics
            if start <= s.calculated_at <= end
            and (strategy_name is None or s.strategy_name == strategy_name)
            and (symbol is None or s.symbol == symbol)
        ]


def _matches(signal: Signal, filters: SignalFilter) -> bool:
    if filters.status is not None and signal.status is not filters.status:
        return False
    if filters.symbol is not None and signal.symbol != filters.symbol:
        return False
    if filters.strategy_name is not None and signal.strategy_name != filters.strategy_name:
        return False
    if filters.direction is not None and signal.direction is not filters.direction:
        return False
    if filters.start_time is not None and signal.generated_at < filters.start_time:
        return False
    if filters.end_time is not None and signal.generated_at > filters.end_time:
        return False
    return True


def _oldest_first(signals: Iterable[Signal]) -> List[Signal]:
    return sorted(signals, key=lambda s: (s.generated_at, s.signal_id))


__all__ = ["InMemorySignalStore"]
