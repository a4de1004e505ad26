"""
Signal Store Contract.

============================================================
PURPOSE
============================================================
Abstract capability the engine depends on. The lifecycle
manager, tracker, aggregator and read facade talk only to this
interface; the storage engine behind it is swappable.

============================================================
CONTRACT
============================================================
- get_signal raises NotFoundError for unknown ids
- insert_tracking_point / insert_kline_tracking return False
  when the idempotency key already exists
- write_outcome raises DuplicateRecordError when an outcome
  exists and replace is False
- get_outcomes_by_ids tolerates absent entries
- apply_status_transition raises ConflictError when the stored
  status differs from the expected one; the status change, the
  extra column changes and the optional outcome are committed
  atomically
- errors are StorageFailure subclasses

============================================================
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from signal_lifecycle.types import (
    Direction,
    Signal,
    SignalKlineTracking,
    SignalOutcome,
    SignalStatus,
    SignalTracking,
)
from performance_analytics.types import Statistics


@dataclass
class SignalFilter:
    """Filters for paginated signal listing."""

    status: Optional[SignalStatus] = None
    symbol: Optional[str] = None
    strategy_name: Optional[str] = None
    direction: Optional[Direction] = None
    start_time: Optional[datetime] = None
    """Inclusive lower bound on generated_at."""

    end_time: Optional[datetime] = None
    """Inclusive upper bound on generated_at."""


class SignalStore(ABC):
    """Durable store for signals and everything they own."""

    # =========================================================
    # SIGNALS
    # =========================================================

    @abstractmethod
    async def insert_signal(self, signal: Signal) -> None:
        """Persist a newly generated signal."""

    @abstractmethod
    async def get_signal(self, signal_id: str) -> Signal:
        """Fetch one signal, raising NotFoundError if unknown."""

    @abstractmethod
    async def list_signals(
        self,
        filters: SignalFilter,
        page: int,
        limit: int,
    ) -> Tuple[List[Signal], int]:
        """One page of signals (newest first) plus the total match count."""

    @abstractmethod
    async def get_active_signals(self) -> List[Signal]:
        """All non-terminal signals, oldest first."""

    @abstractmethod
    async def get_signals_by_status(self, *statuses: SignalStatus) -> List[Signal]:
        """Signals in any of the given statuses, oldest first."""

    @abstractmethod
    async def get_signals_generated_between(
        self,
        start: datetime,
        end: datetime,
    ) -> List[Signal]:
        """Signals whose generated_at lies in [start, end]."""

    @abstractmethod
    async def get_closed_signals_between(
        self,
        start: datetime,
        end: datetime,
    ) -> List[Signal]:
        """CLOSED signals whose closed_at lies in [start, end]."""

    # =========================================================
    # STATUS TRANSITIONS
    # =========================================================

    @abstractmethod
    async def apply_status_transition(
        self,
        signal_id: str,
        expected: SignalStatus,
        new: SignalStatus,
        changes: Optional[Mapping[str, Any]] = None,
        outcome: Optional[SignalOutcome] = None,
    ) -> Signal:
        """
        Compare-and-set the status of one signal.

        Args:
            signal_id: Signal to update
            expected: Status the caller read
            new: Status to write
            changes: Extra Signal fields to set (confirmed_at, closed_at, ...)
            outcome: Outcome written in the same transaction

        Returns:
            The signal as stored after the transition

        Raises:
            NotFoundError: Unknown signal
            ConflictError: Stored status differs from expected
        """

    @abstractmethod
    async def flag_for_inspection(self, signal_id: str, note: str) -> None:
        """Mark a signal for manual inspection."""

    # =========================================================
    # TRACKING
    # =========================================================

    @abstractmethod
    async def insert_tracking_point(self, tracking: SignalTracking) -> bool:
        """Append a tracking point; False if the bucket was already recorded."""

    @abstractmethod
    async def get_latest_tracking(self, signal_id: str) -> Optional[SignalTracking]:
        """Most recent tracking point of a signal."""

    @abstractmethod
    async def get_tracking_history(self, signal_id: str) -> List[SignalTracking]:
        """All tracking points of a signal ordered by tracked_at."""

    @abstractmethod
    async def insert_kline_tracking(self, tracking: SignalKlineTracking) -> bool:
        """Append a kline tracking row; False if the bar was already recorded."""

    @abstractmethod
    async def get_latest_kline_tracking(
        self,
        signal_id: str,
    ) -> Optional[SignalKlineTracking]:
        """Most recent kline tracking row of a signal."""

    @abstractmethod
    async def get_kline_tracking(self, signal_id: str) -> List[SignalKlineTracking]:
        """All kline tracking rows of a signal ordered by open time."""

    @abstractmethod
    async def get_kline_tracking_by_ids(
        self,
        signal_ids: Sequence[str],
    ) -> Dict[str, List[SignalKlineTracking]]:
        """Kline tracking rows for a batch of signals."""

    # =========================================================
    # OUTCOMES
    # =========================================================

    @abstractmethod
    async def write_outcome(
        self,
        signal_id: str,
        outcome: SignalOutcome,
        replace: bool = False,
    ) -> None:
        """Write (or atomically replace) the outcome of a CLOSED signal."""

    @abstractmethod
    async def get_outcome(self, signal_id: str) -> Optional[SignalOutcome]:
        """Outcome of a signal, None if absent."""

    @abstractmethod
    async def get_outcomes_by_ids(
        self,
        signal_ids: Iterable[str],
    ) -> Dict[str, SignalOutcome]:
        """Outcomes for a batch of signals; missing ids are simply absent."""

    # =========================================================
    # STATISTICS
    # =========================================================

    @abstractmethod
    async def write_statistics_snapshot(self, stats: Statistics) -> None:
        """Append a statistics snapshot."""

    @abstractmethod
    async def get_latest_statistics(
        self,
        period_label: Optional[str] = None,
        strategy_name: Optional[str] = None,
    ) -> List[Statistics]:
        """Latest snapshot per (strategy, symbol, period) key, optionally filtered."""

    @abstractmethod
    async def get_previous_statistics(self, stats: Statistics) -> Optional[Statistics]:
        """The snapshot for the same key calculated just before stats."""

    @abstractmethod
    async def get_statistics_history(
        self,
        start: datetime,
        end: datetime,
        strategy_name: Optional[str] = None,
        symbol: Optional[str] = None,
    ) -> List[Statistics]:
        """Snapshots calculated in [start, end], oldest first."""

    # =========================================================
    # HEALTH
    # =========================================================

    async def health_check(self) -> bool:
        """Whether the backing storage is reachable."""
        return True


__all__ = ["SignalFilter", "SignalStore"]
