"""
SQL Signal Store.

============================================================
PURPOSE
============================================================
SignalStore implementation on SQLAlchemy 2.0 async sessions.

============================================================
GUARANTEES
============================================================
- Status transitions are a single conditional UPDATE
  (WHERE status = expected); zero affected rows means the
  signal is unknown (NotFoundError) or moved on (ConflictError)
- The outcome of a closing transition is inserted in the same
  transaction as the status change
- Unique constraints make tracking and kline inserts
  idempotent; a duplicate insert reports False
- Every SQLAlchemy error surfaces as a StorageFailure subclass

Datetimes read back from backends without timezone support
are normalised to UTC.

============================================================
"""

import dataclasses
import logging
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError as SQLAlchemyIntegrityError
from sqlalchemy.exc import SQLAlchemyError

from core.clock import ensure_utc
from core.exceptions import ConflictError, NotFoundError
from performance_analytics.types import Statistics
from signal_lifecycle.types import (
    ACTIVE_STATUSES,
    Direction,
    ExitReason,
    MarketContext,
    OutcomeClassification,
    Signal,
    SignalKlineTracking,
    SignalOutcome,
    SignalStatus,
    SignalTracking,
    to_jsonable,
)
from storage.database import Database
from storage.models.signals import (
    SignalKlineTrackingRecord,
    SignalOutcomeRecord,
    SignalRecord,
    SignalTrackingRecord,
    StrategyStatisticsRecord,
)
from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import DuplicateRecordError
from storage.repositories.signal_store import SignalFilter, SignalStore


T = TypeVar("T")

TRANSITION_COLUMNS = frozenset({
    "confirmed_at",
    "closed_at",
    "invalidated_at",
    "exit_price",
    "exit_reason",
})

_INT_CONTEXT_FIELDS = frozenset({"long_trader_count", "short_trader_count"})


class SqlSignalStore(BaseRepository, SignalStore):
    """SignalStore backed by a relational database."""

    def __init__(
        self,
        database: Database,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(database, "signal_store", logger)

    async def health_check(self) -> bool:
        return await self._database.health_check()

    # =========================================================
    # SIGNALS
    # =========================================================

    async def insert_signal(self, signal: Signal) -> None:
        try:
            async with self.session() as session:
                session.add(_signal_to_record(signal))
                await session.flush()
        except SQLAlchemyError as e:
            self._handle_db_error(
                e, "insert_signal", {"field": "signal_id", "value": signal.signal_id}
            )
        self._logger.debug(f"Inserted signal {signal.signal_id}")

    async def get_signal(self, signal_id: str) -> Signal:
        try:
            async with self.session() as session:
                record = await session.get(SignalRecord, signal_id)
        except SQLAlchemyError as e:
            self._handle_db_error(e, "get_signal", {"signal_id": signal_id})
        if record is None:
            raise NotFoundError("Signal", signal_id)
        return _record_to_signal(record)

    async def list_signals(
        self,
        filters: SignalFilter,
        page: int,
        limit: int,
    ) -> Tuple[List[Signal], int]:
        conditions = _filter_conditions(filters)
        stmt = (
            select(SignalRecord)
            .where(*conditions)
            .order_by(SignalRecord.generated_at.desc(), SignalRecord.signal_id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        count_stmt = select(func.count()).select_from(SignalRecord).where(*conditions)

        try:
            async with self.session() as session:
                total = (await session.execute(count_stmt)).scalar_one()
                records = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "list_signals")
        return [_record_to_signal(r) for r in records], int(total)

    async def get_active_signals(self) -> List[Signal]:
        return await self.get_signals_by_status(*ACTIVE_STATUSES)

    async def get_signals_by_status(self, *statuses: SignalStatus) -> List[Signal]:
        stmt = (
            select(SignalRecord)
            .where(SignalRecord.status.in_([s.value for s in statuses]))
            .order_by(SignalRecord.generated_at, SignalRecord.signal_id)
        )
        return await self._select_signals(stmt, "get_signals_by_status")

    async def get_signals_generated_between(
        self,
        start: datetime,
        end: datetime,
    ) -> List[Signal]:
        stmt = (
            select(SignalRecord)
            .where(SignalRecord.generated_at >= start, SignalRecord.generated_at <= end)
            .order_by(SignalRecord.generated_at, SignalRecord.signal_id)
        )
        return await self._select_signals(stmt, "get_signals_generated_between")

    async def get_closed_signals_between(
        self,
        start: datetime,
        end: datetime,
    ) -> List[Signal]:
        stmt = (
            select(SignalRecord)
            .where(
                SignalRecord.status == SignalStatus.CLOSED.value,
                SignalRecord.closed_at >= start,
                SignalRecord.closed_at <= end,
            )
            .order_by(SignalRecord.generated_at, SignalRecord.signal_id)
        )
        return await self._select_signals(stmt, "get_closed_signals_between")

    async def _select_signals(self, stmt: Any, operation: str) -> List[Signal]:
        try:
            async with self.session() as session:
                records = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            self._handle_db_error(e, operation)
        return [_record_to_signal(r) for r in records]

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
        values = _transition_values(changes or {})
        stmt = (
            update(SignalRecord)
            .where(
                SignalRecord.signal_id == signal_id,
                SignalRecord.status == expected.value,
            )
            .values(status=new.value, **values)
            .execution_options(synchronize_session=False)
        )

        try:
            async with self.session() as session:
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    current = await session.get(SignalRecord, signal_id)
                    if current is None:
                        raise NotFoundError("Signal", signal_id)
                    raise ConflictError(signal_id, expected, SignalStatus(current.status))

                if outcome is not None:
                    session.add(_outcome_to_record(outcome))
                    await session.flush()

                record = await session.get(SignalRecord, signal_id, populate_existing=True)
                return _record_to_signal(record)
        except SQLAlchemyError as e:
            self._handle_db_error(
                e, "apply_status_transition", {"field": "signal_id", "value": signal_id}
            )

    async def flag_for_inspection(self, signal_id: str, note: str) -> None:
        stmt = (
            update(SignalRecord)
            .where(SignalRecord.signal_id == signal_id)
            .values(needs_inspection=True, inspection_note=note)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self.session() as session:
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    raise NotFoundError("Signal", signal_id)
        except SQLAlchemyError as e:
            self._handle_db_error(e, "flag_for_inspection", {"signal_id": signal_id})

    # =========================================================
    # TRACKING
    # =========================================================

    async def insert_tracking_point(self, tracking: SignalTracking) -> bool:
        return await self._insert_idempotent(
            _to_record(SignalTrackingRecord, tracking),
            "insert_tracking_point",
        )

    async def get_latest_tracking(self, signal_id: str) -> Optional[SignalTracking]:
        stmt = (
            select(SignalTrackingRecord)
            .where(SignalTrackingRecord.signal_id == signal_id)
            .order_by(SignalTrackingRecord.tracked_at.desc(), SignalTrackingRecord.id.desc())
            .limit(1)
        )
        rows = await self._select_rows(stmt, SignalTracking, "get_latest_tracking")
        return rows[0] if rows else None

    async def get_tracking_history(self, signal_id: str) -> List[SignalTracking]:
        stmt = (
            select(SignalTrackingRecord)
            .where(SignalTrackingRecord.signal_id == signal_id)
            .order_by(SignalTrackingRecord.tracked_at, SignalTrackingRecord.id)
        )
        return await self._select_rows(stmt, SignalTracking, "get_tracking_history")

    async def insert_kline_tracking(self, tracking: SignalKlineTracking) -> bool:
        return await self._insert_idempotent(
            _to_record(SignalKlineTrackingRecord, tracking),
            "insert_kline_tracking",
        )

    async def get_latest_kline_tracking(
        self,
        signal_id: str,
    ) -> Optional[SignalKlineTracking]:
        stmt = (
            select(SignalKlineTrackingRecord)
            .where(SignalKlineTrackingRecord.signal_id == signal_id)
            .order_by(SignalKlineTrackingRecord.kline_open_time.desc())
            .limit(1)
        )
        rows = await self._select_rows(stmt, SignalKlineTracking, "get_latest_kline_tracking")
        return rows[0] if rows else None

    async def get_kline_tracking(self, signal_id: str) -> List[SignalKlineTracking]:
        stmt = (
            select(SignalKlineTrackingRecord)
            .where(SignalKlineTrackingRecord.signal_id == signal_id)
            .order_by(SignalKlineTrackingRecord.kline_open_time)
        )
        return await self._select_rows(stmt, SignalKlineTracking, "get_kline_tracking")

    async def get_kline_tracking_by_ids(
        self,
        signal_ids: Sequence[str],
    ) -> Dict[str, List[SignalKlineTracking]]:
        if not signal_ids:
            return {}
        stmt = (
            select(SignalKlineTrackingRecord)
            .where(SignalKlineTrackingRecord.signal_id.in_(list(signal_ids)))
            .order_by(SignalKlineTrackingRecord.signal_id, SignalKlineTrackingRecord.kline_open_time)
        )
        grouped: Dict[str, List[SignalKlineTracking]] = {}
        for row in await self._select_rows(stmt, SignalKlineTracking, "get_kline_tracking_by_ids"):
            grouped.setdefault(row.signal_id, []).append(row)
        return grouped

    async def _insert_idempotent(self, record: Any, operation: str) -> bool:
        try:
            async with self.session() as session:
                session.add(record)
                await session.flush()
        except SQLAlchemyIntegrityError:
            self._logger.debug(f"{operation}: idempotency key exists for {record.signal_id}")
            return False
        except SQLAlchemyError as e:
            self._handle_db_error(e, operation, {"signal_id": record.signal_id})
        return True

    # =========================================================
    # OUTCOMES
    # =========================================================

    async def write_outcome(
        self,
        signal_id: str,
        outcome: SignalOutcome,
        replace: bool = False,
    ) -> None:
        try:
            async with self.session() as session:
                if await session.get(SignalRecord, signal_id) is None:
                    raise NotFoundError("Signal", signal_id)
                existing = (await session.execute(
                    select(SignalOutcomeRecord).where(SignalOutcomeRecord.signal_id == signal_id)
                )).scalar_one_or_none()
                if existing is not None:
                    if not replace:
                        raise DuplicateRecordError(self.repository_name, "signal_id", signal_id)
                    await session.delete(existing)
                    await session.flush()
                session.add(_outcome_to_record(outcome))
                await session.flush()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "write_outcome", {"field": "signal_id", "value": signal_id})

    async def get_outcome(self, signal_id: str) -> Optional[SignalOutcome]:
        outcomes = await self.get_outcomes_by_ids([signal_id])
        return outcomes.get(signal_id)

    async def get_outcomes_by_ids(
        self,
        signal_ids: Iterable[str],
    ) -> Dict[str, SignalOutcome]:
        ids = list(signal_ids)
        if not ids:
            return {}
        stmt = select(SignalOutcomeRecord).where(SignalOutcomeRecord.signal_id.in_(ids))
        try:
            async with self.session() as session:
                records = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "get_outcomes_by_ids")
        return {r.signal_id: _record_to_outcome(r) for r in records}

    # =========================================================
    # STATISTICS
    # =========================================================

    async def write_statistics_snapshot(self, stats: Statistics) -> None:
        try:
            async with self.session() as session:
                session.add(_to_record(StrategyStatisticsRecord, stats))
        except SQLAlchemyError as e:
            self._handle_db_error(e, "write_statistics_snapshot", {"key": stats.key})

    async def get_latest_statistics(
        self,
        period_label: Optional[str] = None,
        strategy_name: Optional[str] = None,
    ) -> List[Statistics]:
        R = StrategyStatisticsRecord
        latest_ids = select(func.max(R.id)).group_by(R.strategy_name, R.symbol, R.period_label)
        if period_label is not None:
            latest_ids = latest_ids.where(R.period_label == period_label)
        if strategy_name is not None:
            latest_ids = latest_ids.where(R.strategy_name == strategy_name)

        stmt = select(R).where(R.id.in_(latest_ids)).order_by(R.id)
        return await self._select_rows(stmt, Statistics, "get_latest_statistics")

    async def get_previous_statistics(self, stats: Statistics) -> Optional[Statistics]:
        R = StrategyStatisticsRecord
        stmt = (
            select(R)
            .where(
                _null_safe_eq(R.strategy_name, stats.strategy_name),
                _null_safe_eq(R.symbol, stats.symbol),
                R.period_label == stats.period_label,
                R.calculated_at < stats.calculated_at,
            )
            .order_by(R.calculated_at.desc(), R.id.desc())
            .limit(1)
        )
        rows = await self._select_rows(stmt, Statistics, "get_previous_statistics")
        return rows[0] if rows else None

    async def get_statistics_history(
        self,
        start: datetime,
        end: datetime,
        strategy_name: Optional[str] = None,
        symbol: Optional[str] = None,
    ) -> List[Statistics]:
        R = StrategyStatisticsRecord
        conditions = [R.calculated_at >= start, R.calculated_at <= end]
        if strategy_name is not None:
            conditions.append(R.strategy_name == strategy_name)
        if symbol is not None:
            conditions.append(R.symbol == symbol)
        stmt = select(R).where(*conditions).order_by(R.calculated_at, R.id)
        return await self._select_rows(stmt, Statistics, "get_statistics_history")

    async def _select_rows(self, stmt: Any, cls: Type[T], operation: str) -> List[T]:
        try:
            async with self.session() as session:
                records = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            self._handle_db_error(e, operation)
        return [_from_record(cls, r) for r in records]


# =========================================================
# CONVERSION
# =========================================================

def _null_safe_eq(column: Any, value: Optional[str]) -> Any:
    if value is None:
        return column.is_(None)
    return column == value


def _filter_conditions(filters: SignalFilter) -> List[Any]:
    conditions = []
    if filters.status is not None:
        conditions.append(SignalRecord.status == filters.status.value)
    if filters.symbol is not None:
        conditions.append(SignalRecord.symbol == filters.symbol)
    if filters.strategy_name is not None:
        conditions.append(SignalRecord.strategy_name == filters.strategy_name)
    if filters.direction is not None:
        conditions.append(SignalRecord.direction == filters.direction.value)
    if filters.start_time is not None:
        conditions.append(SignalRecord.generated_at >= filters.start_time)
    if filters.end_time is not None:
        conditions.append(SignalRecord.generated_at <= filters.end_time)
    return conditions


def _transition_values(changes: Mapping[str, Any]) -> Dict[str, Any]:
    unknown = set(changes) - TRANSITION_COLUMNS
    if unknown:
        raise ValueError(f"Columns not writable by a transition: {sorted(unknown)}")
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in changes.items()
    }


def _to_record(model: Type[T], obj: Any, **overrides: Any) -> T:
    values = {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
    values.update(overrides)
    return model(**values)


def _from_record(cls: Type[T], record: Any, **overrides: Any) -> T:
    values = {}
    for f in dataclasses.fields(cls):
        if f.name in overrides:
            continue
        value = getattr(record, f.name)
        if isinstance(value, datetime):
            value = ensure_utc(value)
        values[f.name] = value
    values.update(overrides)
    return cls(**values)


def _context_from_json(data: Optional[Mapping[str, Any]]) -> MarketContext:
    values: Dict[str, Any] = {}
    for f in dataclasses.fields(MarketContext):
        raw = (data or {}).get(f.name)
        if raw is None:
            continue
        values[f.name] = int(raw) if f.name in _INT_CONTEXT_FIELDS else Decimal(str(raw))
    return MarketContext(**values)


def _signal_to_record(signal: Signal) -> SignalRecord:
    return _to_record(
        SignalRecord,
        signal,
        direction=signal.direction.value,
        status=signal.status.value,
        context=to_jsonable(dataclasses.asdict(signal.context)),
        config_snapshot=to_jsonable(signal.config_snapshot),
        exit_reason=signal.exit_reason.value if signal.exit_reason else None,
    )


def _record_to_signal(record: SignalRecord) -> Signal:
    return _from_record(
        Signal,
        record,
        direction=Direction(record.direction),
        status=SignalStatus(record.status),
        context=_context_from_json(record.context),
        config_snapshot=dict(record.config_snapshot or {}),
        exit_reason=ExitReason(record.exit_reason) if record.exit_reason else None,
    )


def _outcome_to_record(outcome: SignalOutcome) -> SignalOutcomeRecord:
    return _to_record(
        SignalOutcomeRecord,
        outcome,
        classification=outcome.classification.value,
        exit_reason=outcome.exit_reason.value if outcome.exit_reason else None,
    )


def _record_to_outcome(record: SignalOutcomeRecord) -> SignalOutcome:
    return _from_record(
        SignalOutcome,
        record,
        classification=OutcomeClassification(record.classification),
        exit_reason=ExitReason(record.exit_reason) if record.exit_reason else None,
    )


__all__ = ["SqlSignalStore"]
