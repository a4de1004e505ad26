"""
Contract tests for SignalStore implementations.

============================================================
PURPOSE
============================================================
Every test runs against both the in-memory store and the SQL
store on an in-memory SQLite database (aiosqlite).

- Round trips of signals, tracking rows, outcomes, snapshots
- Compare-and-set status transitions
- Idempotent tracking inserts
- Latest snapshot per key
============================================================
"""

from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

from core.exceptions import ConflictError, NotFoundError, StorageFailure
from performance_analytics.types import Statistics
from signal_lifecycle.types import (
    Direction,
    ExitReason,
    MarketContext,
    OutcomeClassification,
    SignalStatus,
)
from storage.database import Database, DatabaseConfig
from storage.repositories.exceptions import DuplicateRecordError
from storage.repositories.memory_store import InMemorySignalStore
from storage.repositories.signal_store import SignalFilter
from storage.repositories.sql_signal_store import SqlSignalStore
from tests.helpers import (
    T0,
    make_closed_signal,
    make_kline_row,
    make_outcome,
    make_point,
    make_signal,
)


# ============================================================
# FIXTURES
# ============================================================

@pytest_asyncio.fixture(params=["memory", "sql"])
async def store(request):
    if request.param == "memory":
        yield InMemorySignalStore()
        return

    database = Database(DatabaseConfig.for_testing())
    await database.create_all()
    try:
        yield SqlSignalStore(database)
    finally:
        await database.disconnect()


def stats_at(hours, strategy="smart_money", symbol=None, period="24h", win_rate="50"):
    calculated_at = T0 + timedelta(hours=hours)
    return Statistics(
        strategy_name=strategy,
        symbol=symbol,
        period_label=period,
        period_start=calculated_at - timedelta(hours=24),
        period_end=calculated_at,
        calculated_at=calculated_at,
        total_signals=4,
        profitable_signals=2,
        losing_signals=2,
        win_rate=Decimal(win_rate),
    )


# ============================================================
# SIGNALS
# ============================================================

class TestSignals:

    @pytest.mark.asyncio
    async def test_round_trip(self, store):
        signal = make_signal(
            direction=Direction.SHORT,
            price="43250.5",
            context=MarketContext(funding_rate=Decimal("0.0001"), long_trader_count=120),
            config_snapshot={"stop_loss_pct": "3"},
            reason="whale inflow",
        )
        await store.insert_signal(signal)

        stored = await store.get_signal("sig-1")

        assert stored.direction is Direction.SHORT
        assert stored.status is SignalStatus.PENDING
        assert stored.price_at_signal == Decimal("43250.5")
        assert stored.generated_at == T0
        assert stored.confirmation_end == T0 + timedelta(hours=2)
        assert stored.context.funding_rate == Decimal("0.0001")
        assert stored.context.long_trader_count == 120
        assert stored.config_snapshot == {"stop_loss_pct": "3"}
        assert stored.reason == "whale inflow"

    @pytest.mark.asyncio
    async def test_unknown_signal(self, store):
        with pytest.raises(NotFoundError):
            await store.get_signal("missing")

    @pytest.mark.asyncio
    async def test_duplicate_signal(self, store):
        await store.insert_signal(make_signal())
        with pytest.raises(DuplicateRecordError):
            await store.insert_signal(make_signal())

    @pytest.mark.asyncio
    async def test_list_filters_and_pages(self, store):
        for i in range(5):
            await store.insert_signal(make_signal(
                signal_id=f"sig-{i}",
                symbol="BTCUSDT" if i % 2 == 0 else "ETHUSDT",
                generated_at=T0 + timedelta(hours=i),
            ))

        page, total = await store.list_signals(SignalFilter(symbol="BTCUSDT"), page=1, limit=2)
        assert total == 3
        assert [s.signal_id for s in page] == ["sig-4", "sig-2"]

        page, total = await store.list_signals(SignalFilter(symbol="BTCUSDT"), page=2, limit=2)
        assert [s.signal_id for s in page] == ["sig-0"]

        page, total = await store.list_signals(
            SignalFilter(start_time=T0 + timedelta(hours=1), end_time=T0 + timedelta(hours=3)),
            page=1,
            limit=10,
        )
        assert total == 3

    @pytest.mark.asyncio
    async def test_active_and_window_queries(self, store):
        await store.insert_signal(make_signal("pending"))
        await store.insert_signal(make_closed_signal("closed", T0 + timedelta(hours=5)))

        active = await store.get_active_signals()
        assert [s.signal_id for s in active] == ["pending"]

        closed = await store.get_closed_signals_between(T0, T0 + timedelta(hours=6))
        assert [s.signal_id for s in closed] == ["closed"]

        generated = await store.get_signals_generated_between(T0, T0 + timedelta(minutes=30))
        assert [s.signal_id for s in generated] == ["pending"]


# ============================================================
# TRANSITIONS
# ============================================================

class TestTransitions:

    @pytest.mark.asyncio
    async def test_compare_and_set(self, store):
        await store.insert_signal(make_signal())

        updated = await store.apply_status_transition(
            "sig-1",
            expected=SignalStatus.PENDING,
            new=SignalStatus.CONFIRMED,
            changes={"confirmed_at": T0 + timedelta(minutes=10)},
        )

        assert updated.status is SignalStatus.CONFIRMED
        assert updated.confirmed_at == T0 + timedelta(minutes=10)

        with pytest.raises(ConflictError) as exc_info:
            await store.apply_status_transition(
                "sig-1", expected=SignalStatus.PENDING, new=SignalStatus.INVALIDATED
            )
        assert exc_info.value.context["actual"] == "CONFIRMED"
        assert (await store.get_signal("sig-1")).status is SignalStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_unknown_signal_transition(self, store):
        with pytest.raises(NotFoundError):
            await store.apply_status_transition(
                "missing", expected=SignalStatus.PENDING, new=SignalStatus.CONFIRMED
            )

    @pytest.mark.asyncio
    async def test_close_writes_outcome_atomically(self, store):
        await store.insert_signal(make_signal(status=SignalStatus.TRACKING, confirmed_at=T0))
        closed_at = T0 + timedelta(hours=3)

        updated = await store.apply_status_transition(
            "sig-1",
            expected=SignalStatus.TRACKING,
            new=SignalStatus.CLOSED,
            changes={
                "closed_at": closed_at,
                "exit_price": Decimal("105"),
                "exit_reason": ExitReason.TAKE_PROFIT,
            },
            outcome=make_outcome("sig-1", "5.0000", closed_at),
        )

        assert updated.exit_reason is ExitReason.TAKE_PROFIT
        assert updated.closed_at == closed_at
        outcome = await store.get_outcome("sig-1")
        assert outcome.classification is OutcomeClassification.PROFIT
        assert outcome.final_pnl_pct == Decimal("5")
        assert outcome.closed_at == closed_at

    @pytest.mark.asyncio
    async def test_flag_for_inspection(self, store):
        await store.insert_signal(make_signal())
        await store.flag_for_inspection("sig-1", "no tracking history")

        stored = await store.get_signal("sig-1")
        assert stored.needs_inspection
        assert stored.inspection_note == "no tracking history"
        assert stored.status is SignalStatus.PENDING


# ============================================================
# TRACKING AND OUTCOMES
# ============================================================

class TestTrackingRows:

    @pytest.mark.asyncio
    async def test_tracking_insert_is_idempotent(self, store):
        signal = make_signal(status=SignalStatus.TRACKING, confirmed_at=T0)
        await store.insert_signal(signal)
        point = make_point(signal, T0 + timedelta(hours=1), "101")

        assert await store.insert_tracking_point(point) is True
        assert await store.insert_tracking_point(replace(point, current_price=Decimal("999"))) is False

        history = await store.get_tracking_history("sig-1")
        assert len(history) == 1
        assert history[0].current_price == Decimal("101")

    @pytest.mark.asyncio
    async def test_latest_tracking(self, store):
        signal = make_signal(status=SignalStatus.TRACKING, confirmed_at=T0)
        await store.insert_signal(signal)
        for hours, price in ((2, "102"), (1, "101")):
            await store.insert_tracking_point(make_point(signal, T0 + timedelta(hours=hours), price))

        latest = await store.get_latest_tracking("sig-1")
        assert latest.tracked_at == T0 + timedelta(hours=2)
        assert [p.current_price for p in await store.get_tracking_history("sig-1")] == [
            Decimal("101"), Decimal("102")
        ]
        assert await store.get_latest_tracking("other") is None

    @pytest.mark.asyncio
    async def test_kline_rows(self, store):
        await store.insert_signal(make_signal(status=SignalStatus.TRACKING, confirmed_at=T0))
        await store.insert_signal(make_signal("sig-2"))
        first = make_kline_row("sig-1", T0)
        second = make_kline_row("sig-1", T0 + timedelta(hours=1))

        assert await store.insert_kline_tracking(second)
        assert await store.insert_kline_tracking(first)
        assert not await store.insert_kline_tracking(first)

        latest = await store.get_latest_kline_tracking("sig-1")
        assert latest.kline_open_time == T0 + timedelta(hours=1)
        by_id = await store.get_kline_tracking_by_ids(["sig-1", "sig-2"])
        assert [k.kline_open_time for k in by_id["sig-1"]] == [T0, T0 + timedelta(hours=1)]
        assert "sig-2" not in by_id

    @pytest.mark.asyncio
    async def test_outcome_write_and_replace(self, store):
        closed_at = T0 + timedelta(hours=5)
        await store.insert_signal(make_closed_signal("sig-1", closed_at))

        await store.write_outcome("sig-1", make_outcome("sig-1", "2", closed_at))
        with pytest.raises(DuplicateRecordError):
            await store.write_outcome("sig-1", make_outcome("sig-1", "3", closed_at))

        await store.write_outcome("sig-1", make_outcome("sig-1", "-1", closed_at), replace=True)
        outcome = await store.get_outcome("sig-1")
        assert outcome.classification is OutcomeClassification.LOSS

        outcomes = await store.get_outcomes_by_ids(["sig-1", "missing"])
        assert list(outcomes) == ["sig-1"]

    @pytest.mark.asyncio
    async def test_outcome_for_unknown_signal(self, store):
        with pytest.raises(NotFoundError):
            await store.write_outcome("missing", make_outcome("missing", "1", T0))

    @pytest.mark.asyncio
    async def test_storage_errors_are_storage_failures(self, store):
        await store.insert_signal(make_signal())
        with pytest.raises(StorageFailure):
            await store.insert_signal(make_signal())


# ============================================================
# STATISTICS
# ============================================================

class TestStatisticsSnapshots:

    @pytest.mark.asyncio
    async def test_latest_per_key(self, store):
        await store.write_statistics_snapshot(stats_at(0, win_rate="40"))
        await store.write_statistics_snapshot(stats_at(1, win_rate="60"))
        await store.write_statistics_snapshot(stats_at(1, symbol="BTCUSDT"))
        await store.write_statistics_snapshot(stats_at(1, strategy=None))
        await store.write_statistics_snapshot(stats_at(1, period="7d"))

        latest = await store.get_latest_statistics(period_label="24h")
        by_key = {s.key: s for s in latest}

        assert len(latest) == 3
        assert by_key[("smart_money", None, "24h")].win_rate == Decimal("60")

        only_strategy = await store.get_latest_statistics(strategy_name="smart_money")
        assert len(only_strategy) == 3

    @pytest.mark.asyncio
    async def test_previous_snapshot(self, store):
        first, second = stats_at(0, win_rate="40"), stats_at(1, win_rate="60")
        await store.write_statistics_snapshot(first)
        await store.write_statistics_snapshot(second)
        await store.write_statistics_snapshot(stats_at(0, strategy=None, win_rate="10"))

        previous = await store.get_previous_statistics(second)
        assert previous.win_rate == Decimal("40")
        assert previous.calculated_at == T0
        assert await store.get_previous_statistics(first) is None

    @pytest.mark.asyncio
    async def test_history_window(self, store):
        for hours in range(4):
            await store.write_statistics_snapshot(stats_at(hours))
        await store.write_statistics_snapshot(stats_at(2, symbol="ETHUSDT"))

        history = await store.get_statistics_history(
            T0 + timedelta(hours=1), T0 + timedelta(hours=2), strategy_name="smart_money"
        )
        assert len(history) == 3

        history = await store.get_statistics_history(
            T0, T0 + timedelta(hours=5), symbol="ETHUSDT"
        )
        assert [s.symbol for s in history] == ["ETHUSDT"]


class TestSqlStore:

    @pytest.mark.asyncio
    async def test_health_check(self):
        database = Database(DatabaseConfig.for_testing())
        await database.create_all()
        try:
            assert await SqlSignalStore(database).health_check()
        finally:
            await database.disconnect()

    def test_safe_url_hides_credentials(self):
        config = DatabaseConfig(url="postgresql+asyncpg://user:secret@db:5432/signals")
        assert config.safe_url() == "db:5432/signals"
        assert not config.is_sqlite
