"""
Tests for the read API.

============================================================
PURPOSE
============================================================
- Envelope, pagination and filters of the signal routes
- Snapshot routes, overview and strategy comparison
- Error mapping: 400 / 404 / 501 / 500
============================================================
"""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from core.clock import MockClock
from core.exceptions import StorageFailure
from dashboard.api import create_app
from dashboard.routers.statistics import build_overview
from performance_analytics.types import Statistics
from signal_lifecycle.types import Direction, SignalStatus
from storage.repositories.memory_store import InMemorySignalStore
from tests.helpers import (
    T0,
    make_closed_signal,
    make_kline_row,
    make_outcome,
    make_point,
    make_signal,
)


NOW = T0 + timedelta(hours=10)
CALCULATED_AT = T0 + timedelta(hours=9)


# ============================================================
# FIXTURES
# ============================================================

def snapshot(strategy, symbol, profitable, losing, avg_profit=None, avg_loss=None, period="24h"):
    decisive = profitable + losing
    return Statistics(
        strategy_name=strategy,
        symbol=symbol,
        period_label=period,
        period_start=CALCULATED_AT - timedelta(hours=24),
        period_end=CALCULATED_AT,
        calculated_at=CALCULATED_AT,
        total_signals=decisive,
        profitable_signals=profitable,
        losing_signals=losing,
        win_rate=Decimal(profitable * 100) / decisive if decisive else None,
        avg_profit_pct=Decimal(avg_profit) if avg_profit else None,
        avg_loss_pct=Decimal(avg_loss) if avg_loss else None,
    )


SNAPSHOTS = [
    snapshot("smart_money", None, 3, 1, "3", "4"),
    snapshot("smart_money", "BTCUSDT", 2, 0, "4"),
    snapshot("smart_money", "ETHUSDT", 1, 1, "2", "4"),
    snapshot("momentum", None, 1, 1, "6", "2"),
    snapshot(None, None, 4, 2, "3.75", "3"),
]


async def seed(store):
    pending = make_signal("sig-a", generated_at=T0 + timedelta(hours=9))
    tracking = make_signal(
        "sig-b",
        generated_at=T0 + timedelta(hours=8),
        status=SignalStatus.TRACKING,
        confirmed_at=T0 + timedelta(hours=8, minutes=5),
    )
    closed = make_closed_signal("sig-c", T0 + timedelta(hours=5))
    invalidated = make_signal(
        "sig-d",
        symbol="ETHUSDT",
        direction=Direction.SHORT,
        generated_at=T0 + timedelta(hours=2),
        status=SignalStatus.INVALIDATED,
        invalidated_at=T0 + timedelta(hours=4, minutes=1),
    )
    for signal in (pending, tracking, closed, invalidated):
        await store.insert_signal(signal)

    await store.write_outcome("sig-c", make_outcome("sig-c", "5", T0 + timedelta(hours=5)))
    for minutes, price in ((10, "100.5"), (15, "101")):
        await store.insert_tracking_point(
            make_point(tracking, T0 + timedelta(hours=8, minutes=minutes), price)
        )
    await store.insert_kline_tracking(make_kline_row("sig-b", T0 + timedelta(hours=8)))

    for stats in SNAPSHOTS:
        await store.write_statistics_snapshot(stats)


@pytest.fixture
def store():
    store = InMemorySignalStore()
    asyncio.run(seed(store))
    return store


@pytest.fixture
def client(store):
    return TestClient(create_app(store, clock=MockClock(NOW)))


def data_of(response, status_code=200):
    assert response.status_code == status_code, response.text
    body = response.json()
    assert body["code"] == status_code
    return body["data"]


# ============================================================
# SIGNALS
# ============================================================

class TestSignalRoutes:

    def test_list_newest_first(self, client):
        data = data_of(client.get("/api/v1/signals"))

        assert [s["signal_id"] for s in data["items"]] == ["sig-a", "sig-b", "sig-d", "sig-c"]
        assert data["pagination"] == {"page": 1, "limit": 20, "total": 4, "total_pages": 1}

    def test_signal_shape(self, client):
        data = data_of(client.get("/api/v1/signals", params={"status": "CLOSED"}))

        item = data["items"][0]
        assert item["signal_id"] == "sig-c"
        assert item["type"] == "LONG"
        assert item["is_confirmed"] is True
        assert item["price_at_signal"] == "100"
        assert item["outcome"]["classification"] == "PROFIT"
        assert item["outcome"]["final_pnl_pct"] == "5"

    def test_filters(self, client):
        data = data_of(client.get("/api/v1/signals", params={"type": "SHORT"}))
        assert [s["signal_id"] for s in data["items"]] == ["sig-d"]

        data = data_of(client.get("/api/v1/signals", params={
            "start_time": (T0 + timedelta(hours=3)).isoformat(),
            "end_time": (T0 + timedelta(hours=9)).isoformat(),
        }))
        assert [s["signal_id"] for s in data["items"]] == ["sig-a", "sig-b"]

    def test_pagination_clamps_limit(self, client):
        data = data_of(client.get("/api/v1/signals", params={"limit": 500, "page": 2}))
        assert data["pagination"]["limit"] == 100
        assert data["items"] == []

    @pytest.mark.parametrize("params", [
        {"page": 0},
        {"limit": 0},
        {"status": "BOGUS"},
        {"page": "abc"},
        {"start_time": "2025-01-02T00:00:00+00:00", "end_time": "2025-01-01T00:00:00+00:00"},
    ])
    def test_bad_requests(self, client, params):
        response = client.get("/api/v1/signals", params=params)

        assert response.status_code == 400
        body = response.json()
        assert body["error"]["type"] == "BadRequest"
        assert "data" not in body

    def test_active(self, client):
        data = data_of(client.get("/api/v1/signals/active"))
        assert {s["signal_id"] for s in data} == {"sig-a", "sig-b"}

    def test_detail_tracking_and_klines(self, client):
        detail = data_of(client.get("/api/v1/signals/sig-b"))
        assert detail["status"] == "TRACKING"
        assert detail["outcome"] is None

        tracking = data_of(client.get("/api/v1/signals/sig-b/tracking"))
        assert [p["current_price"] for p in tracking] == ["100.5", "101"]

        klines = data_of(client.get("/api/v1/signals/sig-b/klines"))
        assert len(klines) == 1
        assert klines[0]["is_profitable_at_high"] is True

    @pytest.mark.parametrize("path", [
        "/api/v1/signals/missing",
        "/api/v1/signals/missing/tracking",
        "/api/v1/signals/missing/klines",
    ])
    def test_unknown_signal(self, client, path):
        response = client.get(path)
        assert response.status_code == 404
        assert response.json()["error"]["type"] == "NotFound"


# ============================================================
# STATISTICS
# ============================================================

class TestStatisticsRoutes:

    def test_overview(self, client):
        data = data_of(client.get("/api/v1/statistics/overview"))

        assert data["total_signals_today"] == 4
        assert data["active_signals"] == 2
        assert data["overall_win_rate_24h"] == "66.6667"
        assert data["avg_return_pct_24h"] == "1.5000"
        assert data["top_performing_pair"] == "BTCUSDT"
        assert data["worst_performing_pair"] == "ETHUSDT"
        assert data["status_distribution"] == {
            "pending": 1,
            "confirmed": 0,
            "tracking": 1,
            "closed": 1,
            "invalidated": 1,
        }

    def test_overview_without_statistics(self):
        store = InMemorySignalStore()
        client = TestClient(create_app(store, clock=MockClock(NOW)))

        data = data_of(client.get("/api/v1/statistics/overview"))

        assert data["total_signals_today"] == 0
        assert data["overall_win_rate_24h"] == "0"
        assert data["top_performing_pair"] == "-"

    def test_build_overview_single_strategy(self):
        overview = build_overview([], 0, [snapshot("smart_money", None, 1, 1, "4", "2", period="all")])
        assert overview.overall_win_rate_24h == "50.0000"
        assert overview.avg_return_pct_24h == "1.0000"

    def test_strategies(self, client):
        data = data_of(client.get("/api/v1/statistics/strategies", params={"period": "24h"}))
        assert {s["scope"] for s in data} == {"smart_money/*", "momentum/*", "*/*"}

        data = data_of(client.get("/api/v1/statistics/strategies", params={
            "period": "24h", "strategy": "momentum",
        }))
        assert len(data) == 1
        assert data[0]["avg_profit_pct"] == "6"

    def test_strategies_default_period_is_all(self, client):
        assert data_of(client.get("/api/v1/statistics/strategies")) == []

    def test_invalid_period(self, client):
        response = client.get("/api/v1/statistics/strategies", params={"period": "1y"})
        assert response.status_code == 400

    def test_symbols(self, client):
        data = data_of(client.get("/api/v1/statistics/symbols", params={"period": "24h"}))
        assert {s["symbol"] for s in data} == {"BTCUSDT", "ETHUSDT"}

        data = data_of(client.get("/api/v1/statistics/symbols", params={
            "period": "24h", "symbol": "ETHUSDT",
        }))
        assert [s["scope"] for s in data] == ["smart_money/ETHUSDT"]

    def test_history(self, client):
        data = data_of(client.get("/api/v1/statistics/history", params={
            "start_time": (T0 + timedelta(hours=8)).isoformat(),
            "end_time": NOW.isoformat(),
            "strategy": "smart_money",
        }))
        assert len(data) == 3

        response = client.get("/api/v1/statistics/history")
        assert response.status_code == 400

    def test_compare(self, client):
        data = data_of(client.get("/api/v1/statistics/compare", params={
            "strategies": "smart_money,momentum",
            "period": "24h",
        }))

        assert data["period"] == "24h"
        names = [entry["strategy_name"] for entry in data["strategies"]]
        assert names == ["smart_money", "momentum"]
        assert all(len(entry["statistics"]) == 1 for entry in data["strategies"])

    def test_compare_by_symbol(self, client):
        data = data_of(client.get("/api/v1/statistics/compare", params=[
            ("strategies", "smart_money"),
            ("strategies", "momentum"),
            ("period", "24h"),
            ("symbols", "BTCUSDT"),
        ]))

        by_name = {entry["strategy_name"]: entry["statistics"] for entry in data["strategies"]}
        assert [s["symbol"] for s in by_name["smart_money"]] == ["BTCUSDT"]
        assert by_name["momentum"] == []

    @pytest.mark.parametrize("params", [
        {"strategies": "smart_money", "period": "24h"},
        {"strategies": "a,b,c,d,e,f", "period": "24h"},
        {"strategies": "smart_money,momentum"},
    ])
    def test_compare_rejects(self, client, params):
        response = client.get("/api/v1/statistics/compare", params=params)
        assert response.status_code == 400


# ============================================================
# HEALTH AND ERRORS
# ============================================================

class TestHealthAndErrors:

    def test_health(self, client):
        data = data_of(client.get("/api/v1/health"))
        assert data["status"] == "healthy"
        assert data["database"] == "up"
        assert data["version"] == "1.0.0"

    def test_root(self, client):
        assert client.get("/").json()["status"] == "ok"

    def test_degraded_health(self):
        class DownStore(InMemorySignalStore):
            async def health_check(self):
                return False

        client = TestClient(create_app(DownStore(), clock=MockClock(NOW)))
        data = data_of(client.get("/api/v1/health"))
        assert data["status"] == "degraded"
        assert data["database"] == "down"

    def test_storage_failure_maps_to_database_error(self):
        class BrokenStore(InMemorySignalStore):
            async def list_signals(self, filters, page, limit):
                raise StorageFailure("connection refused")

        client = TestClient(create_app(BrokenStore(), clock=MockClock(NOW)))
        response = client.get("/api/v1/signals")

        assert response.status_code == 501
        assert response.json()["error"]["type"] == "DatabaseError"

    def test_outcome_failure_degrades_listing(self):
        class NoOutcomes(InMemorySignalStore):
            async def get_outcomes_by_ids(self, signal_ids):
                raise StorageFailure("outcomes unavailable")

        degraded = NoOutcomes()
        asyncio.run(seed(degraded))
        client = TestClient(create_app(degraded, clock=MockClock(NOW)))

        data = data_of(client.get("/api/v1/signals", params={"status": "CLOSED"}))
        assert data["items"][0]["outcome"] is None

    def test_unexpected_error(self):
        class CrashingStore(InMemorySignalStore):
            async def get_active_signals(self):
                raise RuntimeError("boom")

        app = create_app(CrashingStore(), clock=MockClock(NOW))
        client = TestClient(app, raise_server_exceptions=False)
        response = client.get("/api/v1/signals/active")

        assert response.status_code == 500
        assert response.json()["error"]["type"] == "InternalServerError"

    @pytest.mark.parametrize("path, status_code", [
        ("/api/v1/health", 200),
        ("/api/v1/signals/unknown", 404),
        ("/api/v1/signals?page=abc", 400),
    ])
    def test_envelopes_are_stamped_with_app_clock(self, client, path, status_code):
        response = client.get(path)

        assert response.status_code == status_code
        assert response.json()["timestamp"] == int(NOW.timestamp())
