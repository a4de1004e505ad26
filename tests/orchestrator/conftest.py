"""
Shared fixtures for orchestrator tests.
"""

from datetime import timedelta

import pytest
import pytest_asyncio

from core.clock import MockClock
from orchestrator.config import AppConfig
from orchestrator.core import SignalEngine
from signal_lifecycle.types import SignalStatus
from storage.repositories.memory_store import InMemorySignalStore
from tests.helpers import T0, FakePriceSource, make_signal


ENV_KEYS = (
    "DATABASE_URL",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "TRACKING_INTERVAL_SECONDS",
    "KLINE_INTERVAL_SECONDS",
    "AGGREGATION_INTERVAL_SECONDS",
    "PRICE_TIMEOUT_SECONDS",
    "BINANCE_BASE_URL",
    "API_HOST",
    "API_PORT",
    "SHUTDOWN_GRACE_SECONDS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so values loaded from a .env file are undone too
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


@pytest.fixture
def no_env_file(tmp_path):
    return str(tmp_path / "missing.env")


@pytest_asyncio.fixture
async def engine():
    """Engine on an in-memory store with one tracked BTCUSDT signal."""
    store = InMemorySignalStore()
    await store.insert_signal(make_signal(status=SignalStatus.TRACKING, confirmed_at=T0))
    return SignalEngine(
        AppConfig(),
        store=store,
        price_source=FakePriceSource({"BTCUSDT": "101"}),
        clock=MockClock(T0 + timedelta(hours=1)),
    )
