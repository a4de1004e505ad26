"""
Tests for the worker scheduler.

Intervals stay at their defaults so every loop runs exactly
once (run_on_start) before stop() is requested.
"""

import asyncio
import logging
from unittest.mock import AsyncMock, patch

import pytest

from orchestrator.config import SchedulerConfig
from orchestrator.scheduler import Scheduler


async def run_briefly(scheduler, seconds=0.05, grace=None):
    scheduler.start()
    await asyncio.sleep(seconds)
    await scheduler.stop(grace)


class TestCycles:

    @pytest.mark.asyncio
    async def test_tracking_cycle(self, engine):
        result = await Scheduler(engine).run_tracking_cycle()

        assert result.points_recorded == 1
        assert engine.price_source.price_calls == ["BTCUSDT"]
        assert await engine.store.get_latest_tracking("sig-1") is not None

    @pytest.mark.asyncio
    async def test_aggregation_cycle_writes_snapshots(self, engine):
        written = await Scheduler(engine).run_aggregation_cycle()

        assert written
        assert await engine.store.get_latest_statistics(period_label="24h")


class TestLoops:

    @pytest.mark.asyncio
    async def test_every_loop_runs_on_start(self, engine):
        scheduler = Scheduler(engine)

        await run_briefly(scheduler)

        status = scheduler.get_status()
        assert status["running"] is False
        assert {name: loop["runs"] for name, loop in status["loops"].items()} == {
            "tracking": 1,
            "klines": 1,
            "aggregation": 1,
        }
        assert all(loop["failures"] == 0 for loop in status["loops"].values())

    @pytest.mark.asyncio
    async def test_waits_a_full_interval_when_not_running_on_start(self, engine):
        scheduler = Scheduler(engine, SchedulerConfig(run_on_start=False))

        await run_briefly(scheduler)

        assert all(s.runs == 0 for s in scheduler.stats.values())
        assert engine.price_source.price_calls == []

    @pytest.mark.asyncio
    async def test_failing_cycle_does_not_stop_the_loop(self, engine, caplog):
        scheduler = Scheduler(engine)
        failing = AsyncMock(side_effect=RuntimeError("price feed down"))

        with patch.object(engine.tracker, "track_all", failing), \
                caplog.at_level(logging.ERROR):
            scheduler.start()
            await asyncio.sleep(0.05)
            assert scheduler.is_running
            await scheduler.stop()

        tracking = scheduler.stats["tracking"]
        assert tracking.failures == 1
        assert tracking.last_error == "price feed down"
        assert scheduler.stats["aggregation"].failures == 0
        assert "tracking cycle failed" in caplog.text

    @pytest.mark.asyncio
    async def test_stop_cancels_workers_after_grace(self, engine, caplog):
        scheduler = Scheduler(engine)

        async def hang():
            await asyncio.sleep(30)

        with patch.object(engine.aggregator, "calculate_all", hang), \
                caplog.at_level(logging.WARNING):
            await run_briefly(scheduler, grace=0.05)

        assert not scheduler.is_running
        assert "Cancelled 1 workers" in caplog.text

    @pytest.mark.asyncio
    async def test_start_twice_is_ignored(self, engine, caplog):
        scheduler = Scheduler(engine)

        with caplog.at_level(logging.WARNING):
            scheduler.start()
            scheduler.start()
            await asyncio.sleep(0.05)
            await scheduler.stop()

        assert "already running" in caplog.text
        assert scheduler.stats["tracking"].runs == 1

    @pytest.mark.asyncio
    async def test_request_stop_wakes_waiters(self, engine):
        scheduler = Scheduler(engine)
        scheduler.start()

        scheduler.request_stop()
        await asyncio.wait_for(scheduler.wait_stopped(), timeout=1)
        await scheduler.stop()

        assert not scheduler.is_running
