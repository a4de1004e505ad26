"""
Orchestrator - Scheduler.

============================================================
RESPONSIBILITY
============================================================
Runs the periodic workers of the engine.

- tracking loop: price ticks and lifecycle advance
- kline loop: closed-bar sampling for tracked signals
- aggregation loop: statistics snapshots and change monitor

Workers never call each other; they communicate only through
the store. A failing cycle is logged and the loop carries on.

============================================================
SHUTDOWN
============================================================
stop() sets the stop event so no new cycle begins, waits up to
the grace period for in-flight cycles, then cancels the rest.
============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional

from .config import SchedulerConfig
from .core import SignalEngine


Job = Callable[[], Awaitable[object]]


@dataclass
class LoopStats:
    """Counters of one worker loop."""

    name: str
    runs: int = 0
    failures: int = 0
    last_run_at: Optional[datetime] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "runs": self.runs,
            "failures": self.failures,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
        }


class Scheduler:
    """Drives the tracking, kline and aggregation loops."""

    def __init__(
        self,
        engine: SignalEngine,
        config: Optional[SchedulerConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._engine = engine
        self._config = config or engine.config.scheduler
        self._logger = logger or logging.getLogger(__name__)
        self._stop_event = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self.stats: Dict[str, LoopStats] = {}

    @property
    def is_running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    # --------------------------------------------------------
    # Jobs
    # --------------------------------------------------------

    async def run_tracking_cycle(self):
        result = await self._engine.tracker.track_all()
        self._logger.info(f"Tracking cycle: {result.to_dict()}")
        return result

    async def run_kline_cycle(self):
        result = await self._engine.tracker.track_all_klines()
        self._logger.info(f"Kline cycle: {result.to_dict()}")
        return result

    async def run_aggregation_cycle(self):
        return await self._engine.aggregator.calculate_all()

    # --------------------------------------------------------
    # Loops
    # --------------------------------------------------------

    def start(self) -> None:
        """Spawn the worker loops on the running event loop."""
        if self.is_running:
            self._logger.warning("Scheduler already running")
            return

        self._stop_event.clear()
        loops = [
            ("tracking", self.run_tracking_cycle, self._config.tracking_interval_seconds),
            ("klines", self.run_kline_cycle, self._config.kline_interval_seconds),
            ("aggregation", self.run_aggregation_cycle, self._config.aggregation_interval_seconds),
        ]
        for name, job, interval in loops:
            self.stats[name] = LoopStats(name=name)
            self._tasks.append(
                asyncio.create_task(self._loop(name, job, interval), name=f"scheduler-{name}")
            )
        self._logger.info(
            f"Scheduler started | tracking={self._config.tracking_interval_seconds}s "
            f"klines={self._config.kline_interval_seconds}s "
            f"aggregation={self._config.aggregation_interval_seconds}s"
        )

    async def _loop(self, name: str, job: Job, interval: int) -> None:
        if not self._config.run_on_start and await self._wait(interval):
            return

        while not self._stop_event.is_set():
            stats = self.stats[name]
            stats.runs += 1
            stats.last_run_at = self._engine.clock.now()
            try:
                await job()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                stats.failures += 1
                stats.last_error = str(e)
                self._logger.exception(f"{name} cycle failed: {e}")

            if await self._wait(interval):
                return

    async def _wait(self, seconds: float) -> bool:
        """Sleep up to seconds; True if the stop event fired meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def wait_stopped(self) -> None:
        await self._stop_event.wait()

    def request_stop(self) -> None:
        self._stop_event.set()

    async def stop(self, grace_seconds: Optional[float] = None) -> None:
        """Stop accepting cycles and drain in-flight ones."""
        grace = self._config.shutdown_grace_seconds if grace_seconds is None else grace_seconds
        self._stop_event.set()

        pending = [t for t in self._tasks if not t.done()]
        if pending:
            self._logger.info(f"Waiting up to {grace}s for {len(pending)} workers")
            _, still_running = await asyncio.wait(pending, timeout=grace)
            for task in still_running:
                task.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)
                self._logger.warning(f"Cancelled {len(still_running)} workers after grace period")

        self._tasks = []
        self._logger.info("Scheduler stopped")

    def get_status(self) -> Dict[str, object]:
        return {
            "running": self.is_running,
            "loops": {name: s.to_dict() for name, s in self.stats.items()},
        }


__all__ = ["Scheduler", "LoopStats"]
