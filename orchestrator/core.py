"""
Orchestrator - Core.

============================================================
RESPONSIBILITY
============================================================
Wires the engine together and owns its lifecycle.

- Sets up logging
- Builds store, price source, lifecycle manager, tracker,
  aggregator and monitor from one AppConfig
- Opens and closes external resources

============================================================
ARCHITECTURAL POSITION
============================================================
- No business logic lives here
- Components only share the store; none calls another's
  internals
============================================================
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.clock import ClockProtocol, SystemClock
from data_sources.base import PriceSource
from data_sources.providers.binance import BinanceFuturesPriceSource
from performance_analytics.aggregator import StatisticsAggregator
from performance_analytics.monitor import StatisticsMonitor
from signal_lifecycle.lifecycle import LifecycleManager
from signal_lifecycle.resolver import OutcomeResolver
from signal_lifecycle.tracker import Tracker
from storage.database import Database
from storage.repositories.signal_store import SignalStore
from storage.repositories.sql_signal_store import SqlSignalStore

from .config import AppConfig


# ============================================================
# LOGGING SETUP
# ============================================================

class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def __init__(self, correlation_id: Optional[str] = None):
        super().__init__()
        self._correlation_id = correlation_id or ""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": self._correlation_id,
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    correlation_id: Optional[str] = None,
) -> logging.Logger:
    """
    Set up structured logging.

    Args:
        level: Log level
        log_format: Output format (json or text)
        correlation_id: Correlation ID for tracing

    Returns:
        Configured logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter: logging.Formatter = JsonFormatter(correlation_id)
    else:
        formatter = logging.Formatter(
            f"%(asctime)s | %(levelname)-8s | %(name)s | {correlation_id or ''} | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("orchestrator")


# ============================================================
# ENGINE
# ============================================================

class SignalEngine:
    """
    Container for the wired components.

    Store, price source and clock can be injected; anything not
    injected is built from the config.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        store: Optional[SignalStore] = None,
        price_source: Optional[PriceSource] = None,
        clock: Optional[ClockProtocol] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._config = config or AppConfig()
        self._logger = logger or logging.getLogger("orchestrator")
        self.clock = clock or SystemClock()

        self.database: Optional[Database] = None
        if store is None:
            self.database = Database(self._config.database)
            store = SqlSignalStore(self.database)
        self.store = store

        self.price_source = price_source or BinanceFuturesPriceSource(
            base_url=self._config.source.binance_base_url,
            timeout=self._config.lifecycle.tracker.price_timeout_seconds,
            max_retries=self._config.source.max_retries,
        )

        lifecycle_config = self._config.lifecycle
        self.resolver = OutcomeResolver(
            config=lifecycle_config.resolver,
            close_defaults=lifecycle_config.lifecycle.close,
        )
        self.lifecycle = LifecycleManager(
            self.store,
            resolver=self.resolver,
            config=lifecycle_config.lifecycle,
            clock=self.clock,
        )
        self.tracker = Tracker(
            self.store,
            self.price_source,
            self.lifecycle,
            config=lifecycle_config.tracker,
            close_defaults=lifecycle_config.lifecycle.close,
            clock=self.clock,
        )

        analytics = self._config.analytics
        self.monitor = StatisticsMonitor(self.store, config=analytics.monitor)
        self.aggregator = StatisticsAggregator(
            self.store,
            config=analytics.aggregation,
            monitor=self.monitor,
            clock=self.clock,
        )

    @property
    def config(self) -> AppConfig:
        return self._config

    async def start(self) -> None:
        """Open the database and make sure the schema exists."""
        if self.database is not None:
            self.database.connect()
            await self.database.create_all()
        self._logger.info("Signal engine started")

    async def stop(self) -> None:
        """Release the price source and the database."""
        await self.price_source.close()
        if self.database is not None:
            await self.database.disconnect()
        self._logger.info("Signal engine stopped")

    async def health_check(self) -> Dict[str, Any]:
        store_ok = await self.store.health_check()
        return {
            "healthy": store_ok,
            "store": "up" if store_ok else "down",
            "price_source": self.price_source.name,
            "checked_at": self.clock.now().isoformat(),
        }


def create_engine(config: Optional[AppConfig] = None, **kwargs) -> SignalEngine:
    """Factory for a SignalEngine with the given config."""
    return SignalEngine(config=config, **kwargs)
