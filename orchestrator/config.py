"""
Orchestrator - Configuration.

============================================================
PURPOSE
============================================================
Application-level configuration: scheduler cadence, database,
logging, API server and the component configs of the engine.

Values come from environment variables (a .env file is loaded
first when present) with the defaults documented below.

============================================================
ENVIRONMENT
============================================================
DATABASE_URL                   SQLAlchemy async URL
LOG_LEVEL                      DEBUG | INFO | WARNING | ERROR
LOG_FORMAT                     json | text
TRACKING_INTERVAL_SECONDS      price tick cadence (default 300)
KLINE_INTERVAL_SECONDS         kline sampling cadence (default 3600)
AGGREGATION_INTERVAL_SECONDS   statistics cadence (default 3600)
PRICE_TIMEOUT_SECONDS          bound on price-source calls (default 10)
BINANCE_BASE_URL               futures REST endpoint
API_HOST / API_PORT            read API bind address
SHUTDOWN_GRACE_SECONDS         drain time before cancelling workers
============================================================
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from core.exceptions import ConfigurationError
from data_sources.providers.binance import BinanceFuturesPriceSource
from performance_analytics.config import PerformanceAnalyticsConfig
from signal_lifecycle.config import SignalLifecycleConfig
from storage.database import DatabaseConfig


# ============================================================
# COMPONENT CONFIGURATIONS
# ============================================================

@dataclass
class SchedulerConfig:
    """Cadence of the background workers."""

    tracking_interval_seconds: int = 300
    """Price tick loop interval."""

    kline_interval_seconds: int = 3600
    """Kline sampling loop interval."""

    aggregation_interval_seconds: int = 3600
    """Statistics loop interval."""

    shutdown_grace_seconds: float = 30.0
    """In-flight cycles may finish within this window on shutdown."""

    run_on_start: bool = True
    """Run every loop once immediately instead of waiting a full interval."""


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "json"


@dataclass
class ApiConfig:
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class SourceConfig:
    """Price source settings."""

    binance_base_url: str = BinanceFuturesPriceSource.BASE_URL
    max_retries: int = 3


# ============================================================
# APPLICATION CONFIGURATION
# ============================================================

@dataclass
class AppConfig:
    """Everything the engine process needs."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    source: SourceConfig = field(default_factory=SourceConfig)
    lifecycle: SignalLifecycleConfig = field(default_factory=SignalLifecycleConfig)
    analytics: PerformanceAnalyticsConfig = field(default_factory=PerformanceAnalyticsConfig)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "AppConfig":
        """Load configuration from environment variables."""
        load_dotenv(env_file)

        config = cls()
        config.database.url = os.getenv("DATABASE_URL", config.database.url)
        config.logging.level = os.getenv("LOG_LEVEL", config.logging.level).upper()
        config.logging.format = os.getenv("LOG_FORMAT", config.logging.format).lower()

        scheduler = config.scheduler
        scheduler.tracking_interval_seconds = _int_env(
            "TRACKING_INTERVAL_SECONDS", scheduler.tracking_interval_seconds
        )
        scheduler.kline_interval_seconds = _int_env(
            "KLINE_INTERVAL_SECONDS", scheduler.kline_interval_seconds
        )
        scheduler.aggregation_interval_seconds = _int_env(
            "AGGREGATION_INTERVAL_SECONDS", scheduler.aggregation_interval_seconds
        )
        scheduler.shutdown_grace_seconds = _float_env(
            "SHUTDOWN_GRACE_SECONDS", scheduler.shutdown_grace_seconds
        )

        # The tracking bucket follows the tick cadence
        tracker = config.lifecycle.tracker
        tracker.tracking_interval_seconds = scheduler.tracking_interval_seconds
        tracker.price_timeout_seconds = _float_env(
            "PRICE_TIMEOUT_SECONDS", tracker.price_timeout_seconds
        )

        config.source.binance_base_url = os.getenv(
            "BINANCE_BASE_URL", config.source.binance_base_url
        )
        config.api.host = os.getenv("API_HOST", config.api.host)
        config.api.port = _int_env("API_PORT", config.api.port)

        config.validate()
        return config

    def validate(self) -> None:
        """Raise ConfigurationError on impossible values."""
        scheduler = self.scheduler
        for key in (
            "tracking_interval_seconds",
            "kline_interval_seconds",
            "aggregation_interval_seconds",
        ):
            if getattr(scheduler, key) < 1:
                raise ConfigurationError(
                    f"{key} must be at least 1 second",
                    config_key=f"scheduler.{key}",
                )
        if scheduler.shutdown_grace_seconds < 0:
            raise ConfigurationError(
                "shutdown grace cannot be negative",
                config_key="scheduler.shutdown_grace_seconds",
            )
        if self.logging.format not in ("json", "text"):
            raise ConfigurationError(
                f"Unknown log format: {self.logging.format}",
                config_key="logging.format",
            )
        if not 0 < self.api.port < 65536:
            raise ConfigurationError("API port out of range", config_key="api.port")

        self.lifecycle.validate()
        self.analytics.validate()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer", config_key=name) from e


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number", config_key=name) from e


__all__ = [
    "SchedulerConfig",
    "LoggingConfig",
    "ApiConfig",
    "SourceConfig",
    "AppConfig",
    "DatabaseConfig",
]
