"""
Orchestrator Package - Process Coordination Layer.

============================================================
PACKAGE OVERVIEW
============================================================
Single entrypoint that wires the engine, runs its workers and
serves the read API. Holds no business logic.

============================================================
ARCHITECTURE
============================================================

    +-----------------------------------------------------+
    |                     SignalEngine                    |
    |-----------------------------------------------------|
    |  AppConfig      |  env + .env driven settings      |
    |  Scheduler      |  tracking / klines / statistics  |
    |  CLI            |  run, serve, aggregate, track    |
    +-----------------------------------------------------+

============================================================
USAGE
============================================================
    python -m orchestrator.cli run
    python -m orchestrator.cli serve
============================================================
"""

from .config import (
    ApiConfig,
    AppConfig,
    LoggingConfig,
    SchedulerConfig,
    SourceConfig,
)

__all__ = [
    "ApiConfig",
    "AppConfig",
    "LoggingConfig",
    "SchedulerConfig",
    "SourceConfig",
]
