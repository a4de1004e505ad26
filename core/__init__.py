"""
Core Module Package.

Infrastructure shared by every engine component.

Components:
- clock: Injectable time source and bucket helpers
- exceptions: Engine error kinds
"""

from .clock import (
    ClockProtocol,
    SystemClock,
    MockClock,
    ensure_utc,
    truncate_to_hour,
    interval_bucket,
    hours_between,
)
from .exceptions import (
    SignalEngineError,
    NotFoundError,
    ConflictError,
    TransientSourceFailure,
    ComputationInvariantViolation,
    StorageFailure,
    ConfigurationError,
)


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ensure_utc",
    "truncate_to_hour",
    "interval_bucket",
    "hours_between",
    "SignalEngineError",
    "NotFoundError",
    "ConflictError",
    "TransientSourceFailure",
    "ComputationInvariantViolation",
    "StorageFailure",
    "ConfigurationError",
]
