"""
Core Module - Clock.

============================================================
RESPONSIBILITY
============================================================
Time source for the signal engine.

- Tracker, lifecycle manager and aggregator read "now" from a
  clock instance handed to them, never from datetime directly
- Interval buckets and hour boundaries are derived here

============================================================
DESIGN PRINCIPLES
============================================================
- UTC only
- Injected, never global
- Mockable for deterministic tests

============================================================
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional
import threading


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Abstract interface for the engine clock."""

    @abstractmethod
    def now(self) -> datetime:
        """Get current UTC datetime."""
        pass

    def timestamp(self) -> float:
        """Get current Unix timestamp."""
        return self.now().timestamp()

    def today(self) -> date:
        """Get current UTC date."""
        return self.now().date()

    def start_of_day(self) -> datetime:
        """Midnight (UTC) of the current day."""
        return self.now().replace(hour=0, minute=0, second=0, microsecond=0)

    def current_hour(self) -> datetime:
        """Current time truncated to the hour."""
        return truncate_to_hour(self.now())


# ============================================================
# SYSTEM CLOCK (PRODUCTION)
# ============================================================

class SystemClock(ClockProtocol):
    """Production clock using actual system time (UTC)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


# ============================================================
# MOCK CLOCK (TESTING)
# ============================================================

class MockClock(ClockProtocol):
    """
    Mock clock for testing.

    Allows time manipulation for deterministic tests.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        """
        Initialize mock clock.

        Args:
            initial_time: Starting time (defaults to current UTC)
        """
        self._time = ensure_utc(initial_time or datetime.now(timezone.utc))
        self._lock = threading.Lock()

    def now(self) -> datetime:
        """Get current (mocked) datetime."""
        with self._lock:
            return self._time

    def set_time(self, new_time: datetime) -> None:
        """Set the current time."""
        with self._lock:
            self._time = ensure_utc(new_time)

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """
        Advance time by the specified amount.

        Args:
            seconds: Number of seconds to advance
            **kwargs: Passed to timedelta (hours, minutes, days, etc.)
        """
        with self._lock:
            self._time = self._time + timedelta(seconds=seconds, **kwargs)


# ============================================================
# TIMESTAMP UTILITIES
# ============================================================

def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def truncate_to_hour(dt: datetime) -> datetime:
    """Drop minutes, seconds and microseconds."""
    return dt.replace(minute=0, second=0, microsecond=0)


def interval_bucket(dt: datetime, interval_seconds: int) -> datetime:
    """
    Start of the fixed-width interval containing dt.

    Buckets are aligned to the Unix epoch so every worker derives
    the same key for the same instant.
    """
    if interval_seconds <= 0:
        raise ValueError("interval_seconds must be positive")
    epoch = int(ensure_utc(dt).timestamp())
    start = epoch - (epoch % interval_seconds)
    return datetime.fromtimestamp(start, tz=timezone.utc)


def hours_between(start: datetime, end: datetime) -> float:
    """Elapsed hours from start to end."""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600.0


def from_milliseconds(ms: int) -> datetime:
    """Exchange millisecond timestamp to aware datetime."""
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def to_milliseconds(dt: datetime) -> int:
    """Aware datetime to exchange millisecond timestamp."""
    return int(ensure_utc(dt).timestamp() * 1000)


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ensure_utc",
    "truncate_to_hour",
    "interval_bucket",
    "hours_between",
    "from_milliseconds",
    "to_milliseconds",
]
