"""
Storage Models Package.

ORM models for the signal engine database.

============================================================
MODEL ORGANIZATION
============================================================

Base (base.py)
- Base
- TimestampMixin

Signals (signals.py)
- SignalRecord
- SignalTrackingRecord
- SignalKlineTrackingRecord
- SignalOutcomeRecord
- StrategyStatisticsRecord

============================================================
"""

from storage.models.base import Base, TimestampMixin
from storage.models.signals import (
    SignalKlineTrackingRecord,
    SignalOutcomeRecord,
    SignalRecord,
    SignalTrackingRecord,
    StrategyStatisticsRecord,
)


__all__ = [
    "Base",
    "TimestampMixin",
    "SignalRecord",
    "SignalTrackingRecord",
    "SignalKlineTrackingRecord",
    "SignalOutcomeRecord",
    "StrategyStatisticsRecord",
]
