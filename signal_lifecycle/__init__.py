"""
Signal Lifecycle Package.

============================================================
COMPONENTS
============================================================
- types: Signal, tracking rows, outcome
- state_machine: legal status transitions
- rules: confirmation / invalidation rules, close conditions
- lifecycle: LifecycleManager (applies transitions)
- tracker: Tracker (price ticks and kline tracking)
- resolver: OutcomeResolver (terminal outcome of a CLOSED signal)

The package root only exposes types and configuration; import
components from their modules.
============================================================
"""

from .config import (
    CloseConditionConfig,
    LifecycleConfig,
    ResolverConfig,
    SignalLifecycleConfig,
    TrackerConfig,
)
from .types import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    TRACKABLE_STATUSES,
    Direction,
    ExitReason,
    MarketContext,
    MarketSnapshot,
    OutcomeClassification,
    Signal,
    SignalKlineTracking,
    SignalOutcome,
    SignalStatus,
    SignalTracking,
)


__all__ = [
    "CloseConditionConfig",
    "LifecycleConfig",
    "ResolverConfig",
    "SignalLifecycleConfig",
    "TrackerConfig",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "TRACKABLE_STATUSES",
    "Direction",
    "ExitReason",
    "MarketContext",
    "MarketSnapshot",
    "OutcomeClassification",
    "Signal",
    "SignalKlineTracking",
    "SignalOutcome",
    "SignalStatus",
    "SignalTracking",
]
