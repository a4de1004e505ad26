"""
Signal Lifecycle - Signal State Machine.

============================================================
PURPOSE
============================================================
Legal status transitions and the guards that enforce them.

STATE MACHINE:

    PENDING ─────────────► INVALIDATED
       │                       ▲
       ▼                       │
    CONFIRMED                  │
       │                       │
       ▼                       │
    TRACKING ──────────────────┘
       │
       ▼
    CLOSED

INVARIANTS:
- Terminal states are final
- confirmed_at is set once a signal has passed CONFIRMED
- closed_at is set iff status is CLOSED

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional, Tuple

from .types import Signal, SignalStatus


# ============================================================
# STATE TRANSITION RULES
# ============================================================

VALID_TRANSITIONS: Dict[SignalStatus, FrozenSet[SignalStatus]] = {
    SignalStatus.PENDING: frozenset({
        SignalStatus.CONFIRMED,
        SignalStatus.INVALIDATED,
    }),
    SignalStatus.CONFIRMED: frozenset({
        SignalStatus.TRACKING,
    }),
    SignalStatus.TRACKING: frozenset({
        SignalStatus.CLOSED,
        SignalStatus.INVALIDATED,
    }),
    # Terminal states - no transitions out
    SignalStatus.CLOSED: frozenset(),
    SignalStatus.INVALIDATED: frozenset(),
}


# ============================================================
# STATE TRANSITION EVENT
# ============================================================

@dataclass
class StateTransitionEvent:
    """Event representing an applied transition."""

    signal_id: str
    """Signal ID."""

    from_status: SignalStatus
    """Previous status."""

    to_status: SignalStatus
    """New status."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    """When the transition was applied."""

    reason: str = ""
    """Reason for transition."""

    details: Dict[str, Any] = field(default_factory=dict)
    """Additional details."""


# ============================================================
# STATE TRANSITION GUARD
# ============================================================

class TransitionGuard:
    """
    Guard for status transitions.

    Ensures transitions are valid and provides reason for denial.
    """

    @staticmethod
    def can_transition(
        from_status: SignalStatus,
        to_status: SignalStatus,
    ) -> Tuple[bool, str]:
        """
        Check if transition is allowed.

        Args:
            from_status: Current status
            to_status: Target status

        Returns:
            Tuple of (allowed, reason)
        """
        if to_status in VALID_TRANSITIONS.get(from_status, frozenset()):
            return True, "Valid transition"

        if from_status.is_terminal():
            return False, f"Cannot transition from terminal status {from_status.value}"

        return False, f"Invalid transition: {from_status.value} -> {to_status.value}"

    @staticmethod
    def validate_signal_for_status(
        signal: Signal,
        target_status: SignalStatus,
        has_outcome: bool = False,
    ) -> Tuple[bool, str]:
        """
        Validate signal data for the target status.

        Args:
            signal: Signal as it will be stored after the transition
            target_status: Target status
            has_outcome: Whether an outcome is written with the transition

        Returns:
            Tuple of (valid, reason)
        """
        passed_confirmation = target_status in (
            SignalStatus.CONFIRMED,
            SignalStatus.TRACKING,
            SignalStatus.CLOSED,
        )
        if passed_confirmation and signal.confirmed_at is None:
            return False, f"Missing confirmed_at for {target_status.value}"

        if target_status is SignalStatus.CLOSED:
            if signal.closed_at is None:
                return False, "Missing closed_at for CLOSED"
            if not has_outcome:
                return False, "CLOSED requires an outcome in the same transaction"
        elif signal.closed_at is not None:
            return False, f"closed_at must be empty for {target_status.value}"

        if target_status is SignalStatus.INVALIDATED and signal.invalidated_at is None:
            return False, "Missing invalidated_at for INVALIDATED"

        return True, "Valid"


def next_statuses(status: SignalStatus) -> FrozenSet[SignalStatus]:
    """Statuses reachable from status in one step."""
    return VALID_TRANSITIONS.get(status, frozenset())


def describe_transition(
    signal: Signal,
    to_status: SignalStatus,
    reason: str,
    details: Optional[Dict[str, Any]] = None,
    at: Optional[datetime] = None,
) -> StateTransitionEvent:
    """Build the event for a transition of signal."""
    event = StateTransitionEvent(
        signal_id=signal.signal_id,
        from_status=signal.status,
        to_status=to_status,
        reason=reason,
        details=details or {},
    )
    if at is not None:
        event.timestamp = at
    return event


__all__ = [
    "VALID_TRANSITIONS",
    "StateTransitionEvent",
    "TransitionGuard",
    "next_statuses",
    "describe_transition",
]
