"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines the error kinds shared by the signal engine.

- Clear exception hierarchy
- Classification drives retry / surface / flag decisions
- Context for debugging

============================================================
EXCEPTION HIERARCHY
============================================================
SignalEngineError (base)
├── NotFoundError
├── ConflictError
├── TransientSourceFailure
├── ComputationInvariantViolation
├── StorageFailure
└── ConfigurationError

============================================================
PROPAGATION
============================================================
- TransientSourceFailure: retried on the next tick, never
  reaches read-side callers
- ConflictError: losing writer discards its attempt
- NotFoundError, StorageFailure: surfaced to the read facade
- ComputationInvariantViolation: logged, signal flagged for
  manual inspection, never retried

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for logging."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """How the engine reacts to an error."""

    TRANSIENT = "transient"
    """Temporary error, the next scheduled tick retries."""

    RESOLVED_LOCALLY = "resolved_locally"
    """Handled by the component that raised it, never surfaced."""

    SURFACED = "surfaced"
    """Propagates to the read facade."""

    FATAL = "fatal"
    """Indicates a bug; requires manual inspection."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class SignalEngineError(Exception):
    """
    Base exception for all signal engine errors.

    All exceptions carry:
    - severity: for logging
    - classification: for propagation decisions
    - context: for debugging
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.SURFACED

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        severity: Optional[Severity] = None,
    ):
        super().__init__(message)

        self.message = message
        self.context = context or {}
        self.cause = cause
        self.severity = severity or self.default_severity
        self.classification = self.default_classification
        self.timestamp = datetime.now(timezone.utc)

        if cause is not None:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_retryable(self) -> bool:
        """Whether the next scheduled run should simply try again."""
        return self.classification == ErrorClassification.TRANSIENT

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        if not self.context:
            return self.message
        ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({ctx})"


# ============================================================
# ERROR KINDS
# ============================================================

class NotFoundError(SignalEngineError):
    """Unknown signal_id."""

    default_severity = Severity.LOW

    def __init__(self, entity: str, key: Any, **kwargs):
        context = kwargs.pop("context", {})
        context.update({"entity": entity, "key": key})
        super().__init__(f"{entity} not found: {key}", context=context, **kwargs)
        self.entity = entity
        self.key = key


class ConflictError(SignalEngineError):
    """Optimistic-concurrency mismatch on a status transition."""

    default_severity = Severity.LOW
    default_classification = ErrorClassification.RESOLVED_LOCALLY

    def __init__(
        self,
        signal_id: str,
        expected_status: Any,
        actual_status: Any,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        context.update({
            "signal_id": signal_id,
            "expected": getattr(expected_status, "value", expected_status),
            "actual": getattr(actual_status, "value", actual_status),
        })
        super().__init__(
            f"Status conflict on signal {signal_id}",
            context=context,
            **kwargs,
        )
        self.signal_id = signal_id
        self.expected_status = expected_status
        self.actual_status = actual_status


class TransientSourceFailure(SignalEngineError):
    """Price or kline fetch error or timeout."""

    default_classification = ErrorClassification.TRANSIENT

    def __init__(self, message: str, symbol: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if symbol:
            context["symbol"] = symbol
        super().__init__(message, context=context, **kwargs)
        self.symbol = symbol


class ComputationInvariantViolation(SignalEngineError):
    """A computation was asked to run on data that breaks a lifecycle invariant."""

    default_severity = Severity.CRITICAL
    default_classification = ErrorClassification.FATAL

    def __init__(self, message: str, signal_id: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if signal_id:
            context["signal_id"] = signal_id
        super().__init__(message, context=context, **kwargs)
        self.signal_id = signal_id


class StorageFailure(SignalEngineError):
    """Persistence I/O error."""

    default_severity = Severity.HIGH


class ConfigurationError(SignalEngineError):
    """Invalid configuration value."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.FATAL

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if config_key:
            context["config_key"] = config_key
        super().__init__(message, context=context, **kwargs)


__all__ = [
    "Severity",
    "ErrorClassification",
    "SignalEngineError",
    "NotFoundError",
    "ConflictError",
    "TransientSourceFailure",
    "ComputationInvariantViolation",
    "StorageFailure",
    "ConfigurationError",
]
