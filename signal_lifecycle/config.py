"""
Signal Lifecycle - Configuration.

============================================================
PURPOSE
============================================================
Configuration for the lifecycle manager, tracker and
outcome resolver.

Close-condition thresholds are defaults only: a signal's
config_snapshot (profit_target_pct, stop_loss_pct,
tracking_hours) overrides them per signal.

============================================================
"""

from dataclasses import dataclass, field
from decimal import Decimal

from core.exceptions import ConfigurationError


# ============================================================
# CLOSE CONDITIONS
# ============================================================

@dataclass
class CloseConditionConfig:
    """Default close-condition thresholds."""

    profit_target_pct: Decimal = Decimal("5.0")
    """Take profit when the direction-adjusted change reaches this."""

    stop_loss_pct: Decimal = Decimal("2.0")
    """Stop out when the direction-adjusted change falls to minus this."""

    tracking_hours: int = 24
    """Close after this many hours since generation."""


# ============================================================
# LIFECYCLE CONFIGURATION
# ============================================================

@dataclass
class LifecycleConfig:
    """Lifecycle manager configuration."""

    close: CloseConditionConfig = field(default_factory=CloseConditionConfig)

    confirmation_hours: int = 2
    """Default confirmation window length for signals created without one."""


# ============================================================
# TRACKER CONFIGURATION
# ============================================================

@dataclass
class TrackerConfig:
    """Tracker configuration."""

    tracking_interval_seconds: int = 300
    """Width of the idempotency bucket for price ticks."""

    kline_interval: str = "1h"
    """Kline interval sampled for kline tracking."""

    kline_limit: int = 500
    """Maximum bars requested per symbol per kline run."""

    price_timeout_seconds: float = 10.0
    """Bound on every price-source call."""

    max_concurrent_ticks: int = 8
    """Tracking worker pool size."""


# ============================================================
# RESOLVER CONFIGURATION
# ============================================================

@dataclass
class ResolverConfig:
    """Outcome resolver configuration."""

    breakeven_epsilon_pct: Decimal = Decimal("0.01")
    """|final_pnl_pct| at or below this classifies as BREAKEVEN."""


# ============================================================
# MASTER CONFIGURATION
# ============================================================

@dataclass
class SignalLifecycleConfig:
    """Master configuration for the lifecycle engine."""

    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)

    def validate(self) -> None:
        """Raise ConfigurationError on impossible values."""
        if self.tracker.tracking_interval_seconds <= 0:
            raise ConfigurationError(
                "tracking interval must be positive",
                config_key="tracker.tracking_interval_seconds",
            )
        if self.tracker.price_timeout_seconds <= 0:
            raise ConfigurationError(
                "price timeout must be positive",
                config_key="tracker.price_timeout_seconds",
            )
        if self.tracker.max_concurrent_ticks < 1:
            raise ConfigurationError(
                "at least one tracking worker is required",
                config_key="tracker.max_concurrent_ticks",
            )
        if self.resolver.breakeven_epsilon_pct < 0:
            raise ConfigurationError(
                "breakeven epsilon cannot be negative",
                config_key="resolver.breakeven_epsilon_pct",
            )
        close = self.lifecycle.close
        if close.profit_target_pct <= 0 or close.stop_loss_pct <= 0:
            raise ConfigurationError(
                "profit target and stop loss must be positive",
                config_key="lifecycle.close",
            )
        if close.tracking_hours <= 0:
            raise ConfigurationError(
                "tracking hours must be positive",
                config_key="lifecycle.close.tracking_hours",
            )

    @classmethod
    def for_testing(cls) -> "SignalLifecycleConfig":
        """Short intervals and a tight timeout for tests."""
        return cls(
            tracker=TrackerConfig(
                tracking_interval_seconds=60,
                price_timeout_seconds=1.0,
                max_concurrent_ticks=4,
            ),
        )
