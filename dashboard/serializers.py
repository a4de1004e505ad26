"""
Dashboard - Serializers.

Turns engine dataclasses into JSON-ready dicts. Decimals are
rendered as strings so no precision is lost on the wire.
"""

from dataclasses import asdict
from typing import Any, Dict, List, Optional

from performance_analytics.types import Statistics
from signal_lifecycle.types import (
    Signal,
    SignalKlineTracking,
    SignalOutcome,
    SignalTracking,
    to_jsonable,
)


def signal_to_dict(
    signal: Signal,
    outcome: Optional[SignalOutcome] = None,
) -> Dict[str, Any]:
    data = to_jsonable(asdict(signal))
    # Listings use "type" for the direction, as the query filter does
    data["type"] = data.pop("direction")
    data["is_confirmed"] = signal.confirmed_at is not None
    data["outcome"] = outcome_to_dict(outcome) if outcome else None
    return data


def outcome_to_dict(outcome: SignalOutcome) -> Dict[str, Any]:
    return to_jsonable(outcome.to_dict())


def tracking_to_dict(point: SignalTracking) -> Dict[str, Any]:
    return to_jsonable(asdict(point))


def kline_tracking_to_dict(row: SignalKlineTracking) -> Dict[str, Any]:
    return to_jsonable(asdict(row))


def statistics_to_dict(stats: Statistics) -> Dict[str, Any]:
    data = to_jsonable(stats.to_dict())
    data["scope"] = stats.scope.label()
    return data


def statistics_list(stats: List[Statistics]) -> List[Dict[str, Any]]:
    return [statistics_to_dict(s) for s in stats]
