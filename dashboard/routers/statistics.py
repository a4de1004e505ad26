"""
Statistics Router.

Serves the snapshots written by the statistics aggregator plus an
overview computed on the fly for the dashboard landing page.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from core.clock import ClockProtocol, ensure_utc
from dashboard.dependencies import Envelope, get_clock, get_store, optional_str
from dashboard.errors import bad_request
from dashboard.schemas import OverviewStatistics, StatusDistribution
from dashboard.serializers import statistics_list
from performance_analytics.types import Period, Statistics
from signal_lifecycle.types import HUNDRED, SignalStatus, quantize_pct
from storage.repositories.signal_store import SignalStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/statistics", tags=["Statistics"])

MIN_COMPARE_STRATEGIES = 2
MAX_COMPARE_STRATEGIES = 5


def _parse_period(label: Optional[str], default: Optional[str] = "all") -> str:
    label = optional_str(label) or default
    if label is None:
        raise bad_request("period is required", "period must be one of 24h, 7d, 30d, all")
    try:
        return Period.parse(label).value
    except ValueError:
        raise bad_request("Invalid period parameter", "period must be one of 24h, 7d, 30d, all")


def _split_list(values: Optional[List[str]]) -> List[str]:
    """Accept both repeated parameters and comma separated values."""
    items: List[str] = []
    for value in values or []:
        items.extend(part.strip() for part in value.split(",") if part.strip())
    return list(dict.fromkeys(items))


# =======================
# OVERVIEW
# =======================

def _weighted_return(stats: Statistics) -> Optional[Decimal]:
    """Sum of returns of the decisive signals of a snapshot."""
    if stats.avg_profit_pct is None and stats.avg_loss_pct is None:
        return None
    profit = (stats.avg_profit_pct or Decimal("0")) * stats.profitable_signals
    loss = (stats.avg_loss_pct or Decimal("0")) * stats.losing_signals
    return profit - loss


def build_overview(
    today_signals,
    active_count: int,
    snapshots: List[Statistics],
) -> OverviewStatistics:
    """
    Combine today's signals and the latest snapshots into the overview.

    Win rate and average return come from the per-strategy scopes
    (symbol unset, strategy set) so every signal is counted once.
    Pair rankings come from the strategy+symbol scopes grouped by
    symbol, ranked by average return per decisive signal.
    """
    distribution = StatusDistribution()
    for signal in today_signals:
        name = signal.status.value.lower()
        setattr(distribution, name, getattr(distribution, name) + 1)

    overview = OverviewStatistics(
        total_signals_today=len(today_signals),
        active_signals=active_count,
        status_distribution=distribution,
    )

    strategy_level = [s for s in snapshots if s.strategy_name is not None and s.symbol is None]
    if not strategy_level:
        strategy_level = [s for s in snapshots if s.strategy_name is None and s.symbol is None]

    decisive = 0
    profitable = 0
    total_return = Decimal("0")
    for stats in strategy_level:
        count = stats.profitable_signals + stats.losing_signals
        if count == 0:
            continue
        decisive += count
        profitable += stats.profitable_signals
        total_return += _weighted_return(stats) or Decimal("0")

    if decisive > 0:
        overview.overall_win_rate_24h = str(quantize_pct(Decimal(profitable) / decisive * HUNDRED))
        overview.avg_return_pct_24h = str(quantize_pct(total_return / decisive))

    pair_returns: Dict[str, Decimal] = {}
    pair_counts: Dict[str, int] = {}
    for stats in snapshots:
        if stats.symbol is None:
            continue
        count = stats.profitable_signals + stats.losing_signals
        weighted = _weighted_return(stats)
        if count == 0 or weighted is None:
            continue
        pair_returns[stats.symbol] = pair_returns.get(stats.symbol, Decimal("0")) + weighted
        pair_counts[stats.symbol] = pair_counts.get(stats.symbol, 0) + count

    if pair_returns:
        averages = {
            symbol: pair_returns[symbol] / pair_counts[symbol]
            for symbol in sorted(pair_returns)
        }
        overview.top_performing_pair = max(averages, key=lambda s: averages[s])
        overview.worst_performing_pair = min(averages, key=lambda s: averages[s])

    return overview


@router.get("/overview")
async def get_overview(
    store: SignalStore = Depends(get_store),
    respond: Envelope = Depends(),
    clock: ClockProtocol = Depends(get_clock),
):
    """
    Dashboard overview: today's activity plus 24h performance.
    """
    now = clock.now()
    today_signals = await store.get_signals_generated_between(clock.start_of_day(), now)
    active = await store.get_active_signals()

    snapshots = await store.get_latest_statistics(period_label=Period.LAST_24H.value)
    if not snapshots:
        logger.info("No 24h statistics found, falling back to 'all' period")
        snapshots = await store.get_latest_statistics(period_label=Period.ALL.value)

    overview = build_overview(today_signals, len(active), snapshots)
    return respond(overview.model_dump())


# =======================
# SNAPSHOTS
# =======================

@router.get("/strategies")
async def get_strategy_statistics(
    period: Optional[str] = None,
    strategy: Optional[str] = None,
    store: SignalStore = Depends(get_store),
    respond: Envelope = Depends(),
):
    """
    Latest per-strategy snapshots (symbol unset) for a period.
    """
    label = _parse_period(period)
    stats = await store.get_latest_statistics(
        period_label=label,
        strategy_name=optional_str(strategy),
    )
    return respond(statistics_list([s for s in stats if s.symbol is None]))


@router.get("/symbols")
async def get_symbol_statistics(
    period: Optional[str] = None,
    strategy: Optional[str] = None,
    symbol: Optional[str] = None,
    store: SignalStore = Depends(get_store),
    respond: Envelope = Depends(),
):
    """
    Latest strategy+symbol snapshots for a period.
    """
    label = _parse_period(period)
    symbol = optional_str(symbol)
    stats = await store.get_latest_statistics(
        period_label=label,
        strategy_name=optional_str(strategy),
    )
    filtered = [
        s for s in stats
        if s.symbol is not None and (symbol is None or s.symbol == symbol)
    ]
    return respond(statistics_list(filtered))


@router.get("/history")
async def get_statistics_history(
    start_time: Optional[datetime] = None,
    end_time: Optional[datetime] = None,
    strategy: Optional[str] = None,
    symbol: Optional[str] = None,
    store: SignalStore = Depends(get_store),
    respond: Envelope = Depends(),
):
    """
    Every snapshot calculated within [start_time, end_time].
    """
    if start_time is None or end_time is None:
        raise bad_request("start_time and end_time are required")
    start, end = ensure_utc(start_time), ensure_utc(end_time)
    if end < start:
        raise bad_request("end_time must be after start_time")

    stats = await store.get_statistics_history(
        start,
        end,
        strategy_name=optional_str(strategy),
        symbol=optional_str(symbol),
    )
    return respond(statistics_list(stats))


@router.get("/compare")
async def compare_strategies(
    strategies: Optional[List[str]] = Query(None),
    period: Optional[str] = None,
    symbols: Optional[List[str]] = Query(None),
    store: SignalStore = Depends(get_store),
    respond: Envelope = Depends(),
):
    """
    Side by side snapshots of 2 to 5 strategies.

    Without symbols each strategy contributes its strategy-level
    snapshot; with symbols, its snapshots for those symbols.
    """
    names = _split_list(strategies)
    if not MIN_COMPARE_STRATEGIES <= len(names) <= MAX_COMPARE_STRATEGIES:
        raise bad_request(
            "Invalid strategies parameter",
            f"between {MIN_COMPARE_STRATEGIES} and {MAX_COMPARE_STRATEGIES} strategies are required",
        )
    label = _parse_period(period, default=None)
    wanted_symbols = set(_split_list(symbols))

    comparison = []
    for name in names:
        stats = await store.get_latest_statistics(period_label=label, strategy_name=name)
        if wanted_symbols:
            selected = [s for s in stats if s.symbol in wanted_symbols]
        else:
            selected = [s for s in stats if s.symbol is None]
        comparison.append({
            "strategy_name": name,
            "statistics": statistics_list(selected),
        })

    return respond({
        "period": label,
        "symbols": sorted(wanted_symbols),
        "strategies": comparison,
    })
