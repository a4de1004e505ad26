"""
Signals Router.

Read-only views over signals, their tracking history and
kline rows. Outcome lookups that fail degrade to "no outcome"
so a listing is never lost to a secondary query.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from core.clock import ensure_utc
from core.exceptions import StorageFailure
from dashboard.dependencies import Envelope, Pagination, get_store, optional_str
from dashboard.errors import bad_request
from dashboard.schemas import PaginationResponse, total_pages
from dashboard.serializers import (
    kline_tracking_to_dict,
    signal_to_dict,
    tracking_to_dict,
)
from signal_lifecycle.types import Direction, SignalOutcome, SignalStatus
from storage.repositories.signal_store import SignalFilter, SignalStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/signals", tags=["Signals"])


async def _outcomes_or_empty(
    store: SignalStore,
    signal_ids: List[str],
) -> Dict[str, SignalOutcome]:
    if not signal_ids:
        return {}
    try:
        return await store.get_outcomes_by_ids(signal_ids)
    except StorageFailure as e:
        logger.warning(f"Outcome lookup failed, listing without outcomes: {e}")
        return {}


@router.get("")
async def list_signals(
    status: Optional[SignalStatus] = None,
    symbol: Optional[str] = None,
    strategy_name: Optional[str] = None,
    type: Optional[Direction] = None,
    start_time: Optional[datetime] = None,
    end_time: Optional[datetime] = None,
    pagination: Pagination = Depends(),
    store: SignalStore = Depends(get_store),
    respond: Envelope = Depends(),
):
    """
    Paginated signal listing, newest first.
    """
    if start_time and end_time and ensure_utc(end_time) < ensure_utc(start_time):
        raise bad_request("end_time must be after start_time")

    filters = SignalFilter(
        status=status,
        symbol=optional_str(symbol),
        strategy_name=optional_str(strategy_name),
        direction=type,
        start_time=ensure_utc(start_time) if start_time else None,
        end_time=ensure_utc(end_time) if end_time else None,
    )
    signals, total = await store.list_signals(filters, pagination.page, pagination.limit)
    outcomes = await _outcomes_or_empty(store, [s.signal_id for s in signals])

    return respond({
        "items": [signal_to_dict(s, outcomes.get(s.signal_id)) for s in signals],
        "pagination": PaginationResponse(
            page=pagination.page,
            limit=pagination.limit,
            total=total,
            total_pages=total_pages(total, pagination.limit),
        ).model_dump(),
    })


@router.get("/active")
async def list_active_signals(
    store: SignalStore = Depends(get_store),
    respond: Envelope = Depends(),
):
    """
    Every PENDING, CONFIRMED or TRACKING signal.
    """
    signals = await store.get_active_signals()
    return respond([signal_to_dict(s) for s in signals])


@router.get("/{signal_id}")
async def get_signal(
    signal_id: str,
    store: SignalStore = Depends(get_store),
    respond: Envelope = Depends(),
):
    signal = await store.get_signal(signal_id)
    outcomes = await _outcomes_or_empty(store, [signal_id])
    return respond(signal_to_dict(signal, outcomes.get(signal_id)))


@router.get("/{signal_id}/tracking")
async def get_signal_tracking(
    signal_id: str,
    store: SignalStore = Depends(get_store),
    respond: Envelope = Depends(),
):
    await store.get_signal(signal_id)
    history = await store.get_tracking_history(signal_id)
    return respond([tracking_to_dict(p) for p in history])


@router.get("/{signal_id}/klines")
async def get_signal_klines(
    signal_id: str,
    store: SignalStore = Depends(get_store),
    respond: Envelope = Depends(),
):
    await store.get_signal(signal_id)
    rows = await store.get_kline_tracking(signal_id)
    return respond([kline_tracking_to_dict(r) for r in rows])
