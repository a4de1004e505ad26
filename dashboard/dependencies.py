"""
Dashboard - Dependencies.

The store and clock are attached to app.state by create_app and
resolved per request.
"""

from typing import Any, Dict, Optional

from fastapi import Query, Request

from core.clock import ClockProtocol
from dashboard.errors import bad_request
from dashboard.schemas import DEFAULT_LIMIT, DEFAULT_PAGE, MAX_LIMIT
from storage.repositories.signal_store import SignalStore


def get_store(request: Request) -> SignalStore:
    return request.app.state.store


def get_clock(request: Request) -> ClockProtocol:
    return request.app.state.clock


class Pagination:
    """Page/limit query parameters; oversized limits are clamped."""

    def __init__(
        self,
        page: int = Query(DEFAULT_PAGE),
        limit: int = Query(DEFAULT_LIMIT),
    ):
        if page < 1:
            raise bad_request("Invalid page parameter", "page must be a positive integer")
        if limit < 1:
            raise bad_request("Invalid limit parameter", "limit must be a positive integer")
        self.page = page
        self.limit = min(limit, MAX_LIMIT)


class Envelope:
    """Success envelope stamped with the app clock."""

    def __init__(self, request: Request):
        self._clock = get_clock(request)

    def __call__(self, data: Any = None, message: str = "success", code: int = 200) -> Dict[str, Any]:
        return {
            "code": code,
            "message": message,
            "data": data,
            "timestamp": int(self._clock.timestamp()),
        }


def optional_str(value: Optional[str]) -> Optional[str]:
    """Treat empty query strings as absent."""
    if value is None or value.strip() == "":
        return None
    return value.strip()
