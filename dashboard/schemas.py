"""
Pydantic schemas for Dashboard API responses.
"""
from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100


# =======================
# COMMON
# =======================

class ErrorInfo(BaseModel):
    type: str
    details: List[str] = []


class ApiResponse(BaseModel):
    """Envelope shared by every endpoint."""
    code: int
    message: str
    data: Optional[Any] = None
    error: Optional[ErrorInfo] = None
    timestamp: int


# =======================
# PAGINATION
# =======================

class PaginationResponse(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class PaginatedResponse(BaseModel, Generic[T]):
    items: List[T]
    pagination: PaginationResponse


def total_pages(total: int, limit: int) -> int:
    if limit <= 0:
        return 0
    pages, remainder = divmod(total, limit)
    return pages + 1 if remainder else pages


# =======================
# STATISTICS OVERVIEW
# =======================

class StatusDistribution(BaseModel):
    pending: int = 0
    confirmed: int = 0
    tracking: int = 0
    closed: int = 0
    invalidated: int = 0


class OverviewStatistics(BaseModel):
    total_signals_today: int
    active_signals: int
    overall_win_rate_24h: Optional[str] = "0"
    avg_return_pct_24h: Optional[str] = "0"
    top_performing_pair: str = "-"
    worst_performing_pair: str = "-"
    status_distribution: StatusDistribution


# =======================
# HEALTH
# =======================

class HealthStatus(BaseModel):
    status: str
    version: str
    database: str
    uptime_seconds: float
