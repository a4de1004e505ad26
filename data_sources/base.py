"""
Price Source - Abstract interface for market price providers.

The tracker only depends on PriceSource:
- get_current_price(symbol) -> Decimal
- get_klines(symbol, interval, start, end, limit) -> bars ordered
  by open time ascending

HttpPriceSource adds the aiohttp plumbing shared by REST
providers: session management, retry with exponential backoff
and health tracking.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, TypeVar

import aiohttp

from data_sources.exceptions import (
    DataSourceError,
    FetchError,
    RateLimitError,
)
from data_sources.models import (
    Interval,
    Kline,
    SourceHealth,
    SourceStatus,
    utc_now,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")


class PriceSource(ABC):
    """Read-only market data needed by the tracker."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this source."""

    @abstractmethod
    async def get_current_price(self, symbol: str) -> Decimal:
        """
        Latest traded price for symbol.

        Raises:
            DataSourceError: On any provider failure
        """

    @abstractmethod
    async def get_klines(
        self,
        symbol: str,
        interval: Interval,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 500,
    ) -> list[Kline]:
        """
        OHLCV bars ordered by open time ascending.

        Raises:
            DataSourceError: On any provider failure
        """

    async def close(self) -> None:
        """Release resources."""

    async def __aenter__(self) -> "PriceSource":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class HttpPriceSource(PriceSource):
    """
    Base class for REST price providers.

    Features:
    - Automatic retry with exponential backoff
    - Rate limit back-off honouring Retry-After
    - Health tracking
    """

    DEFAULT_TIMEOUT = 10.0
    MAX_RETRIES = 3
    RETRY_BACKOFF_BASE = 2.0
    DEGRADED_THRESHOLD = 3
    UNAVAILABLE_THRESHOLD = 5

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._session = session
        self._owns_session = session is None

        self._health = SourceHealth(status=SourceStatus.UNKNOWN, last_check=utc_now())
        self._request_count = 0
        self._success_count = 0

    async def _with_retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run operation, retrying rate limits, server errors and connection errors."""
        last_error: Optional[DataSourceError] = None

        for attempt in range(self._max_retries):
            try:
                result = await operation()
                self._on_success()
                return result

            except RateLimitError as e:
                wait_time = e.retry_after_seconds or (self.RETRY_BACKOFF_BASE ** attempt)
                logger.warning(
                    f"[{self.name}] Rate limited, waiting {wait_time}s "
                    f"(attempt {attempt + 1}/{self._max_retries})"
                )
                last_error = e

            except FetchError as e:
                if e.is_client_error():
                    self._on_error(e)
                    raise
                wait_time = self.RETRY_BACKOFF_BASE ** attempt
                logger.warning(
                    f"[{self.name}] {e.message}, retrying in {wait_time}s "
                    f"(attempt {attempt + 1}/{self._max_retries})"
                )
                last_error = e

            except DataSourceError as e:
                self._on_error(e)
                raise

            if attempt + 1 < self._max_retries:
                await asyncio.sleep(wait_time)

        error = FetchError(
            message=f"Failed after {self._max_retries} attempts",
            source_name=self.name,
            status_code=getattr(last_error, "status_code", None),
            original_error=last_error,
        )
        self._on_error(error)
        raise error

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers={"Accept": "application/json"},
            )
            self._owns_session = True
        return self._session

    async def _make_request(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """GET url and decode the JSON body."""
        session = await self._get_session()

        start_time = time.monotonic()
        try:
            async with session.get(url, params=params) as response:
                latency_ms = (time.monotonic() - start_time) * 1000

                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise RateLimitError(
                        source_name=self.name,
                        retry_after_seconds=int(retry_after) if retry_after else None,
                        request_url=url,
                    )

                if response.status >= 400:
                    body = await response.text()
                    raise FetchError(
                        message=f"HTTP {response.status}",
                        source_name=self.name,
                        status_code=response.status,
                        response_body=body[:1000],
                        request_url=url,
                    )

                data = await response.json()
                self._health.latency_ms = latency_ms
                logger.debug(f"[{self.name}] Request completed in {latency_ms:.1f}ms")
                return data

        except aiohttp.ClientError as e:
            raise FetchError(
                message=f"Connection error: {e}",
                source_name=self.name,
                request_url=url,
                original_error=e,
            ) from e

    def _on_success(self) -> None:
        self._request_count += 1
        self._success_count += 1
        self._health.consecutive_failures = 0
        self._health.last_check = utc_now()

        if self._health.status != SourceStatus.HEALTHY:
            if self._health.status != SourceStatus.UNKNOWN:
                logger.info(f"[{self.name}] Recovered to HEALTHY status")
            self._health.status = SourceStatus.HEALTHY

    def _on_error(self, error: DataSourceError) -> None:
        self._request_count += 1
        self._health.error_count += 1
        self._health.consecutive_failures += 1
        self._health.last_error = str(error)
        self._health.last_error_time = utc_now()
        self._health.last_check = self._health.last_error_time

        failures = self._health.consecutive_failures
        if failures >= self.UNAVAILABLE_THRESHOLD:
            if self._health.status != SourceStatus.UNAVAILABLE:
                self._health.status = SourceStatus.UNAVAILABLE
                logger.error(f"[{self.name}] Marked UNAVAILABLE after {failures} failures")
        elif failures >= self.DEGRADED_THRESHOLD:
            if self._health.status != SourceStatus.DEGRADED:
                self._health.status = SourceStatus.DEGRADED
                logger.warning(f"[{self.name}] Marked DEGRADED after {failures} failures")

    def get_health(self) -> SourceHealth:
        """Current health, with uptime recomputed from request counts."""
        if self._request_count > 0:
            self._health.uptime_percentage = self._success_count / self._request_count * 100
        return self._health

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, status={self._health.status.value})>"


__all__ = ["PriceSource", "HttpPriceSource"]
