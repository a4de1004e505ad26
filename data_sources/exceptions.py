"""
Data Source Exceptions - Error hierarchy for price sources.

Every data source error is a TransientSourceFailure: the caller
skips the affected signal or symbol and retries on the next
scheduled run.
"""

from typing import Any, Optional

from core.exceptions import TransientSourceFailure


class DataSourceError(TransientSourceFailure):
    """Base exception for all price source errors."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        symbol: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        context = dict(context or {})
        if source_name:
            context["source"] = source_name
        super().__init__(message, symbol=symbol, context=context, cause=original_error)
        self.source_name = source_name
        self.original_error = original_error


class FetchError(DataSourceError):
    """HTTP or connection error talking to the provider."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
        symbol: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        context: dict[str, Any] = {}
        if status_code is not None:
            context["status_code"] = status_code
        if request_url:
            context["url"] = request_url
        super().__init__(
            message,
            source_name=source_name,
            symbol=symbol,
            original_error=original_error,
            context=context,
        )
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url

    def is_server_error(self) -> bool:
        """5xx responses are worth retrying."""
        return self.status_code is not None and self.status_code >= 500

    def is_client_error(self) -> bool:
        return self.status_code is not None and 400 <= self.status_code < 500


class RateLimitError(FetchError):
    """Provider answered 429."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        source_name: Optional[str] = None,
        retry_after_seconds: Optional[int] = None,
        request_url: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            source_name=source_name,
            status_code=429,
            request_url=request_url,
        )
        self.retry_after_seconds = retry_after_seconds


class NormalizationError(DataSourceError):
    """Provider payload could not be converted to prices or bars."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        raw_data: Any = None,
        symbol: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            message,
            source_name=source_name,
            symbol=symbol,
            original_error=original_error,
        )
        self.raw_data = raw_data


__all__ = [
    "DataSourceError",
    "FetchError",
    "RateLimitError",
    "NormalizationError",
]
