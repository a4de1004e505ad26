"""
Dashboard - API Errors.

============================================================
ERROR CODES
============================================================
400 BadRequest      invalid query parameters
404 NotFound        unknown signal
500 InternalServerError
501 DatabaseError   storage unavailable or failing
============================================================
"""

import logging
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from core.exceptions import NotFoundError, StorageFailure
from dashboard.schemas import ApiResponse, ErrorInfo

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Error carrying the HTTP code and envelope type."""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str,
        details: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details or []


def bad_request(message: str, *details: str) -> ApiError:
    return ApiError(400, message, "BadRequest", list(details))


def not_found(message: str) -> ApiError:
    return ApiError(404, message, "NotFound")


def database_error(message: str) -> ApiError:
    return ApiError(501, message, "DatabaseError")


def error_response(request: Request, error: ApiError) -> JSONResponse:
    body = ApiResponse(
        code=error.code,
        message=error.message,
        error=ErrorInfo(type=error.error_type, details=error.details),
        timestamp=int(request.app.state.clock.timestamp()),
    )
    return JSONResponse(status_code=error.code, content=body.model_dump(exclude_none=True))


def register_exception_handlers(app: FastAPI) -> None:
    """Map engine and validation errors onto the response envelope."""

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError):
        return error_response(request, exc)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return error_response(request, not_found(exc.message))

    @app.exception_handler(StorageFailure)
    async def handle_storage_failure(request: Request, exc: StorageFailure):
        logger.error(f"Storage failure on {request.url.path}: {exc}")
        return error_response(request, database_error("Failed to retrieve data"))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        details = [
            f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}"
            for err in exc.errors()
        ]
        return error_response(request, bad_request("Invalid query parameters", *details))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.url.path}")
        return error_response(request, ApiError(500, "Internal server error", "InternalServerError"))
