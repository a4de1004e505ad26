"""
Repository Layer Exceptions.

============================================================
PURPOSE
============================================================
Repository-specific exceptions. All database errors are caught
inside the store and re-raised as one of these, so the engine
only ever sees StorageFailure subclasses (plus NotFoundError and
ConflictError from core.exceptions).

============================================================
"""

from typing import Any, Optional

from core.exceptions import StorageFailure


class RepositoryException(StorageFailure):
    """
    Base exception for all repository operations.

    Business layers can catch StorageFailure for generic handling.
    """

    def __init__(
        self,
        message: str,
        repository_name: str,
        operation: str,
        details: Optional[dict] = None
    ) -> None:
        self.repository_name = repository_name
        self.operation = operation
        self.details = details or {}
        super().__init__(
            f"[{repository_name}] {operation}: {message}",
            context=dict(self.details),
        )


class DuplicateRecordError(RepositoryException):
    """
    Raised when attempting to create a duplicate record.

    Tracking inserts treat this as "already recorded"; outcome
    writes without replace=True surface it.
    """

    def __init__(
        self,
        repository_name: str,
        constraint_field: str,
        value: Any
    ) -> None:
        super().__init__(
            message=f"Duplicate record: {constraint_field}={value} already exists",
            repository_name=repository_name,
            operation="create",
            details={"field": constraint_field, "value": str(value)}
        )
        self.constraint_field = constraint_field
        self.value = value


class StorageConnectionError(RepositoryException):
    """Raised when the database connection fails."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Database connection failed: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"original_error": original_error}
        )


class QueryError(RepositoryException):
    """Raised when a query fails to execute."""

    def __init__(
        self,
        repository_name: str,
        operation: str,
        original_error: str
    ) -> None:
        super().__init__(
            message=f"Query failed: {original_error}",
            repository_name=repository_name,
            operation=operation,
            details={"original_error": original_error}
        )


__all__ = [
    "RepositoryException",
    "DuplicateRecordError",
    "StorageConnectionError",
    "QueryError",
]
