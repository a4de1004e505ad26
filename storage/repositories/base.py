"""
Base Repository Class.

============================================================
PURPOSE
============================================================
Common functionality for SQL repositories:
- Session access through the Database
- Error handling wrappers
- Logging setup

============================================================
USAGE
============================================================
class MyRepository(BaseRepository):
    def __init__(self, database: Database):
        super().__init__(database, "my_repository")

    async def count(self) -> int:
        try:
            async with self.session() as session:
                ...
        except SQLAlchemyError as e:
            self._handle_db_error(e, "count")

============================================================
"""

import logging
from typing import NoReturn, Optional

from sqlalchemy.exc import (
    IntegrityError as SQLAlchemyIntegrityError,
    InterfaceError,
    OperationalError,
)

from storage.database import Database
from storage.repositories.exceptions import (
    DuplicateRecordError,
    QueryError,
    StorageConnectionError,
)


class BaseRepository:
    """
    Base class for SQL repositories.

    ============================================================
    RESPONSIBILITIES
    ============================================================
    - Wraps database errors in repository exceptions
    - Manages logging for all operations
    ============================================================
    """

    def __init__(
        self,
        database: Database,
        repository_name: str,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._database = database
        self._repository_name = repository_name
        self._logger = logger or logging.getLogger(f"repository.{repository_name}")

    @property
    def repository_name(self) -> str:
        return self._repository_name

    def session(self):
        """Transactional session scope of the underlying Database."""
        return self._database.session()

    def _handle_db_error(
        self,
        error: Exception,
        operation: str,
        context: Optional[dict] = None,
    ) -> NoReturn:
        """
        Wrap a database error in a repository exception.

        Raises:
            RepositoryException: Always
        """
        context = context or {}
        self._logger.error(
            f"Database error in {operation}: {error}",
            extra={"context": context},
        )

        if isinstance(error, (OperationalError, InterfaceError)):
            raise StorageConnectionError(
                repository_name=self._repository_name,
                operation=operation,
                original_error=str(error),
            ) from error

        if isinstance(error, SQLAlchemyIntegrityError):
            raise DuplicateRecordError(
                repository_name=self._repository_name,
                constraint_field=str(context.get("field", "unknown")),
                value=context.get("value", "unknown"),
            ) from error

        raise QueryError(
            repository_name=self._repository_name,
            operation=operation,
            original_error=str(error),
        ) from error


__all__ = ["BaseRepository"]
