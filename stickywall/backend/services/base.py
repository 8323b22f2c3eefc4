"""
Base Service.

Base class for services. Services receive their stores and collaborators
through the constructor, orchestrate them, and enforce business rules.

Usage:
    from stickywall.backend.services.base import BaseService

    class NoteService(BaseService):
        def __init__(self, notes: NoteStore) -> None:
            super().__init__()
            self.notes = notes
"""

from collections.abc import Awaitable
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError

from stickywall.backend.core.exceptions import DatabaseError
from stickywall.backend.core.logging import get_logger

T = TypeVar("T")


class BaseService:
    """
    Base class for all services.

    Provides:
    - Logging with the service name attached
    - Conversion of storage driver errors into DatabaseError
    """

    def __init__(self) -> None:
        self._logger = get_logger(self.__class__.__module__)

    async def _store_call(self, operation: str, awaitable: Awaitable[T]) -> T:
        """
        Await a store operation, converting driver errors.

        Application errors raised by the store (ConflictError and friends)
        pass through unchanged.

        Raises:
            DatabaseError: For SQLAlchemy errors
        """
        try:
            return await awaitable
        except SQLAlchemyError as e:
            self._logger.error(
                "Database error",
                extra={"operation": operation, "error": str(e)},
            )
            raise DatabaseError(f"Database operation failed: {operation}") from e

    def _log_operation(self, operation: str, **context) -> None:
        self._logger.info(
            operation,
            extra={"service": self.__class__.__name__, **context},
        )

    def _log_debug(self, message: str, **context) -> None:
        self._logger.debug(
            message,
            extra={"service": self.__class__.__name__, **context},
        )
