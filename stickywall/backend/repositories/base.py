"""
Base Repository.

Base class for SQLAlchemy repositories with the shared session plumbing.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from stickywall.backend.core.exceptions import ConflictError
from stickywall.backend.core.logging import get_logger
from stickywall.backend.models.base import Base

logger = get_logger(__name__)

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository with common persistence helpers.

    Subclasses set the model class:

        class NoteRepository(BaseRepository[Note]):
            model = Note
    """

    model: type[ModelType]

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_one_by(self, **filters: Any) -> ModelType | None:
        """Get a single record matching all equality filters, or None."""
        stmt = select(self.model)
        for column, value in filters.items():
            stmt = stmt.where(getattr(self.model, column) == value)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _insert(self, **kwargs: Any) -> ModelType:
        """
        Insert a new record inside a savepoint.

        A unique-constraint violation rolls back only the savepoint, leaving
        the outer session usable, and is reported as ConflictError.
        """
        instance = self.model(**kwargs)
        try:
            async with self.session.begin_nested():
                self.session.add(instance)
                await self.session.flush()
        except IntegrityError as e:
            logger.warning(
                "Insert rejected by constraint",
                extra={"model": self.model.__name__, "error": str(e.orig)},
            )
            raise ConflictError(f"{self.model.__name__} already exists") from e
        await self.session.refresh(instance)
        return instance
