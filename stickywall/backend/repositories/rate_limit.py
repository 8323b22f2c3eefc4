"""
Rate Limit Store.

Storage contract for hashed-identity submission records and its SQLAlchemy
implementation. Only the most recent record per identity matters for
eligibility; older records exist until garbage collection.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stickywall.backend.models.rate_limit import RateLimitRecord
from stickywall.backend.repositories.base import BaseRepository


class RateLimitStore(ABC):
    @abstractmethod
    async def most_recent_since(self, identifier_hash: str, since: datetime) -> datetime | None:
        """Timestamp of the newest record for the hash at or after `since`, if any."""

    @abstractmethod
    async def add(self, identifier_hash: str, created_at: datetime, note_ref: str | None) -> None: ...

    @abstractmethod
    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete records created before `cutoff`. Returns the number removed."""


class RateLimitRepository(BaseRepository[RateLimitRecord], RateLimitStore):
    """SQLAlchemy-backed rate limit store."""

    model = RateLimitRecord

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def most_recent_since(self, identifier_hash: str, since: datetime) -> datetime | None:
        result = await self.session.execute(
            select(func.max(RateLimitRecord.created_at))
            .where(RateLimitRecord.identifier_hash == identifier_hash)
            .where(RateLimitRecord.created_at >= since)
        )
        return result.scalar_one_or_none()

    async def add(self, identifier_hash: str, created_at: datetime, note_ref: str | None) -> None:
        await self._insert(
            identifier_hash=identifier_hash,
            created_at=created_at,
            note_ref=note_ref,
        )

    async def delete_older_than(self, cutoff: datetime) -> int:
        result = await self.session.execute(
            delete(RateLimitRecord).where(RateLimitRecord.created_at < cutoff)
        )
        await self.session.flush()
        return result.rowcount or 0
