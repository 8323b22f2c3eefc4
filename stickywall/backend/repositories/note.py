"""
Note Store.

Storage contract for notes and its SQLAlchemy implementation. The contract
is shared with the in-memory store in repositories/memory.py so that services
receive one injected implementation and never reach for global state.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from sqlalchemy import and_, case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stickywall.backend.core.logging import get_logger
from stickywall.backend.models.note import PUBLIC_STATUSES, ModerationStatus, Note
from stickywall.backend.repositories.base import BaseRepository

logger = get_logger(__name__)

NEWEST_FIRST_STATUSES = frozenset({
    ModerationStatus.PENDING.value,
    ModerationStatus.FLAGGED.value,
})
"""Review queues are served newest-first; the archive statuses are FIFO."""


@dataclass(frozen=True)
class RegionBounds:
    """Axis-aligned query rectangle on the wall."""

    min_x: float
    max_x: float
    min_y: float
    max_y: float

    def padded(self, padding: float) -> "RegionBounds":
        return RegionBounds(
            min_x=self.min_x - padding,
            max_x=self.max_x + padding,
            min_y=self.min_y - padding,
            max_y=self.max_y + padding,
        )

    def contains(self, x: float, y: float) -> bool:
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y


@dataclass(frozen=True)
class FlagResult:
    visible_id: str
    flag_count: int
    moderation_status: str


@dataclass(frozen=True)
class NoteDeletion:
    """Outcome of a delete. `image_ref` lets the caller release the image."""

    success: bool
    image_ref: str | None = None


@dataclass(frozen=True)
class NoteStats:
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    flagged: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.approved + self.rejected + self.flagged

    @classmethod
    def from_counts(cls, counts: dict[str, int]) -> "NoteStats":
        return cls(**{status.value: counts.get(status.value, 0) for status in ModerationStatus})


def escalated_status(current_status: str, new_flag_count: int, threshold: int) -> str:
    """Status after a flag: approved notes crossing the threshold become flagged."""
    if current_status == ModerationStatus.APPROVED.value and new_flag_count >= threshold:
        return ModerationStatus.FLAGGED.value
    return current_status


def sort_for_status(notes: list[Note], status: str | None) -> list[Note]:
    """Order a moderation listing: newest-first for review queues, oldest-first otherwise."""
    newest_first = status in NEWEST_FIRST_STATUSES
    return sorted(notes, key=lambda n: n.created_at, reverse=newest_first)


class NoteStore(ABC):
    """Durable note storage keyed by the public visible id."""

    @abstractmethod
    async def create(
        self,
        *,
        visible_id: str,
        image_ref: str,
        color: str,
        x: float,
        y: float,
        rotation: float,
        moderation_status: str,
        owner_identity: str,
    ) -> Note:
        """Persist a new note. Raises ConflictError on a duplicate visible id."""

    @abstractmethod
    async def get(self, visible_id: str) -> Note | None: ...

    @abstractmethod
    async def list_public(self) -> list[Note]:
        """Every approved or pending note."""

    @abstractmethod
    async def list_in_region(self, bounds: RegionBounds, padding: float = 0.0) -> list[Note]:
        """Approved or pending notes inside `bounds` grown by `padding` on every side."""

    @abstractmethod
    async def list_by_status(self, status: str | None = None) -> list[Note]: ...

    @abstractmethod
    async def list_by_owner(self, owner_identity: str) -> list[Note]: ...

    @abstractmethod
    async def update_status(self, visible_id: str, status: str) -> Note | None:
        """Set the moderation status. Returns None when the note does not exist."""

    @abstractmethod
    async def flag(self, visible_id: str, threshold: int) -> FlagResult | None:
        """
        Atomically increment the flag count and escalate approved notes that
        reach `threshold` to flagged. Returns None when the note does not exist.
        """

    @abstractmethod
    async def delete(self, visible_id: str) -> NoteDeletion: ...

    @abstractmethod
    async def stats(self) -> NoteStats: ...


class NoteRepository(BaseRepository[Note], NoteStore):
    """SQLAlchemy-backed note store."""

    model = Note

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def create(
        self,
        *,
        visible_id: str,
        image_ref: str,
        color: str,
        x: float,
        y: float,
        rotation: float,
        moderation_status: str,
        owner_identity: str,
    ) -> Note:
        return await self._insert(
            visible_id=visible_id,
            image_ref=image_ref,
            color=color,
            x=x,
            y=y,
            rotation=rotation,
            moderation_status=moderation_status,
            flag_count=0,
            owner_identity=owner_identity,
        )

    async def get(self, visible_id: str) -> Note | None:
        return await self.get_one_by(visible_id=visible_id)

    async def list_public(self) -> list[Note]:
        result = await self.session.execute(
            select(Note)
            .where(Note.moderation_status.in_(PUBLIC_STATUSES))
            .order_by(Note.created_at.asc())
        )
        return list(result.scalars().all())

    async def list_in_region(self, bounds: RegionBounds, padding: float = 0.0) -> list[Note]:
        area = bounds.padded(padding)
        result = await self.session.execute(
            select(Note)
            .where(
                and_(
                    Note.moderation_status.in_(PUBLIC_STATUSES),
                    Note.x >= area.min_x,
                    Note.x <= area.max_x,
                    Note.y >= area.min_y,
                    Note.y <= area.max_y,
                )
            )
            .order_by(Note.created_at.asc())
        )
        return list(result.scalars().all())

    async def list_by_status(self, status: str | None = None) -> list[Note]:
        stmt = select(Note)
        if status is not None:
            stmt = stmt.where(Note.moderation_status == status)

        if status in NEWEST_FIRST_STATUSES:
            stmt = stmt.order_by(Note.created_at.desc())
        else:
            stmt = stmt.order_by(Note.created_at.asc())

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_owner(self, owner_identity: str) -> list[Note]:
        result = await self.session.execute(
            select(Note)
            .where(Note.owner_identity == owner_identity)
            .order_by(Note.created_at.desc())
        )
        return list(result.scalars().all())

    async def update_status(self, visible_id: str, status: str) -> Note | None:
        note = await self.get(visible_id)
        if note is None:
            return None
        note.moderation_status = status
        await self.session.flush()
        await self.session.refresh(note)
        return note

    async def flag(self, visible_id: str, threshold: int) -> FlagResult | None:
        # SET expressions see the pre-update row, so the CASE tests the old status.
        new_count = Note.flag_count + 1
        stmt = (
            update(Note)
            .where(Note.visible_id == visible_id)
            .values(
                flag_count=new_count,
                moderation_status=case(
                    (
                        and_(
                            Note.moderation_status == ModerationStatus.APPROVED.value,
                            new_count >= threshold,
                        ),
                        ModerationStatus.FLAGGED.value,
                    ),
                    else_=Note.moderation_status,
                ),
            )
            .returning(Note.flag_count, Note.moderation_status)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        row = result.one_or_none()
        if row is None:
            return None
        return FlagResult(
            visible_id=visible_id,
            flag_count=row.flag_count,
            moderation_status=row.moderation_status,
        )

    async def delete(self, visible_id: str) -> NoteDeletion:
        note = await self.get(visible_id)
        if note is None:
            return NoteDeletion(success=False)
        image_ref = note.image_ref
        await self.session.delete(note)
        await self.session.flush()
        return NoteDeletion(success=True, image_ref=image_ref)

    async def stats(self) -> NoteStats:
        result = await self.session.execute(
            select(Note.moderation_status, func.count())
            .group_by(Note.moderation_status)
        )
        return NoteStats.from_counts({status: count for status, count in result.all()})
