"""
In-Memory Stores.

Process-local implementations of NoteStore and RateLimitStore. Used by the
unit tests and as the degraded fallback for the hashed-identity rate limit
gate. Instances are always injected explicitly; nothing here is a module-level
singleton.

Each operation completes without awaiting, so under a single event loop every
call is atomic with respect to other coroutines.
"""

from datetime import datetime

from stickywall.backend.core.exceptions import ConflictError
from stickywall.backend.core.utils import utc_now
from stickywall.backend.models.note import PUBLIC_STATUSES, Note
from stickywall.backend.repositories.note import (
    FlagResult,
    NoteDeletion,
    NoteStats,
    NoteStore,
    RegionBounds,
    escalated_status,
    sort_for_status,
)
from stickywall.backend.repositories.rate_limit import RateLimitStore


class InMemoryNoteStore(NoteStore):
    def __init__(self) -> None:
        self._notes: dict[str, Note] = {}

    def __len__(self) -> int:
        return len(self._notes)

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
        if visible_id in self._notes:
            raise ConflictError("Note already exists")
        now = utc_now()
        note = Note(
            visible_id=visible_id,
            image_ref=image_ref,
            color=color,
            x=x,
            y=y,
            rotation=rotation,
            moderation_status=moderation_status,
            flag_count=0,
            owner_identity=owner_identity,
            created_at=now,
            updated_at=now,
        )
        self._notes[visible_id] = note
        return note

    async def get(self, visible_id: str) -> Note | None:
        return self._notes.get(visible_id)

    async def list_public(self) -> list[Note]:
        notes = [n for n in self._notes.values() if n.moderation_status in PUBLIC_STATUSES]
        return sorted(notes, key=lambda n: n.created_at)

    async def list_in_region(self, bounds: RegionBounds, padding: float = 0.0) -> list[Note]:
        area = bounds.padded(padding)
        notes = [
            n for n in self._notes.values()
            if n.moderation_status in PUBLIC_STATUSES and area.contains(n.x, n.y)
        ]
        return sorted(notes, key=lambda n: n.created_at)

    async def list_by_status(self, status: str | None = None) -> list[Note]:
        notes = [
            n for n in self._notes.values()
            if status is None or n.moderation_status == status
        ]
        return sort_for_status(notes, status)

    async def list_by_owner(self, owner_identity: str) -> list[Note]:
        notes = [n for n in self._notes.values() if n.owner_identity == owner_identity]
        return sorted(notes, key=lambda n: n.created_at, reverse=True)

    async def update_status(self, visible_id: str, status: str) -> Note | None:
        note = self._notes.get(visible_id)
        if note is None:
            return None
        note.moderation_status = status
        note.updated_at = utc_now()
        return note

    async def flag(self, visible_id: str, threshold: int) -> FlagResult | None:
        note = self._notes.get(visible_id)
        if note is None:
            return None
        note.flag_count += 1
        note.moderation_status = escalated_status(note.moderation_status, note.flag_count, threshold)
        note.updated_at = utc_now()
        return FlagResult(
            visible_id=visible_id,
            flag_count=note.flag_count,
            moderation_status=note.moderation_status,
        )

    async def delete(self, visible_id: str) -> NoteDeletion:
        note = self._notes.pop(visible_id, None)
        if note is None:
            return NoteDeletion(success=False)
        return NoteDeletion(success=True, image_ref=note.image_ref)

    async def stats(self) -> NoteStats:
        counts: dict[str, int] = {}
        for note in self._notes.values():
            counts[note.moderation_status] = counts.get(note.moderation_status, 0) + 1
        return NoteStats.from_counts(counts)


class InMemoryRateLimitStore(RateLimitStore):
    def __init__(self) -> None:
        self._records: dict[str, list[tuple[datetime, str | None]]] = {}

    def __len__(self) -> int:
        return sum(len(records) for records in self._records.values())

    async def most_recent_since(self, identifier_hash: str, since: datetime) -> datetime | None:
        timestamps = [
            created_at for created_at, _ in self._records.get(identifier_hash, [])
            if created_at >= since
        ]
        return max(timestamps, default=None)

    async def add(self, identifier_hash: str, created_at: datetime, note_ref: str | None) -> None:
        self._records.setdefault(identifier_hash, []).append((created_at, note_ref))

    async def delete_older_than(self, cutoff: datetime) -> int:
        removed = 0
        for identifier_hash in list(self._records):
            kept = [r for r in self._records[identifier_hash] if r[0] >= cutoff]
            removed += len(self._records[identifier_hash]) - len(kept)
            if kept:
                self._records[identifier_hash] = kept
            else:
                del self._records[identifier_hash]
        return removed
