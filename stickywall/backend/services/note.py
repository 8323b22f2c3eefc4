"""
Note Service.

Public read access to the wall. Only approved and pending notes are ever
returned; pending notes render as placeholders so submitters see their
note immediately.
"""

from stickywall.backend.core.config_schema import WallSchema
from stickywall.backend.core.exceptions import NotFoundError, ValidationError
from stickywall.backend.models.note import PUBLIC_STATUSES, Note
from stickywall.backend.repositories.note import NoteStore, RegionBounds
from stickywall.backend.services.base import BaseService


class NoteService(BaseService):
    def __init__(self, notes: NoteStore, wall: WallSchema) -> None:
        super().__init__()
        self.notes = notes
        self.wall = wall

    async def list_public(self) -> list[Note]:
        return await self._store_call("list_public", self.notes.list_public())

    async def list_region(
        self,
        min_x: float,
        max_x: float,
        min_y: float,
        max_y: float,
    ) -> list[Note]:
        """
        Notes in a viewport, grown by the configured padding so notes
        straddling the viewport edge are included.

        Raises:
            ValidationError: If a minimum exceeds its maximum.
        """
        if min_x > max_x or min_y > max_y:
            raise ValidationError(
                "Invalid region bounds",
                details={"bounds": "min values must not exceed max values"},
            )
        bounds = RegionBounds(min_x=min_x, max_x=max_x, min_y=min_y, max_y=max_y)
        notes = await self._store_call(
            "list_in_region",
            self.notes.list_in_region(bounds, padding=self.wall.region_padding),
        )
        self._log_debug("Region query", count=len(notes))
        return notes

    async def get_public(self, visible_id: str) -> Note:
        """
        Raises:
            NotFoundError: If the note does not exist or is not publicly visible.
        """
        note = await self._store_call("get", self.notes.get(visible_id))
        if note is None or note.moderation_status not in PUBLIC_STATUSES:
            raise NotFoundError("Note not found")
        return note
