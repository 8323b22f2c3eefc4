"""
Moderation Service.

Manual moderation and public flagging.

Status transitions:
    created      → pending | approved | rejected   (submission pipeline)
    approved     → flagged                         (flag threshold only)
    any          → any                             (moderator action)
    any          → deleted                         (moderator action, image released after commit)
"""

from dataclasses import dataclass
from enum import Enum

from stickywall.backend.core.exceptions import ApplicationError, NotFoundError
from stickywall.backend.models.note import ModerationStatus, Note
from stickywall.backend.repositories.note import FlagResult, NoteStats, NoteStore
from stickywall.backend.services.base import BaseService
from stickywall.backend.services.image_storage import ImageStorage, release_image

FLAG_THANK_YOU = "Thank you for reporting. Our moderators will review this note."


class ModerationAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    DELETE = "delete"


ACTION_STATUS = {
    ModerationAction.APPROVE: ModerationStatus.APPROVED,
    ModerationAction.REJECT: ModerationStatus.REJECTED,
}


@dataclass(frozen=True)
class ModerationOutcome:
    visible_id: str
    action: ModerationAction
    moderation_status: str | None = None
    deleted: bool = False


@dataclass(frozen=True)
class BatchItemResult:
    note_id: str
    success: bool
    error: str | None = None


class ModerationService(BaseService):
    def __init__(self, notes: NoteStore, images: ImageStorage, flag_threshold: int) -> None:
        super().__init__()
        self.notes = notes
        self.images = images
        self.flag_threshold = flag_threshold
        self._released_images: list[str] = []

    async def set_status(self, visible_id: str, status: ModerationStatus) -> Note:
        """
        Moderator override. Any status may be set from any status.

        Raises:
            NotFoundError: If the note does not exist.
        """
        note = await self._store_call("update_status", self.notes.update_status(visible_id, status.value))
        if note is None:
            raise NotFoundError("Note not found")
        self._log_operation("Moderation status set", visible_id=visible_id, status=status.value)
        return note

    async def delete(self, visible_id: str) -> None:
        """
        Remove a note. Its image is held until release_deleted_images.

        Raises:
            NotFoundError: If the note does not exist.
        """
        deletion = await self._store_call("delete", self.notes.delete(visible_id))
        if not deletion.success:
            raise NotFoundError("Note not found")
        self._log_operation("Note deleted", visible_id=visible_id)
        if deletion.image_ref:
            self._released_images.append(deletion.image_ref)

    async def release_deleted_images(self) -> None:
        """
        Release the images of notes deleted through this service.

        Call only once the deletions are committed. Failures are logged only.
        """
        image_refs, self._released_images = self._released_images, []
        for image_ref in image_refs:
            await release_image(self.images, image_ref)

    async def moderate(self, visible_id: str, action: ModerationAction) -> ModerationOutcome:
        if action is ModerationAction.DELETE:
            await self.delete(visible_id)
            return ModerationOutcome(visible_id=visible_id, action=action, deleted=True)

        note = await self.set_status(visible_id, ACTION_STATUS[action])
        return ModerationOutcome(
            visible_id=visible_id,
            action=action,
            moderation_status=note.moderation_status,
        )

    async def moderate_batch(self, visible_ids: list[str], action: ModerationAction) -> list[BatchItemResult]:
        """Apply one action to many notes. Per-note failures do not stop the batch."""
        results: list[BatchItemResult] = []
        for visible_id in visible_ids:
            try:
                await self.moderate(visible_id, action)
            except ApplicationError as e:
                results.append(BatchItemResult(note_id=visible_id, success=False, error=e.message))
            else:
                results.append(BatchItemResult(note_id=visible_id, success=True))

        self._log_operation(
            "Batch moderation applied",
            action=action.value,
            requested=len(visible_ids),
            succeeded=sum(1 for r in results if r.success),
        )
        return results

    async def flag(self, visible_id: str) -> FlagResult:
        """
        Record a public report. Approved notes reaching the threshold are
        held back as flagged in the same store operation.

        Raises:
            NotFoundError: If the note does not exist.
        """
        result = await self._store_call("flag", self.notes.flag(visible_id, self.flag_threshold))
        if result is None:
            raise NotFoundError("Note not found")

        if result.moderation_status == ModerationStatus.FLAGGED.value:
            self._log_operation(
                "Flagged note awaiting review",
                visible_id=visible_id,
                flag_count=result.flag_count,
            )
        else:
            self._log_debug("Flag recorded", visible_id=visible_id, flag_count=result.flag_count)
        return result

    async def list_for_moderation(self, status: ModerationStatus | None = None) -> list[Note]:
        return await self._store_call(
            "list_by_status",
            self.notes.list_by_status(status.value if status is not None else None),
        )

    async def list_by_owner(self, owner_identity: str) -> list[Note]:
        return await self._store_call("list_by_owner", self.notes.list_by_owner(owner_identity))

    async def stats(self) -> NoteStats:
        return await self._store_call("stats", self.notes.stats())
