"""
Admin Schemas.

Request and response models for the moderation API.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from stickywall.backend.services.moderation import ModerationAction


class AdminNoteResponse(BaseModel):
    """A note with its moderation fields. Owner identity is never exposed."""

    visible_id: str
    image_ref: str
    color: str
    x: float
    y: float
    rotation: float
    moderation_status: str
    flag_count: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StatsResponse(BaseModel):
    pending: int
    approved: int
    rejected: int
    flagged: int
    total: int

    model_config = ConfigDict(from_attributes=True)


class AdminNotesResponse(BaseModel):
    notes: list[AdminNoteResponse]
    stats: StatsResponse


class ModerateRequest(BaseModel):
    note_id: str = Field(..., min_length=1, description="Visible id of the note")
    action: ModerationAction


class BatchModerateRequest(BaseModel):
    note_ids: list[str] = Field(..., min_length=1, max_length=500)
    action: ModerationAction


class ModerateResponse(BaseModel):
    note_id: str
    action: ModerationAction
    moderation_status: str | None = None
    deleted: bool = False


class BatchItemResponse(BaseModel):
    note_id: str
    success: bool
    error: str | None = None

    model_config = ConfigDict(from_attributes=True)


class BatchModerateResponse(BaseModel):
    action: ModerationAction
    results: list[BatchItemResponse]
    succeeded: int
    failed: int
