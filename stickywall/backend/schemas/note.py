"""
Note Schemas.

Request and response models for the public wall API.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class NoteSubmit(BaseModel):
    """A new note. Position is optional; both coordinates or neither."""

    image_data: str = Field(
        ...,
        description="Rendered note as a base64 data:image/ URI",
        examples=["data:image/png;base64,iVBORw0KGgo..."],
    )
    color: str = Field(..., description="Palette colour", examples=["yellow"])
    x: float | None = Field(default=None, description="Left edge on the wall")
    y: float | None = Field(default=None, description="Top edge on the wall")


class NoteResponse(BaseModel):
    """A note as shown on the public wall."""

    visible_id: str = Field(description="Public note identifier")
    image_ref: str = Field(description="Image URL or data URI")
    color: str
    x: float
    y: float
    rotation: float
    moderation_status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NoteSummary(BaseModel):
    """Fields returned to the submitter after posting."""

    visible_id: str
    color: str
    x: float
    y: float
    moderation_status: str

    model_config = ConfigDict(from_attributes=True)


class SubmissionResponse(BaseModel):
    note: NoteSummary
    message: str


class FlagResponse(BaseModel):
    visible_id: str
    flag_count: int
    message: str


class SessionStatusResponse(BaseModel):
    """Whether the caller may post right now."""

    can_post: bool
    reason: str | None = None
    time_until_next_post: int | None = Field(default=None, description="Milliseconds")
    time_remaining: str | None = Field(default=None, examples=["2h 30m"])
