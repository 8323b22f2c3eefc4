"""
Note Model.

A sticky note placed on the shared wall. Position, rotation, colour and
image reference are fixed at creation; only the moderation status and the
flag counter change afterwards.
"""

from enum import Enum

from sqlalchemy import Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stickywall.backend.models.base import Base, TimestampMixin, UUIDMixin


class ModerationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FLAGGED = "flagged"


PUBLIC_STATUSES = (ModerationStatus.APPROVED.value, ModerationStatus.PENDING.value)
"""Statuses visible on the public wall. Pending notes render as placeholders."""


class Note(UUIDMixin, TimestampMixin, Base):
    """Note database model. `id` is internal; `visible_id` is the public handle."""

    __tablename__ = "notes"
    __table_args__ = (
        Index("ix_notes_position", "x", "y"),
    )

    visible_id: Mapped[str] = mapped_column(
        String(36),
        unique=True,
        nullable=False,
        index=True,
    )
    image_ref: Mapped[str] = mapped_column(Text, nullable=False)
    color: Mapped[str] = mapped_column(String(32), nullable=False)
    x: Mapped[float] = mapped_column(Float, nullable=False)
    y: Mapped[float] = mapped_column(Float, nullable=False)
    rotation: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    moderation_status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=ModerationStatus.PENDING.value,
        index=True,
    )
    flag_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    owner_identity: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<Note(visible_id={self.visible_id}, status={self.moderation_status}, "
            f"x={self.x}, y={self.y})>"
        )
