"""
Rate Limit Record Model.

Proof that a hashed identity submitted a note at a given time. Records are
immutable and garbage-collected once older than the retention window.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from stickywall.backend.core.utils import utc_now
from stickywall.backend.models.base import Base


class RateLimitRecord(Base):
    __tablename__ = "rate_limit_records"
    __table_args__ = (
        Index("ix_rate_limit_identifier_created", "identifier_hash", "created_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    identifier_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
    note_ref: Mapped[str | None] = mapped_column(String(36), nullable=True)

    def __repr__(self) -> str:
        return f"<RateLimitRecord(hash={self.identifier_hash[:8]}..., created_at={self.created_at})>"
