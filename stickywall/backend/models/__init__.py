from stickywall.backend.models.base import Base, TimestampMixin, UUIDMixin
from stickywall.backend.models.note import PUBLIC_STATUSES, ModerationStatus, Note
from stickywall.backend.models.rate_limit import RateLimitRecord

__all__ = [
    "Base",
    "ModerationStatus",
    "Note",
    "PUBLIC_STATUSES",
    "RateLimitRecord",
    "TimestampMixin",
    "UUIDMixin",
]
