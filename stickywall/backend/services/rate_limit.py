"""
Rate Limit Gate.

One accepted submission per identity per rolling window (24h by default),
measured from the last submission rather than a calendar boundary.

Two strategies share the RateLimitGate contract:

    HashedIdentityRateLimitGate  - server-side, keyed by sha256(salt:address).
                                   Falls back to an in-process store when the
                                   durable store is unreachable.
    SessionCookieRateLimitGate   - trusts the last-submission cookie. Clearing
                                   cookies bypasses it; a UX nicety only.

The strategy is selected by security.yaml `rate_limiting.strategy`.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from stickywall.backend.core.logging import get_logger
from stickywall.backend.core.security import hash_identifier
from stickywall.backend.core.utils import utc_now
from stickywall.backend.repositories.rate_limit import RateLimitStore
from stickywall.backend.services.identity import ClientIdentity

logger = get_logger(__name__)

RATE_LIMIT_REASON = "Only one note per person per day!"
FALLBACK_RETENTION_MULTIPLIER = 2

Clock = Callable[[], datetime]


def format_time_remaining(ms: int) -> str:
    """Render a wait as "Xh Ym", dropping the hour part under one hour."""
    hours = ms // 3_600_000
    minutes = (ms % 3_600_000) // 60_000
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


@dataclass(frozen=True)
class RateLimitDecision:
    can_post: bool
    reason: str | None = None
    time_until_next_post: int | None = None

    @property
    def time_remaining(self) -> str | None:
        if self.time_until_next_post is None:
            return None
        return format_time_remaining(self.time_until_next_post)

    @classmethod
    def allowed(cls) -> "RateLimitDecision":
        return cls(can_post=True)


def decide(last_submission_at: datetime | None, now: datetime, window: timedelta) -> RateLimitDecision:
    """Shared eligibility rule for every strategy."""
    if last_submission_at is None:
        return RateLimitDecision.allowed()

    elapsed = now - last_submission_at
    if elapsed >= window:
        return RateLimitDecision.allowed()

    wait_ms = int((window - elapsed).total_seconds() * 1000)
    return RateLimitDecision(
        can_post=False,
        reason=RATE_LIMIT_REASON,
        time_until_next_post=max(wait_ms, 1),
    )


class RateLimitGate(ABC):
    """Answers "may this identity post now?" and records accepted posts."""

    strategy: str

    def __init__(self, window: timedelta, clock: Clock = utc_now) -> None:
        self.window = window
        self.clock = clock

    @abstractmethod
    async def can_post(self, identity: ClientIdentity) -> RateLimitDecision: ...

    @abstractmethod
    async def record_submission(self, identity: ClientIdentity, note_ref: str) -> None: ...


class SessionCookieRateLimitGate(RateLimitGate):
    """Eligibility from the client-held last-submission cookie."""

    strategy = "session_cookie"

    async def can_post(self, identity: ClientIdentity) -> RateLimitDecision:
        return decide(identity.last_submission_at, self.clock(), self.window)

    async def record_submission(self, identity: ClientIdentity, note_ref: str) -> None:
        # The endpoint writes the cookie; nothing is kept server-side.
        logger.debug(
            "Submission recorded in session cookie",
            extra={"session_id": identity.session_id, "note_ref": note_ref},
        )


class HashedIdentityRateLimitGate(RateLimitGate):
    """
    Server-side sliding window keyed by the hashed client address.

    Store failures are not allowed to fail the request or to open the gate:
    the in-process `fallback` store answers instead, which is only accurate
    per server instance.
    """

    strategy = "hashed_identity"

    def __init__(
        self,
        store: RateLimitStore,
        fallback: RateLimitStore,
        salt: str,
        window: timedelta,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(window, clock)
        self.store = store
        self.fallback = fallback
        self.salt = salt

    def identifier_for(self, identity: ClientIdentity) -> str:
        return hash_identifier(identity.ip_address, self.salt)

    async def can_post(self, identity: ClientIdentity) -> RateLimitDecision:
        identifier = self.identifier_for(identity)
        now = self.clock()
        since = now - self.window

        try:
            last = await self.store.most_recent_since(identifier, since)
        except (SQLAlchemyError, OSError) as e:
            logger.warning(
                "Rate limit store unavailable, using in-process fallback",
                extra={"operation": "check", "error": str(e)},
            )
            last = await self.fallback.most_recent_since(identifier, since)

        decision = decide(last, now, self.window)
        if not decision.can_post:
            logger.info(
                "Submission rate limited",
                extra={
                    "strategy": self.strategy,
                    "time_until_next_post": decision.time_until_next_post,
                },
            )
        return decision

    async def record_submission(self, identity: ClientIdentity, note_ref: str) -> None:
        identifier = self.identifier_for(identity)
        now = self.clock()

        try:
            await self.store.add(identifier, now, note_ref)
        except (SQLAlchemyError, OSError) as e:
            logger.warning(
                "Rate limit store unavailable, recording in-process",
                extra={"operation": "record", "error": str(e)},
            )
            await self.fallback.add(identifier, now, note_ref)
            await self.fallback.delete_older_than(now - self.window * FALLBACK_RETENTION_MULTIPLIER)


def create_rate_limit_gate(
    strategy: str,
    *,
    store: RateLimitStore,
    fallback: RateLimitStore,
    salt: str,
    window: timedelta,
    clock: Clock = utc_now,
) -> RateLimitGate:
    """Build the configured gate."""
    if strategy == SessionCookieRateLimitGate.strategy:
        return SessionCookieRateLimitGate(window, clock)
    if strategy == HashedIdentityRateLimitGate.strategy:
        return HashedIdentityRateLimitGate(store, fallback, salt, window, clock)
    raise ValueError(f"Unknown rate limit strategy: {strategy}")


async def cleanup_expired(
    store: RateLimitStore,
    now: datetime,
    window: timedelta,
    retention_multiplier: float,
) -> int:
    """Delete records older than `window * retention_multiplier`."""
    cutoff = now - window * retention_multiplier
    deleted = await store.delete_older_than(cutoff)
    logger.info(
        "Rate limit records cleaned up",
        extra={"deleted": deleted, "cutoff": cutoff.isoformat()},
    )
    return deleted
