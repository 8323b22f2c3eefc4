"""
Client Identity.

Resolves who is submitting: the opaque session token (cookie), the client
network address (first plausible value from the configured proxy headers),
and the last-submission timestamp carried by the session-cookie strategy.
"""

import ipaddress
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import uuid4

UNKNOWN_CLIENT = "unknown-client"


@dataclass(frozen=True)
class ClientIdentity:
    session_id: str
    ip_address: str
    last_submission_at: datetime | None = None
    is_new_session: bool = False


def is_plausible_ip(value: str) -> bool:
    """IPv4, IPv6 or the literal loopback name."""
    if value == "localhost":
        return True
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def extract_client_ip(
    headers: Mapping[str, str],
    proxy_headers: Sequence[str],
    peer_host: str | None = None,
) -> str:
    """
    First plausible address from `proxy_headers`, in order.

    Comma-separated headers (x-forwarded-for) contribute their first entry.
    Falls back to the socket peer, then to a shared placeholder identity.
    """
    for header in proxy_headers:
        value = headers.get(header)
        if not value:
            continue
        candidate = value.split(",")[0].strip()
        if candidate and is_plausible_ip(candidate):
            return candidate

    if peer_host and is_plausible_ip(peer_host):
        return peer_host
    return UNKNOWN_CLIENT


def parse_submission_timestamp(value: str | None) -> datetime | None:
    """Parse the last-submission cookie (ISO 8601). Garbage reads as absent."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def resolve_identity(
    session_cookie: str | None,
    ip_address: str,
    last_submission_cookie: str | None = None,
) -> ClientIdentity:
    """Reuse the session token from the cookie, or mint a new one."""
    if session_cookie:
        return ClientIdentity(
            session_id=session_cookie,
            ip_address=ip_address,
            last_submission_at=parse_submission_timestamp(last_submission_cookie),
        )
    return ClientIdentity(
        session_id=str(uuid4()),
        ip_address=ip_address,
        last_submission_at=parse_submission_timestamp(last_submission_cookie),
        is_new_session=True,
    )
