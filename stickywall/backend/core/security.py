"""
Security Utilities.

Identifier hashing for rate limiting and admin credential checks.
"""

import hashlib
import hmac

from stickywall.backend.core.config import get_app_config, get_settings
from stickywall.backend.core.exceptions import AuthenticationError
from stickywall.backend.core.logging import get_logger

logger = get_logger(__name__)


def hash_identifier(identifier: str, salt: str | None = None) -> str:
    """
    Hash a client identifier (usually an IP address) for storage.

    Raw addresses are never persisted. The digest is sha256 over
    "<salt>:<identifier>", hex-encoded.
    """
    if salt is None:
        salt = get_settings().rate_limit_salt
    return hashlib.sha256(f"{salt}:{identifier}".encode("utf-8")).hexdigest()


def verify_admin_credential(presented: str | None, expected: str) -> bool:
    """Constant-time comparison of a presented admin key against the configured one."""
    if not presented or not expected:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


def parse_authorization_header(header_value: str | None) -> str | None:
    """Extract the credential from an 'Authorization: <scheme> <credential>' header."""
    if not header_value:
        return None
    scheme = get_app_config().security.admin.scheme
    parts = header_value.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != scheme.lower():
        return None
    return parts[1].strip() or None


def admin_auth_enforced() -> bool:
    """Admin auth is skipped only in development unless explicitly enforced there."""
    app_config = get_app_config()
    if app_config.application.is_development:
        return app_config.security.admin.enforce_in_development
    return True


def authenticate_admin(authorization: str | None) -> None:
    """
    Validate an admin Authorization header.

    Raises:
        AuthenticationError: If auth is enforced and the credential is missing or wrong.
    """
    if not admin_auth_enforced():
        return

    expected = get_settings().admin_api_key
    if not expected:
        logger.error("Admin API key is not configured; rejecting admin request")
        raise AuthenticationError("Admin access is not configured")

    credential = parse_authorization_header(authorization)
    if credential is None:
        raise AuthenticationError("Missing admin credentials")
    if not verify_admin_credential(credential, expected):
        logger.warning("Admin authentication failed")
        raise AuthenticationError("Invalid admin credentials")
