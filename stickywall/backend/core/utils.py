"""
Core Utilities.

Shared utility functions used across the backend.
"""

from datetime import datetime, timezone
from uuid import uuid4


def utc_now() -> datetime:
    """
    Return current UTC time as timezone-naive datetime.

    All datetime values in the application are timezone-naive
    and assumed to be UTC.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_visible_id() -> str:
    """Generate the public identifier for a new note."""
    return str(uuid4())
