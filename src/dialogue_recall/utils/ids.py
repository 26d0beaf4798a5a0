"""Identifier and clock helpers."""

import uuid
from datetime import UTC, datetime

__all__ = [
    "generate_id",
    "utc_now",
]


def generate_id(prefix: str) -> str:
    """Generate a prefixed unique identifier, e.g. ``sess_1f0c...``."""
    return f"{prefix}_{uuid.uuid4().hex}"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)
