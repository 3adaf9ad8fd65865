"""
Shared utility functions for memberhub.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone


def generate_id(prefix: str = "") -> str:
    """
    Generate a unique ID with optional prefix.

    Args:
        prefix: Optional prefix (e.g., "role", "mem", "col")

    Returns:
        A unique ID like "role_a1b2c3d4e5f6"
    """
    uid = str(uuid.uuid4())[:12]
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def split_member_number(member_number: str) -> tuple[str, str]:
    """
    Split a member number into its collector prefix and sequence number.

    Member numbers look like "TS00012": the first two characters name
    the collection round, the rest is the running number.
    """
    member_number = member_number.strip().upper()
    return member_number[:2], member_number[2:]
