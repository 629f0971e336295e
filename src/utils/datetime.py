# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities.

All timestamps handled by the transfer engine are timezone-aware UTC.
Transfer marks, error entries and job start times all come from utc_now()
so no naive/aware mixing can happen between the registry and the database.

Usage:
------
    from src.utils.datetime import utc_now

    # For current time
    now = utc_now()

    # For dataclass defaults
    started_at: datetime = field(default_factory=utc_now)
"""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.

    Example:
        >>> now = utc_now()
        >>> now.tzinfo
        datetime.timezone.utc
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.

    Note:
        - If dt is None, returns None
        - If dt is naive, assumes UTC and adds tzinfo
        - If dt is aware, converts to UTC
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        # Naive datetime - assume UTC
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def minutes_ago(minutes: int) -> datetime:
    """Get a datetime N minutes ago from now.

    Args:
        minutes: Number of minutes to go back.

    Returns:
        Timezone-aware UTC datetime.
    """
    return utc_now() - timedelta(minutes=minutes)


def format_iso(dt: datetime | None) -> str | None:
    """Format a datetime as ISO 8601 string.

    Args:
        dt: Datetime to format, may be None.

    Returns:
        ISO 8601 string in UTC, or None.
    """
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()
