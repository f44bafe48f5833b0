"""
Datetime helpers.

Issue timestamps are kept timezone-aware in UTC. Values passed in by callers
or read back from storage may be naive or ISO strings.
"""

from datetime import datetime, timezone
from typing import Union


def ensure_aware(dt: Union[datetime, str]) -> datetime:
    """
    Return `dt` as an aware datetime, parsing ISO strings first.

    Naive values are taken as UTC:
        >>> ensure_aware("2026-01-01T00:00:00Z")
        datetime.datetime(2026, 1, 1, 0, 0, tzinfo=datetime.timezone.utc)
    """
    if isinstance(dt, str):
        dt = datetime.fromisoformat(dt.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
