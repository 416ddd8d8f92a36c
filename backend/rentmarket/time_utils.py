"""
Time helpers.

Every datetime in the database is naive UTC. Rental windows are half-open
[start, end) and are billed in whole blocks of a rental period.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Optional

ONE_DAY = timedelta(days=1)


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string from a request into naive UTC.

    - None / "" -> None
    - "2024-03-15" -> midnight UTC
    - "2024-03-15T10:00" (no offset) -> taken as UTC
    - "2024-03-15T10:00:00Z" / "+05:30" -> converted to UTC, tzinfo dropped

    Raises ValueError on anything fromisoformat rejects.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Serialize to second precision with a trailing 'Z'; naive input is UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def ceil_units(span: timedelta, unit: timedelta) -> int:
    """Number of whole `unit` blocks needed to cover `span` (at least 1)."""
    if unit <= timedelta(0):
        raise ValueError("unit must be positive")
    return max(1, math.ceil(span / unit))


def whole_days_over(span: timedelta, allowance: timedelta = timedelta(0)) -> int:
    """Started days of `span` beyond `allowance`; 0 when within it."""
    if span <= allowance:
        return 0
    return math.ceil((span - allowance) / ONE_DAY)
