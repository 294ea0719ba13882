"""
Taskflow Shared Utilities — common helpers used across the task core.
"""

from __future__ import annotations

import math
import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer, halves away from negative infinity.

    Python's round() is banker's rounding; counters shown to users
    (percentages, minutes) always round .5 upwards.

    Examples:
        round_half_up(2.5)  → 3
        round_half_up(-2.5) → -2
    """
    return int(math.floor(value + 0.5))


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and normalise aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_midnight(day: date, tz: ZoneInfo) -> datetime:
    """00:00 of *day* in *tz*, as an aware datetime."""
    return datetime.combine(day, time.min, tzinfo=tz)


def next_local_midnight(now: datetime, tz: ZoneInfo) -> datetime:
    """Start of the calendar day after *now* in *tz*."""
    return local_midnight(now.astimezone(tz).date() + timedelta(days=1), tz)


def generate_id() -> str:
    """Generate an opaque unique id."""
    return uuid.uuid4().hex
