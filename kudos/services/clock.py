"""Time helpers shared by the ledger, the weekly reset and aggregation.

Timestamps are persisted in UTC. Week and month boundaries are computed in
the deployment time zone (``LEDGER_TIMEZONE``) and converted back to UTC.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo

from kudos.config import Settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values read back from SQLite."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@lru_cache(maxsize=8)
def ledger_zone(name: str | None = None) -> ZoneInfo:
    return ZoneInfo(name or Settings().ledger_timezone)


def week_start(now: datetime, tz: ZoneInfo | None = None) -> datetime:
    """Most recent Monday 00:00 in ``tz`` (inclusive), returned in UTC."""
    tz = tz or ledger_zone()
    local = ensure_utc(now).astimezone(tz)
    monday = (local - timedelta(days=local.weekday())).date()
    start = datetime(monday.year, monday.month, monday.day, tzinfo=tz)
    return start.astimezone(timezone.utc)


def month_start(now: datetime, tz: ZoneInfo | None = None) -> datetime:
    """First day of the current calendar month, 00:00 in ``tz``, in UTC."""
    tz = tz or ledger_zone()
    local = ensure_utc(now).astimezone(tz)
    start = datetime(local.year, local.month, 1, tzinfo=tz)
    return start.astimezone(timezone.utc)


__all__ = ["utcnow", "ensure_utc", "ledger_zone", "week_start", "month_start"]
