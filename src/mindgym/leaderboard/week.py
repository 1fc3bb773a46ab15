"""ISO week window helpers for the weekly leaderboard scope."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone


def get_monday(dt: datetime | date) -> date:
    """Get the Monday of the ISO week containing dt."""
    d = dt.date() if isinstance(dt, datetime) else dt
    return d - timedelta(days=d.weekday())


def get_week_window(now: datetime | None = None) -> tuple[date, date]:
    """(Monday, next Monday) of the UTC week containing ``now``; end is exclusive."""
    if now is None:
        now = datetime.now(timezone.utc)
    monday = get_monday(now.astimezone(timezone.utc))
    return monday, monday + timedelta(days=7)
