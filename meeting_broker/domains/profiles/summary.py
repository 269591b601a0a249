"""Activity summary over session log rows."""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Tuple

from meeting_broker.domains.profiles.schemas import ActivitySummary, MonthSummary
from meeting_broker.utils.timestamps import boundary_instant


def summary_windows(now: datetime) -> Tuple[datetime, datetime]:
    """
    Start of the seven-day window and of the calendar month.

    Both are local midnights in ``now``'s timezone: the week starts six days
    before today so that it covers today plus the six days before it.
    """
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return today - timedelta(days=6), today.replace(day=1)


def summarize_activity(rows: Iterable[Dict[str, Any]], now: datetime) -> ActivitySummary:
    """Build an :class:`ActivitySummary` from ``{started_at, duration_min}`` rows."""
    if now.tzinfo is None:
        now = now.astimezone()
    week_start, month_start = summary_windows(now)
    tz = now.tzinfo

    week_minutes = 0.0
    week_days = set()
    month_minutes = 0.0
    month_count = 0
    for row in rows:
        started = boundary_instant(row.get("started_at"))
        if started is None:
            continue
        local = started.astimezone(tz)
        minutes = float(row.get("duration_min") or 0)
        if local >= month_start:
            month_minutes += minutes
            month_count += 1
        if local >= week_start:
            week_minutes += minutes
            week_days.add(local.date())

    avg = math.floor(month_minutes / month_count + 0.5) if month_count else 0
    return ActivitySummary(
        week_minutes=week_minutes,
        days_this_week=len(week_days),
        month=MonthSummary(minutes=month_minutes, count=month_count, avg=avg),
    )
