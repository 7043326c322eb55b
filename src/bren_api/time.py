from __future__ import annotations

import datetime as dt
from typing import Annotated, Callable
from zoneinfo import ZoneInfo

from fastapi import Depends

from bren_api.settings import Settings, get_settings


UtcNow = Callable[[], dt.datetime]

# Maps an instant to the start of the week containing it.
WeekKey = Callable[[dt.datetime], dt.datetime]


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


def get_utcnow() -> UtcNow:
    return utcnow


def _require_aware(value: dt.datetime) -> None:
    if value.tzinfo is None:
        raise ValueError("Week keys require timezone-aware datetimes.")


def monday_week_start(value: dt.datetime) -> dt.datetime:
    """Monday 00:00 UTC of the ISO week containing *value*."""
    _require_aware(value)
    utc_value = value.astimezone(dt.UTC)
    monday = utc_value.date() - dt.timedelta(days=utc_value.weekday())
    return dt.datetime.combine(monday, dt.time.min, tzinfo=dt.UTC)


def sunday_week_start(value: dt.datetime, tz: dt.tzinfo = dt.UTC) -> dt.datetime:
    """Sunday 00:00 in *tz* of the week containing *value*, returned in UTC."""
    _require_aware(value)
    local_value = value.astimezone(tz)
    # Python weekday(): Monday=0 .. Sunday=6.
    days_since_sunday = (local_value.weekday() + 1) % 7
    sunday = local_value.date() - dt.timedelta(days=days_since_sunday)
    return dt.datetime.combine(sunday, dt.time.min, tzinfo=tz).astimezone(dt.UTC)


def get_allowance_week_key(
    settings: Annotated[Settings, Depends(get_settings)],
) -> WeekKey:
    tz = ZoneInfo(settings.allowance_week_timezone)

    def _week_key(value: dt.datetime) -> dt.datetime:
        return sunday_week_start(value, tz)

    return _week_key


def get_points_week_key() -> WeekKey:
    return monday_week_start


AllowanceWeekKeyDep = Annotated[WeekKey, Depends(get_allowance_week_key)]
PointsWeekKeyDep = Annotated[WeekKey, Depends(get_points_week_key)]
UtcNowDep = Annotated[UtcNow, Depends(get_utcnow)]
