from __future__ import annotations

import datetime as dt
from zoneinfo import ZoneInfo

import pytest

from bren_api.settings import Settings
from bren_api.time import (
    get_allowance_week_key,
    get_points_week_key,
    monday_week_start,
    sunday_week_start,
)


def test_monday_week_start_is_iso_monday_utc() -> None:
    wednesday = dt.datetime(2026, 10, 21, 15, 30, tzinfo=dt.UTC)
    assert monday_week_start(wednesday) == dt.datetime(2026, 10, 19, tzinfo=dt.UTC)


def test_monday_week_start_on_sunday_belongs_to_previous_week() -> None:
    sunday = dt.datetime(2026, 10, 25, 23, 59, tzinfo=dt.UTC)
    assert monday_week_start(sunday) == dt.datetime(2026, 10, 19, tzinfo=dt.UTC)


def test_sunday_week_start_in_utc() -> None:
    wednesday = dt.datetime(2026, 10, 21, 15, 30, tzinfo=dt.UTC)
    assert sunday_week_start(wednesday) == dt.datetime(2026, 10, 18, tzinfo=dt.UTC)
    sunday_midnight = dt.datetime(2026, 10, 25, tzinfo=dt.UTC)
    assert sunday_week_start(sunday_midnight) == sunday_midnight


def test_sunday_week_start_uses_local_midnight() -> None:
    tz = ZoneInfo("America/New_York")
    # 02:00 UTC on Sunday is still Saturday evening in New York.
    value = dt.datetime(2026, 10, 25, 2, 0, tzinfo=dt.UTC)
    start = sunday_week_start(value, tz)
    assert start == dt.datetime(2026, 10, 18, tzinfo=tz).astimezone(dt.UTC)
    assert start.tzinfo == dt.UTC


def test_week_keys_reject_naive_datetimes() -> None:
    with pytest.raises(ValueError):
        monday_week_start(dt.datetime(2026, 10, 21))
    with pytest.raises(ValueError):
        sunday_week_start(dt.datetime(2026, 10, 21))


def test_week_key_dependencies() -> None:
    value = dt.datetime(2026, 10, 21, 12, tzinfo=dt.UTC)
    allowance_key = get_allowance_week_key(Settings(allowance_week_timezone="UTC"))
    assert allowance_key(value) == dt.datetime(2026, 10, 18, tzinfo=dt.UTC)
    assert get_points_week_key()(value) == dt.datetime(2026, 10, 19, tzinfo=dt.UTC)
