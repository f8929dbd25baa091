# timeutils.py
"""
Clock/date helpers for the scheduler.

All "local" values are taken in the configured TIME_ZONE (settings.LOCAL_TZ)
unless a tz name is passed explicitly.
"""
from datetime import datetime
from typing import Optional, Tuple

import pendulum

import settings

TIME_WINDOWS = {
    "morning": ("06:00", "12:00"),
    "afternoon": ("12:00", "17:00"),
    "evening": ("17:00", "21:00"),
    "night": ("21:00", "23:59"),
}
DEFAULT_WINDOW = ("09:00", "21:00")


def time_to_minutes(time_str: str) -> int:
    """'14:30' -> 870"""
    hours, minutes = time_str.strip().split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(minutes: int) -> str:
    """870 -> '14:30'"""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def to_local(dt: datetime, tz: Optional[str] = None) -> pendulum.DateTime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=pendulum.UTC)
    return pendulum.instance(dt).in_timezone(tz or settings.LOCAL_TZ)


def minute_of_day(dt: datetime, tz: Optional[str] = None) -> int:
    local = to_local(dt, tz)
    return local.hour * 60 + local.minute


def reference_now(now: Optional[datetime] = None, tz: Optional[str] = None) -> pendulum.DateTime:
    if now is None:
        return pendulum.now(tz or settings.LOCAL_TZ)
    return to_local(now, tz)


def parse_relative_day(day: str, now: Optional[datetime] = None, tz: Optional[str] = None) -> pendulum.DateTime:
    """Resolve today/tomorrow/this_week/next_week against ``now``.

    "this week" stays on the reference date; unknown tags fall back to it too.
    """
    ref = reference_now(now, tz)
    key = day.strip().lower().replace(" ", "_")
    if key == "tomorrow":
        return ref.add(days=1)
    if key == "next_week":
        return ref.add(weeks=1)
    return ref


def next_weekday(now: datetime, day_of_week: int, tz: Optional[str] = None) -> pendulum.DateTime:
    """Next date on or after ``now`` falling on ``day_of_week`` (0 = Sunday)."""
    ref = to_local(now, tz)
    today_idx = (ref.weekday() + 1) % 7
    return ref.add(days=(day_of_week - today_idx) % 7)


def parse_time_window(window: Optional[str]) -> Tuple[int, int]:
    """Named part of day -> (start_minute, end_minute). Unknown names map to 09:00-21:00."""
    start, end = TIME_WINDOWS.get((window or "").strip().lower(), DEFAULT_WINDOW)
    return time_to_minutes(start), time_to_minutes(end)


def get_date_range(constraint, now: Optional[datetime] = None,
                   tz: Optional[str] = None) -> Tuple[pendulum.DateTime, pendulum.DateTime]:
    """
    Search window for a TimeConstraint: one local calendar day, midnight to
    next midnight.

    Precedence: specific_date, relative_day, day_of_week, then today.
    """
    tz = tz or settings.LOCAL_TZ
    ref = reference_now(now, tz)

    if constraint.specific_date:
        d = constraint.specific_date
        day = pendulum.datetime(d.year, d.month, d.day, tz=tz)
    elif constraint.relative_day:
        day = parse_relative_day(constraint.relative_day, ref, tz)
    elif constraint.day_of_week is not None:
        day = next_weekday(ref, constraint.day_of_week, tz)
    else:
        day = ref

    start = day.start_of("day")
    return start, start.add(days=1)


def format_time(dt: datetime, tz: Optional[str] = None) -> str:
    return to_local(dt, tz).format("h:mm A")


def format_weekday(dt: datetime, tz: Optional[str] = None) -> str:
    return to_local(dt, tz).format("dddd")


def format_datetime(dt: datetime, tz: Optional[str] = None) -> str:
    tz = tz or settings.LOCAL_TZ
    return to_local(dt, tz).format("ddd, DD MMM YYYY hh:mm A") + f" ({tz})"
