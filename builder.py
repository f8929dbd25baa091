# builder.py
import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import settings
from models import Calendar, SchedulingConstraints, Suggestion
from scoring import build_suggestion, rank_suggestions
from timeutils import get_date_range, minute_of_day, parse_time_window, time_to_minutes, to_local

logger = logging.getLogger(__name__)

Interval = Tuple[datetime, datetime]


class InvalidConstraintsError(ValueError):
    """Raised for constraints the engine will not silently default."""


def merge_intervals(intervals: Iterable[Interval]) -> List[Interval]:
    """Sort and merge intervals; overlapping or touching ranges collapse into one."""
    ivs = sorted(intervals, key=lambda iv: iv[0])
    out = []
    for s, e in ivs:
        if not out or s > out[-1][1]:
            out.append([s, e])
        else:
            out[-1][1] = max(out[-1][1], e)
    return [(s, e) for s, e in out]


def merge_busy_intervals(calendars: Sequence[Calendar]) -> List[Interval]:
    """Busy time across all calendars. Events with is_busy=False never block."""
    return merge_intervals(
        (ev.start, ev.end) for cal in calendars for ev in cal.events if ev.is_busy
    )


def _at(day, minutes: int):
    h, m = divmod(minutes, 60)
    return day.set(hour=h, minute=m, second=0, microsecond=0)


def _gaps(busy: Sequence[Interval], floor, ceiling, need: timedelta) -> List[Interval]:
    free = []
    cur = floor
    for s, e in busy:
        if s >= ceiling:
            break
        if s > cur and s - cur >= need:
            free.append((cur, s))
        cur = max(cur, e)
    if cur < ceiling and ceiling - cur >= need:
        free.append((cur, ceiling))
    return free


def find_free_slots(busy: Sequence[Interval], window_start: datetime, window_end: datetime,
                    min_duration: int, tz: Optional[str] = None,
                    work_start: Optional[str] = None, work_end: Optional[str] = None) -> List[Interval]:
    """
    Free gaps of at least ``min_duration`` minutes inside the window.

    Every local day the window touches is clamped to working hours
    (WORK_DAY_START-WORK_DAY_END); a window starting before the opening time
    snaps forward to it.
    """
    tz = tz or settings.LOCAL_TZ
    open_min = time_to_minutes(work_start or settings.WORK_DAY_START)
    close_min = time_to_minutes(work_end or settings.WORK_DAY_END)
    need = timedelta(minutes=min_duration)

    window_start = to_local(window_start, tz)
    window_end = to_local(window_end, tz)

    relevant = sorted(
        ((to_local(s, tz), to_local(e, tz)) for s, e in busy if s < window_end and e > window_start),
        key=lambda iv: iv[0],
    )

    free = []
    day = window_start.start_of("day")
    while day < window_end:
        floor = max(window_start, _at(day, open_min))
        ceiling = min(window_end, _at(day, close_min))
        if floor < ceiling:
            free.extend(_gaps(relevant, floor, ceiling, need))
        day = day.add(days=1)
    return free


def apply_time_constraints(free_slots: Sequence[Interval], constraints: SchedulingConstraints,
                           tz: Optional[str] = None) -> List[Interval]:
    """Drop (never clip) slots violating start/end bounds or the named time window."""
    tc = constraints.time_constraints
    earliest = time_to_minutes(tc.start_time) if tc.start_time else None
    latest = time_to_minutes(tc.end_time) if tc.end_time else None
    window = parse_time_window(tc.time_window) if tc.time_window else None

    kept = []
    for slot in free_slots:
        start_min = minute_of_day(slot[0], tz)
        end_min = minute_of_day(slot[1], tz)
        if earliest is not None and start_min < earliest:
            continue
        if latest is not None and end_min > latest:
            continue
        if window and (start_min < window[0] or end_min > window[1]):
            continue
        kept.append(slot)
    return kept


def _relevant_calendars(calendars: Sequence[Calendar], participants: Sequence[str]) -> List[Calendar]:
    if not participants:
        return list(calendars)
    wanted = {p.strip().lower() for p in participants}
    return [
        cal for cal in calendars
        if cal.user_id.lower() in wanted or (cal.user_name or "").strip().lower() in wanted
    ]


def find_common_free_slots(calendars: Sequence[Calendar], constraints: SchedulingConstraints,
                           max_suggestions: int = 3, now: Optional[datetime] = None,
                           tz: Optional[str] = None) -> List[Suggestion]:
    """
    Ranked meeting suggestions for one scheduling request.

    Returns [] when no calendar qualifies or no slot survives; raises
    InvalidConstraintsError when the duration is missing or not positive.
    """
    if constraints is None or not constraints.duration or constraints.duration <= 0:
        raise InvalidConstraintsError("duration must be a positive number of minutes")

    tz = tz or settings.LOCAL_TZ
    relevant = _relevant_calendars(calendars, constraints.participants)
    if not relevant:
        logger.info("find_common_free_slots: no eligible calendars (participants=%s)", constraints.participants)
        return []

    if constraints.recurrence:
        logger.info("find_common_free_slots: recurrence %s accepted, scheduling first occurrence only",
                    constraints.recurrence.frequency)

    window_start, window_end = get_date_range(constraints.time_constraints, now, tz)
    busy = merge_busy_intervals(relevant)
    free = find_free_slots(busy, window_start, window_end, constraints.duration, tz)
    free = apply_time_constraints(free, constraints, tz)
    logger.info("find_common_free_slots: window=%s->%s busy=%d free=%d",
                window_start.to_iso8601_string(), window_end.to_iso8601_string(), len(busy), len(free))

    names: Dict[str, str] = {cal.user_id: cal.user_name for cal in relevant if cal.user_name}
    available = [cal.user_id for cal in relevant]
    suggestions = [
        build_suggestion(i, slot, constraints, available, names, tz)
        for i, slot in enumerate(free)
    ]
    return rank_suggestions(suggestions, max_suggestions)
