# ics.py
import uuid
from datetime import datetime
from typing import Optional, Union

import pendulum
from dateutil import parser as dparse

PRODID = "-//Group Scheduler//EN"

When = Union[str, datetime]


def _as_datetime(value: When) -> datetime:
    dt = dparse.isoparse(value) if isinstance(value, str) else value
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=pendulum.UTC)
    return dt


def format_ics_date(value: When) -> str:
    """Any timestamp -> UTC basic format, e.g. 20251007T140000Z."""
    return pendulum.instance(_as_datetime(value)).in_timezone("UTC").format("YYYYMMDD[T]HHmmss[Z]")


def _text(value: str) -> str:
    return value.replace("\r", " ").replace("\n", " ")


def build_ics(title: str, start: When, end: When, description: Optional[str] = None,
              location: Optional[str] = None, now: Optional[datetime] = None,
              uid: Optional[str] = None) -> str:
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "BEGIN:VEVENT",
        f"UID:{uid or uuid.uuid4()}@group-scheduler",
        f"DTSTAMP:{format_ics_date(now or pendulum.now('UTC'))}",
        f"DTSTART:{format_ics_date(start)}",
        f"DTEND:{format_ics_date(end)}",
        f"SUMMARY:{_text(title)}",
    ]
    if description:
        lines.append(f"DESCRIPTION:{_text(description)}")
    if location:
        lines.append(f"LOCATION:{_text(location)}")
    lines += ["END:VEVENT", "END:VCALENDAR"]
    return "\r\n".join(lines)
