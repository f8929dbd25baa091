# models.py
"""Pydantic models shared by the scheduling engine, the store and the API.

JSON uses camelCase keys (``isBusy``, ``timeConstraints`` ...); snake_case
field names are accepted on input as well.
"""
from __future__ import annotations

import zoneinfo
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

Priority = Literal["low", "medium", "high", "exam", "study", "workout", "social"]
Frequency = Literal["daily", "weekly", "biweekly"]

CLOCK_PATTERN = r"^\d{1,2}:\d{2}$"


def _aware(dt: datetime) -> datetime:
    # naive timestamps are taken as UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=zoneinfo.ZoneInfo("UTC"))
    return dt


class SchedulerModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Event(SchedulerModel):
    id: str
    title: str
    start: datetime
    end: datetime
    location: Optional[str] = None
    priority: Priority = "medium"
    is_busy: bool = True

    @field_validator("start", "end")
    @classmethod
    def _tz_aware(cls, v: datetime) -> datetime:
        return _aware(v)

    @model_validator(mode="after")
    def _ordered(self) -> "Event":
        if self.start >= self.end:
            raise ValueError("event start must be before end")
        return self


class Calendar(SchedulerModel):
    user_id: str
    user_name: Optional[str] = None
    events: List[Event] = Field(default_factory=list)


class Member(SchedulerModel):
    id: str
    name: str
    is_included: bool = True
    calendar: Calendar


class Group(SchedulerModel):
    id: str
    code: str
    name: str
    members: List[Member] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    def member(self, member_id: str) -> Optional[Member]:
        for m in self.members:
            if m.id == member_id:
                return m
        return None


class TimeConstraint(SchedulerModel):
    duration: Optional[int] = Field(default=None, gt=0)
    start_time: Optional[str] = Field(default=None, pattern=CLOCK_PATTERN)
    end_time: Optional[str] = Field(default=None, pattern=CLOCK_PATTERN)
    relative_day: Optional[str] = None  # today|tomorrow|this_week|next_week, others mean today
    specific_date: Optional[date] = None
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)  # 0 = Sunday
    time_window: Optional[str] = None  # unknown names mean 09:00-21:00

    @field_validator("relative_day", "time_window", mode="before")
    @classmethod
    def _normalize_tag(cls, v):
        if isinstance(v, str):
            v = v.strip().lower().replace(" ", "_")
            return v or None
        return v

    @field_validator("specific_date", mode="before")
    @classmethod
    def _date_only(cls, v):
        # "2025-10-07T00:00:00Z" -> "2025-10-07"
        if isinstance(v, str) and len(v) > 10:
            return v[:10]
        return v


class Recurrence(SchedulerModel):
    frequency: Frequency
    count: int = Field(ge=1)
    days_of_week: Optional[List[int]] = None


class SchedulingConstraints(SchedulerModel):
    duration: int = Field(gt=0)
    participants: List[str] = Field(default_factory=list)
    location: Optional[str] = None
    priority: Optional[str] = None
    time_constraints: TimeConstraint = Field(default_factory=TimeConstraint)
    recurrence: Optional[Recurrence] = None


class Suggestion(SchedulerModel):
    id: str
    start: datetime
    end: datetime
    confidence: float = Field(ge=0.0, le=1.0)
    assumptions: List[str] = Field(default_factory=list)
    normalized_summary: str
    available_members: List[str] = Field(default_factory=list)


class ParsedRequest(SchedulerModel):
    constraints: SchedulingConstraints
    normalized_summary: str
    assumptions: List[str] = Field(default_factory=list)


class BookedEventRef(SchedulerModel):
    id: str
    title: str
    start: datetime
    end: datetime


class BookingEvent(SchedulerModel):
    type: Literal["booking"] = "booking"
    group_id: str
    event: BookedEventRef
    updated_members: int
    timestamp: datetime
