# scoring.py
from datetime import timedelta
from typing import Dict, List, Optional, Sequence

from models import SchedulingConstraints, Suggestion
from timeutils import format_time, format_weekday, to_local

VAGUE_TIME_PENALTY = 0.1
VAGUE_PARTICIPANTS_PENALTY = 0.1
ODD_HOUR_PENALTY = 0.2
EARLIEST_USUAL_HOUR = 8
LATEST_USUAL_HOUR = 20


def _has_time_bound(constraints: SchedulingConstraints) -> bool:
    tc = constraints.time_constraints
    return bool(tc.start_time or tc.end_time)


def calculate_confidence(slot, constraints: SchedulingConstraints, tz: Optional[str] = None) -> float:
    """Additive penalty score in [0, 1] for one free slot."""
    confidence = 1.0
    if not _has_time_bound(constraints):
        confidence -= VAGUE_TIME_PENALTY
    if not constraints.participants:
        confidence -= VAGUE_PARTICIPANTS_PENALTY

    hour = to_local(slot[0], tz).hour
    if hour < EARLIEST_USUAL_HOUR or hour > LATEST_USUAL_HOUR:
        confidence -= ODD_HOUR_PENALTY

    return round(max(0.0, min(1.0, confidence)), 2)


def generate_assumptions(constraints: SchedulingConstraints) -> List[str]:
    assumptions = []
    if not _has_time_bound(constraints):
        assumptions.append("No specific time mentioned, using 9 AM - 9 PM window")
    if not constraints.participants:
        assumptions.append("No specific participants mentioned, including all group members")
    if not constraints.location:
        assumptions.append("No location specified")
    return assumptions


def generate_normalized_summary(slot, constraints: SchedulingConstraints,
                                names: Optional[Dict[str, str]] = None,
                                tz: Optional[str] = None) -> str:
    """e.g. '1h 0m session with Alice, Bob at the library on Tuesday at 2:00 PM'"""
    hours, minutes = divmod(constraints.duration, 60)
    summary = f"{hours}h {minutes}m session"

    if constraints.participants:
        names = names or {}
        summary += " with " + ", ".join(names.get(p, p) for p in constraints.participants)
    if constraints.location:
        summary += f" at {constraints.location}"

    start = slot[0]
    summary += f" on {format_weekday(start, tz)} at {format_time(start, tz)}"
    return summary


def build_suggestion(index: int, slot, constraints: SchedulingConstraints,
                     available_members: Sequence[str],
                     names: Optional[Dict[str, str]] = None,
                     tz: Optional[str] = None) -> Suggestion:
    start = slot[0]
    return Suggestion(
        id=f"suggestion-{index}",
        start=start,
        end=start + timedelta(minutes=constraints.duration),
        confidence=calculate_confidence(slot, constraints, tz),
        assumptions=generate_assumptions(constraints),
        normalized_summary=generate_normalized_summary(slot, constraints, names, tz),
        available_members=list(available_members),
    )


def rank_suggestions(suggestions: List[Suggestion], limit: int) -> List[Suggestion]:
    # sorted() is stable: equal scores keep free-slot order
    ranked = sorted(suggestions, key=lambda s: s.confidence, reverse=True)
    return ranked[:max(0, limit)]
