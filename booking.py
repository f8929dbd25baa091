# booking.py
import logging
import uuid
from datetime import datetime
from typing import Optional, Sequence, Tuple

import settings
from eventbus import BookingEventBus
from models import Event, Group
from store import GroupStore

logger = logging.getLogger(__name__)


class NoMembersError(ValueError):
    pass


def book_slot(store: GroupStore, group_id: str, user_ids: Sequence[str], start: datetime, end: datetime,
              title: Optional[str] = None, location: Optional[str] = None,
              event_bus: Optional[BookingEventBus] = None) -> Tuple[Event, int]:
    """
    Append one busy event to every selected member's calendar in a single
    atomic group update, then notify subscribers.

    Raises GroupNotFoundError for an unknown group and NoMembersError when no
    member id matches; nothing is written in either case.
    """
    event = Event(
        id=str(uuid.uuid4()),
        title=title or settings.DEFAULT_MEETING_TITLE,
        start=start,
        end=end,
        location=location,
        priority="medium",
        is_busy=True,
    )
    wanted = set(user_ids)

    def _append(group: Group) -> int:
        selected = [m for m in group.members if m.id in wanted]
        if not selected:
            raise NoMembersError("No valid members found")
        for member in selected:
            member.calendar.events.append(event.model_copy())
        return len(selected)

    _, updated = store.update_group(group_id, _append)
    logger.info("book: group=%s event=%s %s->%s members=%d",
                group_id, event.id, event.start.isoformat(), event.end.isoformat(), updated)

    if event_bus is not None:
        event_bus.emit_booking(group_id, event, updated)
    return event, updated
