# eventbus.py
"""In-process pub/sub for booking notifications, plus the SSE frame generator."""
import asyncio
import json
import logging
import threading
from typing import AsyncIterator, Callable, List, Optional

import pendulum

from models import BookedEventRef, BookingEvent, Event

logger = logging.getLogger(__name__)

Subscriber = Callable[[BookingEvent], None]


class BookingEventBus:
    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: BookingEvent):
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("eventbus: subscriber failed for group %s", event.group_id)

    def emit_booking(self, group_id: str, event: Event, updated_members: int) -> BookingEvent:
        payload = BookingEvent(
            group_id=group_id,
            event=BookedEventRef(id=event.id, title=event.title, start=event.start, end=event.end),
            updated_members=updated_members,
            timestamp=pendulum.now("UTC"),
        )
        self.publish(payload)
        return payload


bus = BookingEventBus()


def _ping() -> str:
    return f"event: ping\ndata: {int(pendulum.now('UTC').timestamp() * 1000)}\n\n"


async def booking_stream(event_bus: BookingEventBus, group_id: Optional[str] = None,
                         ping_interval: float = 25.0) -> AsyncIterator[str]:
    """
    Server-sent-event frames: a ping on connect, one ``data:`` frame per
    booking (optionally only for ``group_id``), and a ping after every idle
    ``ping_interval`` seconds.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def on_booking(ev: BookingEvent):
        if group_id is None or ev.group_id == group_id:
            loop.call_soon_threadsafe(queue.put_nowait, ev)

    unsubscribe = event_bus.subscribe(on_booking)
    try:
        yield _ping()
        while True:
            try:
                ev = await asyncio.wait_for(queue.get(), timeout=ping_interval)
            except asyncio.TimeoutError:
                yield _ping()
                continue
            yield f"data: {json.dumps(ev.dump())}\n\n"
    finally:
        unsubscribe()
