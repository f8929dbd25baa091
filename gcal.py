# gcal.py
"""Push booked events to a member's Google Calendar."""
import logging
from typing import Dict, List, Optional

from google.auth.transport.requests import AuthorizedSession
from google.oauth2.credentials import Credentials

import settings
from models import Event
from store import load_user_creds
from timeutils import format_datetime

logger = logging.getLogger(__name__)

EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/{calendar_id}/events"
CREDS_KEYS = ("token", "refresh_token", "token_uri", "client_id", "client_secret", "scopes")


class CalendarPushError(RuntimeError):
    pass


def creds_to_dict(creds: Credentials) -> Dict:
    return {
        "token": creds.token,
        "refresh_token": creds.refresh_token,
        "token_uri": creds.token_uri,
        "client_id": creds.client_id,
        "client_secret": creds.client_secret,
        "scopes": list(creds.scopes or []),
    }


def creds_from_dict(d: Dict) -> Credentials:
    return Credentials(**{k: d[k] for k in CREDS_KEYS if k in d})


def load_creds(member_id: str) -> Optional[Credentials]:
    data = load_user_creds(member_id)
    return creds_from_dict(data) if data else None


def _authed(creds: Credentials) -> AuthorizedSession:
    return AuthorizedSession(creds)


def insert_event(creds: Credentials, calendar_id: str, subject: str,
                 start_iso: str, end_iso: str, attendees: List[str],
                 description: str = "", location: Optional[str] = None,
                 time_zone: Optional[str] = None) -> Dict:
    sess = _authed(creds)
    event = {
        "summary": subject,
        "description": description,
        "start": {"dateTime": start_iso},
        "end": {"dateTime": end_iso},
        "attendees": [{"email": a} for a in attendees],
    }
    if location:
        event["location"] = location
    if time_zone:
        event["start"]["timeZone"] = time_zone
        event["end"]["timeZone"] = time_zone

    r = sess.post(
        EVENTS_URL.format(calendar_id=calendar_id),
        params={"sendUpdates": "all"},
        json=event,
        timeout=20,
    )
    if r.status_code >= 400:
        raise CalendarPushError(f"insert event failed: {r.status_code} {r.text}")
    return r.json()


def push_booking(member_id: str, event: Event, attendees: Optional[List[str]] = None,
                 calendar_id: str = "primary") -> Optional[Dict]:
    """
    Mirror a booked event into the member's Google Calendar.

    Returns the created event, or None when the member has no stored
    credentials. Provider failures raise CalendarPushError.
    """
    creds = load_creds(member_id)
    if creds is None:
        return None

    description = f"Booked for {format_datetime(event.start)}."
    created = insert_event(
        creds, calendar_id, event.title,
        event.start.isoformat(), event.end.isoformat(), attendees or [],
        description=description, location=event.location, time_zone=settings.LOCAL_TZ,
    )
    logger.info("gcal: pushed event %s for member %s -> %s", event.id, member_id, created.get("id"))
    return created
