import pytest

import gcal
from conftest import at
from gcal import CalendarPushError, creds_from_dict, creds_to_dict, push_booking
from models import Event
from store import save_user_creds

CREDS = {
    "token": "tok",
    "refresh_token": "ref",
    "token_uri": "https://oauth2.googleapis.com/token",
    "client_id": "cid",
    "client_secret": "secret",
    "scopes": ["https://www.googleapis.com/auth/calendar.events"],
}


@pytest.fixture
def session(monkeypatch, fake_response):
    sent = {"response": fake_response({"id": "g-1", "htmlLink": "https://calendar/g-1"})}

    class FakeSession:
        def __init__(self, creds):
            sent["creds"] = creds

        def post(self, url, **kwargs):
            sent["url"] = url
            sent.update(kwargs)
            return sent["response"]

    monkeypatch.setattr(gcal, "AuthorizedSession", FakeSession)
    return sent


def meeting():
    return Event(id="e1", title="Planning", start=at("10:00"), end=at("11:00"), location="Room 4")


def test_creds_round_trip():
    assert creds_to_dict(creds_from_dict(CREDS)) == CREDS
    assert creds_from_dict({"token": "t", "ignored": 1}).token == "t"


def test_push_without_creds(session):
    assert push_booking("m1", meeting()) is None
    assert "url" not in session


def test_push_booking(session):
    save_user_creds("m1", CREDS)
    created = push_booking("m1", meeting(), ["a@example.com"])

    assert created == {"id": "g-1", "htmlLink": "https://calendar/g-1"}
    assert session["creds"].token == "tok"
    assert session["url"] == "https://www.googleapis.com/calendar/v3/calendars/primary/events"
    assert session["params"] == {"sendUpdates": "all"}
    body = session["json"]
    assert body["summary"] == "Planning"
    assert body["location"] == "Room 4"
    assert body["attendees"] == [{"email": "a@example.com"}]
    assert body["start"] == {"dateTime": "2025-10-07T10:00:00+00:00", "timeZone": "UTC"}
    assert body["description"] == "Booked for Tue, 07 Oct 2025 10:00 AM (UTC)."


def test_push_failure_raises(session, fake_response):
    save_user_creds("m1", CREDS)
    session["response"] = fake_response({"error": "denied"}, status_code=403, text="denied")
    with pytest.raises(CalendarPushError):
        push_booking("m1", meeting())
