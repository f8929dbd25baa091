import pendulum
import pytest
import requests

import settings
from eventbus import BookingEventBus
from models import Calendar, Event
from store import GroupStore

DAY = "2025-10-07"  # a Tuesday


def at(clock: str, day: str = DAY):
    """'09:30' -> aware UTC datetime on ``day``."""
    y, mo, d = (int(p) for p in day.split("-"))
    h, mi = (int(p) for p in clock.split(":"))
    return pendulum.datetime(y, mo, d, h, mi, tz="UTC")


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "LOCAL_TZ", "UTC")
    monkeypatch.setattr(settings, "WORK_DAY_START", "09:00")
    monkeypatch.setattr(settings, "WORK_DAY_END", "17:00")
    monkeypatch.setattr(settings, "MAX_SUGGESTIONS", 3)
    monkeypatch.setattr(settings, "GROUP_STORE", str(tmp_path / "groups.json"))
    monkeypatch.setattr(settings, "TOKEN_STORE", str(tmp_path / "token_store.json"))
    monkeypatch.setattr(settings, "AI_PARSER_PROVIDER", "")
    for key in ("GROQ_API_KEY", "COHERE_API_KEY", "GEMINI_API_KEY"):
        monkeypatch.setattr(settings, key, "")


@pytest.fixture
def now():
    # Monday morning, the day before DAY
    return pendulum.datetime(2025, 10, 6, 8, 0, tz="UTC")


@pytest.fixture
def clock():
    return at


@pytest.fixture
def make_calendar():
    def _make(user_id, busy, name=None, day=DAY):
        events = [
            Event(id=f"{user_id}-{i}", title="Busy", start=at(s, day), end=at(e, day))
            for i, (s, e) in enumerate(busy)
        ]
        return Calendar(user_id=user_id, user_name=name, events=events)

    return _make


@pytest.fixture
def store(tmp_path):
    return GroupStore(str(tmp_path / "groups.json"))


@pytest.fixture
def event_bus():
    return BookingEventBus()


class FakeResponse:
    def __init__(self, payload=None, status_code=200, text=""):
        self.payload = payload
        self.status_code = status_code
        self.text = text

    def json(self):
        return self.payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


@pytest.fixture
def fake_response():
    return FakeResponse
