import json

import pytest
import requests

import parsing
import settings
from parsing import (
    CohereExtractor,
    GeminiExtractor,
    GroqExtractor,
    RegexExtractor,
    default_extractors,
    parse_duration_minutes,
    parse_location,
    parse_participants,
    parse_priority,
    parse_request,
    parse_smart,
    parse_time_constraints,
    to_clock,
)


@pytest.mark.parametrize("text,expected", [
    ("a 30 min call", 30),
    ("1.5 hours of review", 90),
    ("2h workshop", 120),
    ("half an hour sync", 30),
    ("an hour with the team", 60),
    ("45 minutes", 45),
    ("lunch", None),
])
def test_parse_duration(text, expected):
    assert parse_duration_minutes(text) == expected


def test_to_clock():
    assert to_clock("2", None, "pm") == "14:00"
    assert to_clock("12", None, "am") == "00:00"
    assert to_clock("12", "30", "pm") == "12:30"
    assert to_clock("9", "15", None) == "09:15"
    assert to_clock("25", None, None) is None


@pytest.mark.parametrize("text,start,end", [
    ("between 2 and 5pm", "14:00", "17:00"),
    ("from 2 to 4pm", "14:00", "16:00"),
    ("between 9am and 11:30am", "09:00", "11:30"),
    ("after 3pm", "15:00", None),
    ("before 11am", None, "11:00"),
    ("after 1pm but before 4pm", "13:00", "16:00"),
    ("at 10:30am", "10:30", None),
    ("sometime around 4pm", "16:00", None),
])
def test_parse_time_bounds(text, start, end):
    tc = parse_time_constraints(text)
    assert (tc.start_time, tc.end_time) == (start, end)


def test_parse_days_and_windows():
    tc = parse_time_constraints("tomorrow afternoon")
    assert (tc.relative_day, tc.time_window) == ("tomorrow", "afternoon")
    assert parse_time_constraints("sometime next week").relative_day == "next_week"
    assert parse_time_constraints("meet tmrw").relative_day == "tomorrow"
    assert parse_time_constraints("on Friday").day_of_week == 5
    assert parse_time_constraints("sunday brunch").day_of_week == 0
    assert parse_time_constraints("tonight").time_window == "night"
    assert parse_time_constraints("whenever").model_dump(exclude_none=True) == {}


def test_parse_participants_and_location():
    text = "with Alice and Bob at the library tomorrow"
    assert parse_participants(text) == ["Alice", "Bob"]
    assert parse_location(text) == "the library"
    assert parse_participants("sync with Ann, Ben & Cy.") == ["Ann", "Ben", "Cy"]
    assert parse_location("in Room 101 at 3pm") == "Room 101"
    assert parse_location("meet in the morning at 9") is None
    assert parse_participants("solo focus time") == []


def test_parse_priority():
    assert parse_priority("exam prep") == "exam"
    assert parse_priority("study group") == "study"
    assert parse_priority("gym session") == "workout"
    assert parse_priority("standup") is None


def test_parse_request_full_sentence():
    parsed = parse_request("Schedule a 90 minute study session with Alice and Bob at the library tomorrow afternoon")
    c = parsed.constraints
    assert c.duration == 90
    assert c.participants == ["Alice", "Bob"]
    assert c.location == "the library"
    assert c.priority == "study"
    assert c.time_constraints.relative_day == "tomorrow"
    assert c.time_constraints.time_window == "afternoon"
    assert parsed.assumptions == []
    assert parsed.normalized_summary == "1h 30m tomorrow in the afternoon with Alice, Bob at the library (study priority)"


def test_parse_request_defaults_duration():
    parsed = parse_request("catch up with Dana")
    assert parsed.constraints.duration == 60
    assert parsed.assumptions == ["No duration specified, defaulting to 1 hour"]
    assert parsed.normalized_summary == "1 hour with Dana"


# ---------- model-backed extractors ----------
REPLY = json.dumps({
    "duration": 45,
    "participants": ["Ann"],
    "location": None,
    "priority": "social",
    "timeConstraints": {"relativeDay": "tomorrow", "timeWindow": "Evening", "startTime": "18:00"},
})


@pytest.fixture
def posts(monkeypatch, fake_response):
    calls = []
    replies = {}

    def fake_post(url, **kwargs):
        calls.append((url, kwargs))
        return replies.get("response") or fake_response({})

    monkeypatch.setattr(parsing.requests, "post", fake_post)
    return calls, replies


def test_groq_extractor(posts, fake_response):
    calls, replies = posts
    replies["response"] = fake_response({"choices": [{"message": {"content": f"```json\n{REPLY}\n```"}}]})

    parsed = GroqExtractor(api_key="k").extract("drinks with Ann tomorrow evening")
    c = parsed.constraints
    assert (c.duration, c.participants, c.priority) == (45, ["Ann"], "social")
    assert c.time_constraints.time_window == "evening"
    assert c.time_constraints.start_time == "18:00"

    url, kwargs = calls[0]
    assert url == GroqExtractor.URL
    assert kwargs["headers"]["Authorization"] == "Bearer k"
    assert kwargs["json"]["model"] == settings.GROQ_MODEL
    assert kwargs["json"]["messages"][1]["content"].startswith("Text: drinks with Ann")


def test_cohere_extractor(posts, fake_response):
    calls, replies = posts
    replies["response"] = fake_response({"message": {"content": [{"type": "text", "text": REPLY}]}})
    assert CohereExtractor(api_key="k").extract("x").constraints.duration == 45
    assert calls[0][0] == CohereExtractor.URL


def test_gemini_extractor(posts, fake_response):
    calls, replies = posts
    replies["response"] = fake_response({"candidates": [{"content": {"parts": [{"text": REPLY}]}}]})
    assert GeminiExtractor(api_key="k", model="m1").extract("x").constraints.participants == ["Ann"]
    url, kwargs = calls[0]
    assert url.endswith("/models/m1:generateContent")
    assert kwargs["params"] == {"key": "k"}


def test_model_duration_has_a_floor(posts, fake_response):
    _, replies = posts
    replies["response"] = fake_response({"choices": [{"message": {"content": '{"duration": 5}'}}]})
    assert GroqExtractor(api_key="k").extract("x").constraints.duration == 15


def test_extractor_without_key_skips_network(posts):
    calls, _ = posts
    assert GroqExtractor().extract("x") is None
    assert calls == []


@pytest.mark.parametrize("response", [
    {"payload": {}, "status_code": 500},
    {"payload": {"choices": [{"message": {"content": "sorry, no json"}}]}},
    {"payload": {"choices": []}},
    {"payload": {"choices": [{"message": {"content": '{"timeConstraints": {"startTime": "noon"}}'}}]}},
])
def test_extractor_failures_return_none(posts, fake_response, response):
    _, replies = posts
    replies["response"] = fake_response(**response)
    assert GroqExtractor(api_key="k").extract("x") is None


def test_network_error_returns_none(monkeypatch):
    def down(url, **kwargs):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(parsing.requests, "post", down)
    assert CohereExtractor(api_key="k").extract("x") is None


# ---------- fallback chain ----------
class Fixed:
    name = "fixed"

    def __init__(self, result):
        self.result = result

    def extract(self, text):
        return self.result


def test_parse_smart_first_result_wins():
    winner = RegexExtractor().extract("30 min with Zoe")
    other = RegexExtractor().extract("2 hours")
    assert parse_smart("ignored", [Fixed(None), Fixed(winner), Fixed(other)]) is winner


def test_parse_smart_falls_back_to_regex(posts):
    calls, _ = posts
    parsed = parse_smart("30 min with Zoe")
    assert parsed.constraints.duration == 30
    assert parsed.constraints.participants == ["Zoe"]
    assert calls == []


def test_default_extractors(monkeypatch):
    assert [e.name for e in default_extractors()] == ["cohere", "groq", "gemini"]
    monkeypatch.setattr(settings, "AI_PARSER_PROVIDER", "gemini")
    assert [e.name for e in default_extractors()] == ["gemini"]


def test_model_reply_with_unknown_window_is_kept(posts, fake_response):
    _, replies = posts
    reply = '{"duration": 30, "timeConstraints": {"timeWindow": "midday", "relativeDay": "next week"}}'
    replies["response"] = fake_response({"choices": [{"message": {"content": reply}}]})
    tc = GroqExtractor(api_key="k").extract("x").constraints.time_constraints
    assert (tc.time_window, tc.relative_day) == ("midday", "next_week")
