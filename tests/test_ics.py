from datetime import datetime

from conftest import at
from ics import build_ics, format_ics_date


def test_format_ics_date_normalises_to_utc():
    assert format_ics_date("2025-10-07T14:00:00+02:00") == "20251007T120000Z"
    assert format_ics_date(datetime(2025, 10, 7, 9, 30)) == "20251007T093000Z"
    assert format_ics_date(at("23:15")) == "20251007T231500Z"


def test_build_ics():
    content = build_ics(
        "Design review",
        "2025-10-07T10:00:00Z",
        at("11:00"),
        description="Agenda:\nslides\r\nnotes",
        location="Room 4",
        now=at("08:00"),
        uid="abc",
    )
    assert content.split("\r\n") == [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Group Scheduler//EN",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "BEGIN:VEVENT",
        "UID:abc@group-scheduler",
        "DTSTAMP:20251007T080000Z",
        "DTSTART:20251007T100000Z",
        "DTEND:20251007T110000Z",
        "SUMMARY:Design review",
        "DESCRIPTION:Agenda: slides  notes",
        "LOCATION:Room 4",
        "END:VEVENT",
        "END:VCALENDAR",
    ]


def test_build_ics_optional_fields():
    content = build_ics("Sync", at("10:00"), at("10:30"))
    assert "DESCRIPTION" not in content
    assert "LOCATION" not in content
    assert content.count("UID:") == 1
