# parsing.py
"""
Free text -> ParsedRequest.

Extractors expose ``extract(text) -> ParsedRequest | None``. parse_smart()
tries the model-backed ones in order and falls back to the regex parser,
which always answers.
"""
import json
import logging
import re
from typing import Dict, List, Optional, Sequence

import requests

import settings
from models import ParsedRequest, SchedulingConstraints, TimeConstraint
from timeutils import minutes_to_time

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MIN = 60
MIN_MODEL_DURATION_MIN = 15

# ---------- regex helpers ----------
DUR_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*(hours|hour|hrs|hr|h|minutes|minute|mins|min|m)\b", re.I)
HALF_HOUR_RE = re.compile(r"\bhalf\s+an?\s+hour\b", re.I)
AN_HOUR_RE = re.compile(r"\b(?:an|one)\s+hour\b", re.I)

CLOCK = r"(\d{1,2})(?::(\d{2}))?\s*(am|pm)?"
BETWEEN_RE = re.compile(r"\b(?:between|from)\s+" + CLOCK + r"\s*(?:and|-|to)\s*" + CLOCK, re.I)
AFTER_RE = re.compile(r"\b(?:after|from|starting)\s+" + CLOCK + r"\b", re.I)
BEFORE_RE = re.compile(r"\b(?:before|until|till|by)\s+" + CLOCK + r"\b", re.I)
AT_RE = re.compile(r"\bat\s+" + CLOCK + r"\b", re.I)
TIME_RE = re.compile(r"\b(\d{1,2}):(\d{2})\s*(am|pm)?\b|\b(\d{1,2})\s*(am|pm)\b", re.I)

DAY_PATTERNS = [
    (re.compile(r"\btomm?orr?ow\b|\btmrw\b", re.I), "tomorrow"),
    (re.compile(r"\btoday\b", re.I), "today"),
    (re.compile(r"\bthis\s+week\b", re.I), "this_week"),
    (re.compile(r"\bnext\s+week\b", re.I), "next_week"),
]

# 0 = Sunday, matching TimeConstraint.day_of_week
WEEKDAY_MAP = {
    "sunday": 0, "monday": 1, "tuesday": 2, "wednesday": 3,
    "thursday": 4, "friday": 5, "saturday": 6,
}
WEEKDAY_RE = re.compile(r"\b(sun|mon|tue|tues|wed|thu|thur|thurs|fri|sat)(?:day|nesday|rsday|urday|sday)?\b", re.I)

WINDOW_PATTERNS = [
    (re.compile(r"\bmorning\b", re.I), "morning"),
    (re.compile(r"\bafternoon\b", re.I), "afternoon"),
    (re.compile(r"\bevening\b", re.I), "evening"),
    (re.compile(r"\b(?:to)?night\b", re.I), "night"),
]

_STOP_WORDS = r"\s+(?:at|in|on|for|tomorrow|today|tonight|next|this|after|before|between|by|from|until|about)\b"
_STOP = r"(?=" + _STOP_WORDS + r"|[,.?!;]|$)"
# names may be comma separated, so a comma does not end the list
PARTICIPANT_RE = re.compile(r"\b(?:with|including)\s+(.+?)(?=" + _STOP_WORDS + r"|[.?!;]|$)", re.I)
LOCATION_RE = re.compile(
    r"\b(?:at|in)\s+(?!\d)(?!(?:the\s+)?(?:morning|afternoon|evening|night|noon|midnight|person)\b)"
    r"([A-Za-z][\w'&-]*(?:\s+[\w'&-]+)*?)" + _STOP,
    re.I,
)

PRIORITY_PATTERNS = [
    (re.compile(r"\bexams?\b", re.I), "exam"),
    (re.compile(r"\bstudy(?:ing)?\b", re.I), "study"),
    (re.compile(r"\b(?:workout|gym)\b", re.I), "workout"),
    (re.compile(r"\bsocial\b", re.I), "social"),
]


def parse_duration_minutes(text: str) -> Optional[int]:
    if HALF_HOUR_RE.search(text):
        return 30
    m = DUR_RE.search(text)
    if m:
        value = float(m.group(1).replace(",", "."))
        unit = m.group(2).lower()
        return int(round(value * 60)) if unit.startswith("h") else int(round(value))
    if AN_HOUR_RE.search(text):
        return 60
    return None


def to_clock(hour: str, minute: Optional[str], meridiem: Optional[str]) -> Optional[str]:
    """('2', None, 'pm') -> '14:00'; None when out of range."""
    h = int(hour)
    m = int(minute or 0)
    mer = (meridiem or "").lower()
    if mer == "pm" and h < 12:
        h += 12
    if mer == "am" and h == 12:
        h = 0
    if 0 <= h < 24 and 0 <= m < 60:
        return minutes_to_time(h * 60 + m)
    return None


def parse_time_constraints(text: str) -> TimeConstraint:
    fields: Dict = {}

    for pattern, day in DAY_PATTERNS:
        if pattern.search(text):
            fields["relative_day"] = day
            break

    wd = WEEKDAY_RE.search(text)
    if wd:
        prefix = wd.group(1).lower()[:3]
        fields["day_of_week"] = next(i for name, i in WEEKDAY_MAP.items() if name.startswith(prefix))

    for pattern, window in WINDOW_PATTERNS:
        if pattern.search(text):
            fields["time_window"] = window
            break

    m = BETWEEN_RE.search(text)
    if m:
        # "between 2 and 5pm": the second meridiem applies to both
        fields["start_time"] = to_clock(m.group(1), m.group(2), m.group(3) or m.group(6))
        fields["end_time"] = to_clock(m.group(4), m.group(5), m.group(6))
    else:
        after = AFTER_RE.search(text)
        before = BEFORE_RE.search(text)
        if after:
            fields["start_time"] = to_clock(*after.groups())
        if before:
            fields["end_time"] = to_clock(*before.groups())
        if not after and not before:
            at = AT_RE.search(text)
            if at:
                fields["start_time"] = to_clock(*at.groups())
            else:
                tm = TIME_RE.search(text)
                if tm:
                    if tm.group(1):
                        fields["start_time"] = to_clock(tm.group(1), tm.group(2), tm.group(3))
                    else:
                        fields["start_time"] = to_clock(tm.group(4), None, tm.group(5))

    return TimeConstraint(**{k: v for k, v in fields.items() if v is not None})


def parse_participants(text: str) -> List[str]:
    m = PARTICIPANT_RE.search(text)
    if not m:
        return []
    names = re.split(r"\s*,\s*|\s+and\s+|\s*&\s*", m.group(1))
    return [n.strip() for n in names if n.strip()]


def parse_location(text: str) -> Optional[str]:
    m = LOCATION_RE.search(text)
    return m.group(1).strip() if m else None


def parse_priority(text: str) -> Optional[str]:
    for pattern, priority in PRIORITY_PATTERNS:
        if pattern.search(text):
            return priority
    return None


def _summary(duration: int, tc: TimeConstraint, participants: Sequence[str],
             location: Optional[str], priority: Optional[str], duration_given: bool = True) -> str:
    parts = [f"{duration // 60}h {duration % 60}m" if duration_given else "1 hour"]
    if tc.relative_day:
        parts.append(tc.relative_day.replace("_", " "))
    if tc.day_of_week is not None:
        parts.append("on " + next(n for n, i in WEEKDAY_MAP.items() if i == tc.day_of_week).title())
    if tc.time_window:
        parts.append(f"in the {tc.time_window}")
    if tc.start_time:
        parts.append(f"after {tc.start_time}")
    if tc.end_time:
        parts.append(f"before {tc.end_time}")
    if participants:
        parts.append("with " + ", ".join(participants))
    if location:
        parts.append(f"at {location}")
    if priority:
        parts.append(f"({priority} priority)")
    return " ".join(parts)


def parse_request(text: str) -> ParsedRequest:
    """Regex extraction. Never fails; missing pieces become assumptions."""
    text = (text or "").strip()
    assumptions = []

    duration = parse_duration_minutes(text)
    if not duration:
        assumptions.append("No duration specified, defaulting to 1 hour")
    tc = parse_time_constraints(text)
    participants = parse_participants(text)
    location = parse_location(text)
    priority = parse_priority(text)

    constraints = SchedulingConstraints(
        duration=duration or DEFAULT_DURATION_MIN,
        participants=participants,
        location=location,
        priority=priority,
        time_constraints=tc,
    )
    summary = _summary(constraints.duration, tc, participants, location, priority, duration_given=bool(duration))
    logger.debug("parse_request: %r -> %s", text, summary)
    return ParsedRequest(constraints=constraints, normalized_summary=summary, assumptions=assumptions)


class RegexExtractor:
    name = "regex"

    def extract(self, text: str) -> Optional[ParsedRequest]:
        return parse_request(text)


# ---------- model-backed extractors ----------
SYSTEM_PROMPT = (
    "You extract meeting scheduling constraints from raw text.\n"
    "Return strict JSON with keys: duration (minutes, integer), participants (string[] of names if given), "
    "location (string|null), priority (string|null: exam|study|workout|social|high|medium|low), "
    "timeConstraints: { relativeDay?: 'today'|'tomorrow'|'this_week'|'next_week', "
    "timeWindow?: 'morning'|'afternoon'|'evening'|'night', startTime?: 'HH:MM', endTime?: 'HH:MM' }"
)


def build_user_prompt(text: str) -> str:
    return f"Text: {text}\nReturn JSON only."


def json_from_reply(content: str) -> dict:
    json_str = content[content.find("{"):content.rfind("}") + 1]
    return json.loads(json_str)


def to_parsed_request(data: dict) -> ParsedRequest:
    duration = max(MIN_MODEL_DURATION_MIN, int(data.get("duration") or DEFAULT_DURATION_MIN))
    participants = data.get("participants") if isinstance(data.get("participants"), list) else []
    constraints = SchedulingConstraints.model_validate({
        "duration": duration,
        "participants": [str(p) for p in participants],
        "location": data.get("location") or None,
        "priority": data.get("priority") or None,
        "timeConstraints": data.get("timeConstraints") or {},
    })
    summary = f"{duration // 60}h {duration % 60}m"
    if constraints.participants:
        summary += " with " + ", ".join(constraints.participants)
    return ParsedRequest(constraints=constraints, normalized_summary=summary, assumptions=[])


class ModelExtractor:
    name = "model"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 timeout: Optional[float] = None):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout if timeout is not None else settings.AI_TIMEOUT

    def _complete(self, text: str) -> str:
        raise NotImplementedError

    def extract(self, text: str) -> Optional[ParsedRequest]:
        if not self.api_key:
            return None
        try:
            return to_parsed_request(json_from_reply(self._complete(text)))
        except (requests.RequestException, ValueError, KeyError, IndexError, TypeError) as e:
            # non-fatal: the chain moves on to the next extractor
            logger.warning("parsing: %s extraction failed: %s", self.name, e)
            return None

    def _messages(self, text: str) -> List[Dict]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_user_prompt(text)},
        ]


class GroqExtractor(ModelExtractor):
    name = "groq"
    URL = "https://api.groq.com/openai/v1/chat/completions"

    def __init__(self, api_key=None, model=None, timeout=None):
        super().__init__(api_key or settings.GROQ_API_KEY, model or settings.GROQ_MODEL, timeout)

    def _complete(self, text: str) -> str:
        r = requests.post(
            self.URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={"model": self.model, "temperature": 0.2, "messages": self._messages(text)},
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json()["choices"][0]["message"]["content"]


class CohereExtractor(ModelExtractor):
    name = "cohere"
    URL = "https://api.cohere.com/v2/chat"

    def __init__(self, api_key=None, model=None, timeout=None):
        super().__init__(api_key or settings.COHERE_API_KEY, model or settings.COHERE_MODEL, timeout)

    def _complete(self, text: str) -> str:
        r = requests.post(
            self.URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={"model": self.model, "temperature": 0.2, "messages": self._messages(text)},
            timeout=self.timeout,
        )
        r.raise_for_status()
        data = r.json()
        return data["message"]["content"][0]["text"]


class GeminiExtractor(ModelExtractor):
    name = "gemini"
    URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    def __init__(self, api_key=None, model=None, timeout=None):
        super().__init__(api_key or settings.GEMINI_API_KEY, model or settings.GEMINI_MODEL, timeout)

    def _complete(self, text: str) -> str:
        r = requests.post(
            self.URL.format(model=self.model),
            params={"key": self.api_key},
            json={"contents": [
                {"role": "user", "parts": [{"text": SYSTEM_PROMPT}]},
                {"role": "user", "parts": [{"text": build_user_prompt(text)}]},
            ]},
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json()["candidates"][0]["content"]["parts"][0]["text"]


EXTRACTORS = {"groq": GroqExtractor, "cohere": CohereExtractor, "gemini": GeminiExtractor}


def default_extractors() -> List[ModelExtractor]:
    pref = settings.AI_PARSER_PROVIDER
    if pref in EXTRACTORS:
        return [EXTRACTORS[pref]()]
    return [CohereExtractor(), GroqExtractor(), GeminiExtractor()]


def parse_smart(text: str, extractors: Optional[Sequence] = None) -> ParsedRequest:
    """First extractor returning a result wins; the regex parser is the last resort."""
    chain = default_extractors() if extractors is None else extractors
    for extractor in chain:
        out = extractor.extract(text)
        if out is not None:
            logger.info("parse_smart: used %s", getattr(extractor, "name", type(extractor).__name__))
            return out
    return parse_request(text)
