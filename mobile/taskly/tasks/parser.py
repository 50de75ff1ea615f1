"""Turn a spoken command ("remind me to call mom tomorrow at 3pm") into a task."""

from __future__ import annotations

import logging
import re
from datetime import datetime, time, timedelta
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict

LOGGER = logging.getLogger("taskly.parser")

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
MONTHS = {
    "january": 1,
    "february": 2,
    "march": 3,
    "april": 4,
    "may": 5,
    "june": 6,
    "july": 7,
    "august": 8,
    "september": 9,
    "sept": 9,
    "october": 10,
    "november": 11,
    "december": 12,
}
MONTHS.update({name[:3]: number for name, number in list(MONTHS.items())})

_MONTH_NAMES = "|".join(sorted(MONTHS, key=len, reverse=True))

COMMAND_PREFIX = re.compile(
    r"^(create|add|make|new|schedule|remind me to|remind me|set reminder to|set reminder)\s+(a\s+|an\s+)?",
    re.IGNORECASE,
)
TASK_TYPE = re.compile(r"^(task|reminder|meeting|appointment|event|note)[\s:]+", re.IGNORECASE)

TOMORROW = re.compile(r"\btomorrow\b", re.IGNORECASE)
TODAY = re.compile(r"\b(today|tonight)\b", re.IGNORECASE)
NEXT_WEEK = re.compile(r"\bnext\s+week\b", re.IGNORECASE)
NEXT_WEEKDAY = re.compile(rf"\bnext\s+({'|'.join(WEEKDAYS)})\b", re.IGNORECASE)
MONTH_DAY = re.compile(rf"\bon\s+({_MONTH_NAMES})\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?\b", re.IGNORECASE)
NUMERIC_DATE = re.compile(r"\bon\s+(\d{1,2})/(\d{1,2})\b", re.IGNORECASE)
TIME_OF_DAY = re.compile(r"\bat\s+(\d{1,2})(?::(\d{2}))?\s*(am|pm)?\b", re.IGNORECASE)

# A scheduling phrase at the end of the title, with any trailing punctuation.
TRAILING_SCHEDULE = re.compile(
    r"(?:^|\s+)(?:tomorrow|today|tonight"
    r"|this\s+(?:morning|afternoon|evening|week|month)"
    rf"|next\s+(?:week|month|{'|'.join(WEEKDAYS)})"
    rf"|on\s+(?:{_MONTH_NAMES})\.?\s+\d{{1,2}}(?:st|nd|rd|th)?"
    r"|on\s+\d{1,2}/\d{1,2}"
    r"|at\s+\d{1,2}(?::\d{2})?\s*(?:am|pm)?)[\s.,;:!?-]*$",
    re.IGNORECASE,
)

DEFAULT_TIME = time(9, 0)
TONIGHT_TIME = time(20, 0)
TODAY_TIME = time(14, 0)


class ParsedTask(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    when: Optional[datetime] = None
    raw_transcript: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "when": self.when.isoformat() if self.when else None,
            "raw_transcript": self.raw_transcript,
        }


def parse_spoken_task(transcript: str, now: Optional[datetime] = None) -> ParsedTask:
    """Parse a transcript into a title and an optional due time.

    Unrecognised or impossible dates leave ``when`` empty; this function does
    not raise for anything a speaker can say.
    """

    now = now or datetime.now()
    text = " ".join(transcript.split())
    when = extract_when(text, now)
    return ParsedTask(title=extract_title(text), when=when, raw_transcript=transcript)


def extract_title(text: str) -> str:
    title = COMMAND_PREFIX.sub("", text.strip(), count=1)
    title = TASK_TYPE.sub("", title, count=1)
    stripped = None
    while stripped != title:
        stripped = title
        title = TRAILING_SCHEDULE.sub("", title, count=1)
    title = " ".join(title.split()).rstrip(" .,;:!?-")
    if not title:
        return "Untitled task"
    return title[0].upper() + title[1:]


def extract_time_of_day(text: str) -> Optional[Tuple[int, int]]:
    match = TIME_OF_DAY.search(text)
    if not match:
        return None
    hours = int(match.group(1))
    minutes = int(match.group(2) or 0)
    meridiem = (match.group(3) or "").lower()
    if meridiem == "pm" and hours < 12:
        hours += 12
    elif meridiem == "am" and hours == 12:
        hours = 0
    if 0 <= hours < 24 and 0 <= minutes < 60:
        return hours, minutes
    LOGGER.debug("Ignoring impossible time %r", match.group(0))
    return None


def extract_when(text: str, now: datetime) -> Optional[datetime]:
    clock = extract_time_of_day(text)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if TOMORROW.search(text):
        return _at(midnight + timedelta(days=1), clock, DEFAULT_TIME)

    today = TODAY.search(text)
    if today:
        fallback = TONIGHT_TIME if today.group(1).lower() == "tonight" else TODAY_TIME
        return _at(midnight, clock, fallback)

    if NEXT_WEEK.search(text):
        return _at(midnight + timedelta(weeks=1), clock, DEFAULT_TIME)

    weekday = NEXT_WEEKDAY.search(text)
    if weekday:
        days = (WEEKDAYS.index(weekday.group(1).lower()) - now.weekday()) % 7 or 7
        return _at(midnight + timedelta(days=days), clock, DEFAULT_TIME)

    date = _explicit_date(text, now)
    if date is not None:
        return _at(date, clock, DEFAULT_TIME)

    if clock is not None:
        candidate = _at(midnight, clock, DEFAULT_TIME)
        if candidate < now:
            candidate += timedelta(days=1)
        return candidate

    return None


def _explicit_date(text: str, now: datetime) -> Optional[datetime]:
    match = MONTH_DAY.search(text)
    if match:
        month, day = MONTHS[match.group(1).lower()], int(match.group(2))
    else:
        match = NUMERIC_DATE.search(text)
        if not match:
            return None
        month, day = int(match.group(1)), int(match.group(2))
    try:
        return datetime(now.year, month, day, tzinfo=now.tzinfo)
    except ValueError:
        LOGGER.debug("Ignoring impossible date %r", match.group(0))
        return None


def _at(day: datetime, clock: Optional[Tuple[int, int]], fallback: time) -> datetime:
    hours, minutes = clock if clock is not None else (fallback.hour, fallback.minute)
    return day.replace(hour=hours, minute=minutes, second=0, microsecond=0)


__all__ = ["ParsedTask", "extract_title", "extract_when", "parse_spoken_task"]
