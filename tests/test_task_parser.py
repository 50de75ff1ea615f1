from datetime import datetime

import pytest
from pydantic import ValidationError

from mobile.taskly.tasks.parser import parse_spoken_task

# Tuesday
NOW = datetime(2024, 10, 1, 10, 0)


@pytest.mark.parametrize(
    "transcript, title, when",
    [
        ("remind me to call mom tomorrow at 3pm", "Call mom", datetime(2024, 10, 2, 15, 0)),
        ("create task: buy groceries", "Buy groceries", None),
        ("schedule dentist appointment on Oct 5 at 3pm", "Dentist appointment", datetime(2024, 10, 5, 15, 0)),
        ("", "Untitled task", None),
        ("add meeting next week at 2:30", "Untitled task", datetime(2024, 10, 8, 2, 30)),
        ("Call Bob next tuesday", "Call Bob", datetime(2024, 10, 8, 9, 0)),
        ("call bob next friday", "Call bob", datetime(2024, 10, 4, 9, 0)),
        ("watch a movie tonight", "Watch a movie", datetime(2024, 10, 1, 20, 0)),
        ("add a note finish report today", "Finish report", datetime(2024, 10, 1, 14, 0)),
        ("water plants tomorrow", "Water plants", datetime(2024, 10, 2, 9, 0)),
        ("pay rent on 12/25", "Pay rent", datetime(2024, 12, 25, 9, 0)),
        ("book flights on September 3rd", "Book flights", datetime(2024, 9, 3, 9, 0)),
    ],
)
def test_spoken_commands(transcript, title, when):
    task = parse_spoken_task(transcript, now=NOW)
    assert task.title == title
    assert task.when == when
    assert task.raw_transcript == transcript


def test_bare_time_rolls_to_tomorrow_when_past():
    assert parse_spoken_task("call bob at 9am", now=NOW).when == datetime(2024, 10, 2, 9, 0)
    assert parse_spoken_task("call bob at 11am", now=NOW).when == datetime(2024, 10, 1, 11, 0)
    assert parse_spoken_task("check oven at 12am", now=NOW).when == datetime(2024, 10, 2, 0, 0)


def test_impossible_dates_and_times_leave_when_empty():
    task = parse_spoken_task("pay rent on Feb 30", now=NOW)
    assert task.when is None
    assert task.title == "Pay rent"
    assert parse_spoken_task("call bob at 25", now=NOW).when is None


def test_title_drops_trailing_punctuation():
    assert parse_spoken_task("Make a new task: feed the cat.", now=NOW).title == "New task: feed the cat"
    assert parse_spoken_task("remind me to stretch!", now=NOW).title == "Stretch"


def test_parsed_task_is_frozen_and_serializable():
    task = parse_spoken_task("remind me to call mom tomorrow at 3pm", now=NOW)
    with pytest.raises(ValidationError):
        task.title = "changed"
    assert task.to_payload() == {
        "title": "Call mom",
        "when": "2024-10-02T15:00:00",
        "raw_transcript": "remind me to call mom tomorrow at 3pm",
    }


def test_schedule_words_inside_the_title_are_kept():
    task = parse_spoken_task("add note about tomorrow's meeting", now=NOW)
    assert task.title == "About tomorrow's meeting"

    task = parse_spoken_task("remind me to review today's notes tomorrow", now=NOW)
    assert task.title == "Review today's notes"
    assert task.when == datetime(2024, 10, 2, 9, 0)