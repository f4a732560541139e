import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from assignment_bot.database import DEFAULT_COURSES, init_db
from assignment_bot.models import Course, InboundMessage
from assignment_bot.services.course_directory import CourseDirectory
from assignment_bot.services.providers import Prompt

TZ = timezone(timedelta(hours=7))
# A Wednesday morning.
NOW = datetime(2026, 10, 14, 9, 0, tzinfo=TZ)


def make_directory() -> CourseDirectory:
    """Same ids the seeded database hands out."""
    return CourseDirectory(
        [
            Course(id=i, name=name, aliases=tuple(aliases))
            for i, (name, aliases) in enumerate(DEFAULT_COURSES, start=1)
        ]
    )


def make_message(
    text: str,
    *,
    id: str = "m1",
    sender_id: str = "628111@c.us",
    chat_id: str = "class@g.us",
    received_at: datetime = NOW,
    image_base64: str | None = None,
    from_me: bool = False,
) -> InboundMessage:
    return InboundMessage(
        id=id,
        chat_id=chat_id,
        sender_id=sender_id,
        text=text,
        received_at=received_at,
        image_base64=image_base64,
        from_me=from_me,
    )


def extraction(classification: str, *items: dict) -> dict:
    return {"classification": classification, "items": list(items)}


def item(**fields) -> dict:
    base = {
        "course": None,
        "title": None,
        "description": None,
        "deadline": None,
        "section_code": None,
        "title_change_reason": None,
    }
    base.update(fields)
    return base


def verdict(match_index, confidence: str, reason: str = "") -> dict:
    return {"match_index": match_index, "confidence": confidence, "reason": reason}


class ScriptedEntry:
    """Chain entry that plays back a fixed list of outcomes.

    Each outcome is a dict (returned), an exception (raised) or a number
    (seconds to sleep before returning ``{}``, for timeouts).
    """

    def __init__(self, name: str, outcomes: list, accepts_image: bool = False) -> None:
        self.name = name
        self.outcomes = list(outcomes)
        self.accepts_image = accepts_image
        self.calls: list[tuple[Prompt, object]] = []

    async def infer(self, prompt, image, timeout):
        self.calls.append((prompt, image))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, (int, float)):
            await asyncio.sleep(outcome)
            return {}
        return outcome


class FakeHistory:
    def __init__(self, ranked: dict[tuple[str, int], list[tuple[str, int]]] | None = None) -> None:
        self.ranked = ranked or {}
        self.recorded = []

    async def top_sections(self, sender_id, course_id, limit=3):
        return self.ranked.get((sender_id, course_id), [])[:limit]

    async def record(self, entry):
        self.recorded.append(entry)


@pytest.fixture
def directory() -> CourseDirectory:
    return make_directory()


@pytest.fixture
def db_path(tmp_path) -> str:
    path = str(tmp_path / "assignments.db")
    asyncio.run(init_db(path))
    return path
