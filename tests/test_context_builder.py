import asyncio
from datetime import datetime

import aiosqlite

from assignment_bot.models import DeadlineType, SectionSource
from assignment_bot.services.context_builder import ContextBuilder
from assignment_bot.services.schedule import ScheduleOracle
from tests.conftest import TZ, FakeHistory, make_message
from tests.test_schedule import TIMETABLE

SENDER = "628111@c.us"


def build(directory, text, history=None, oracle=None):
    builder = ContextBuilder(
        directory,
        history or FakeHistory(),
        oracle or ScheduleOracle(),
    )
    return asyncio.run(builder.build(make_message(text, sender_id=SENDER)))


def test_no_course_no_hints(directory):
    context = build(directory, "LKP 15 besok jam 10 K1")
    assert context.course_hints == []
    assert context.global_section is None
    assert context.section_source is SectionSource.UNKNOWN
    assert context.deadline_type is DeadlineType.RELATIVE


def test_history_section_and_relative_deadline(directory):
    history = FakeHistory({(SENDER, 1): [("K1", 5)]})
    context = build(directory, "Pemrog LKP 15 besok jam 10", history)

    [hint] = context.course_hints
    assert hint.course.name == "Pemrograman"
    assert hint.section_code == "K1"
    assert hint.section_source is SectionSource.SENDER_HISTORY
    assert hint.section_confidence == 1.0
    assert hint.deadline_type is DeadlineType.RELATIVE
    assert hint.deadline_hint == datetime(2026, 10, 15, 10, 0, tzinfo=TZ)

    assert context.global_section == "K1"
    assert context.section_source is SectionSource.SENDER_HISTORY


def test_history_confidence_is_share_of_top_sections(directory):
    history = FakeHistory({(SENDER, 1): [("K2", 3), ("K1", 1)]})
    [hint] = build(directory, "pemrog kuis", history).course_hints
    assert hint.section_code == "K2"
    assert hint.section_confidence == 0.75


def test_different_explicit_sections_never_cross(directory):
    context = build(directory, "Pemrog K1 LKP 3, strukdat K2 kuis 2 besok")
    assert [(h.course.name, h.section_code) for h in context.course_hints] == [
        ("Pemrograman", "K1"),
        ("Struktur Data", "K2"),
    ]
    assert all(h.section_source is SectionSource.EXPLICIT for h in context.course_hints)
    assert context.global_section is None


def test_agreeing_sections_set_global(directory):
    history = FakeHistory({(SENDER, 2): [("K1", 3), ("K3", 2)]})
    context = build(directory, "pemrog k1 LKP 3, strukdat kuis 2", history)
    assert context.global_section == "K1"
    assert context.section_source is SectionSource.EXPLICIT
    assert context.section_confidence == 0.6


def test_one_unknown_section_blocks_global(directory):
    context = build(directory, "pemrog K1 LKP 3, strukdat kuis 2")
    assert context.course_hints[1].section_code is None
    assert context.global_section is None


def test_next_meeting_from_schedule(directory):
    oracle = ScheduleOracle.from_dict(TIMETABLE, directory)
    context = build(directory, "pemrog K1 kumpul sebelum pertemuan berikutnya", oracle=oracle)
    [hint] = context.course_hints
    assert hint.deadline_type is DeadlineType.NEXT_MEETING
    assert hint.deadline_hint == datetime(2026, 10, 15, 13, 0, tzinfo=TZ)


def test_next_meeting_without_schedule_degrades(directory):
    context = build(directory, "pemrog K3 kumpul sebelum pertemuan berikutnya")
    [hint] = context.course_hints
    assert hint.deadline_hint is None
    assert hint.deadline_type is DeadlineType.UNKNOWN


class BrokenHistory(FakeHistory):
    async def top_sections(self, sender_id, course_id, limit=3):
        raise aiosqlite.OperationalError("database is locked")


def test_history_failure_leaves_section_unknown(directory):
    [hint] = build(directory, "pemrog LKP 1", BrokenHistory()).course_hints
    assert hint.section_code is None
    assert hint.section_source is SectionSource.UNKNOWN


def test_prompt_dict_is_serializable(directory):
    context = build(directory, "pemrog K1 LKP 1 besok")
    data = context.to_prompt_dict()
    assert data["global_section"] == "K1"
    assert data["course_hints"][0]["deadline_hint"] == "2026-10-15 23:59"


def test_section_written_before_course_stays_with_it(directory):
    context = build(directory, "K1 pemrog LKP 3, K2 strukdat kuis 2")
    assert [(h.course.name, h.section_code) for h in context.course_hints] == [
        ("Pemrograman", "K1"),
        ("Struktur Data", "K2"),
    ]


def test_sections_split_without_separator(directory):
    context = build(directory, "pemrog K1 LKP 3 strukdat K2 kuis 2")
    assert [(h.course.name, h.section_code) for h in context.course_hints] == [
        ("Pemrograman", "K1"),
        ("Struktur Data", "K2"),
    ]


def test_equally_close_codes_are_left_unknown(directory):
    [hint] = build(directory, "K1 pemrog K2 LKP 3").course_hints
    assert hint.section_code is None
    assert hint.section_source is SectionSource.UNKNOWN


def test_each_course_keeps_its_own_deadline(directory):
    context = build(directory, "pemrog LKP 3 besok, strukdat kuis 2 lusa")
    assert [h.deadline_hint for h in context.course_hints] == [
        datetime(2026, 10, 15, 23, 59, tzinfo=TZ),
        datetime(2026, 10, 16, 23, 59, tzinfo=TZ),
    ]


def test_deadline_is_not_lent_to_another_course(directory):
    context = build(directory, "pemrog LKP 3, strukdat kuis 2 besok")
    pemrog, strukdat = context.course_hints
    assert pemrog.deadline_hint is None
    assert pemrog.deadline_type is DeadlineType.UNKNOWN
    assert strukdat.deadline_hint == datetime(2026, 10, 15, 23, 59, tzinfo=TZ)
    assert context.deadline_type is DeadlineType.RELATIVE
