"""
Deadline language: explicit dates, relative phrases and next-meeting wording.

NOW is Wednesday 2026-10-14 09:00 (UTC+7).
"""

from datetime import date, datetime, time

import pytest

from assignment_bot.models import DeadlineType
from assignment_bot.services.deadlines import (
    classify_deadline,
    find_explicit_date,
    find_relative_date,
    find_time_of_day,
    parse_deadline_value,
    resolve_deadline,
)
from tests.conftest import NOW, TZ

TODAY = NOW.date()
END_OF_DAY = time(23, 59)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("besok jam 10", time(10, 0)),
        ("pukul 10.30 ya", time(10, 30)),
        ("deadline 23:59", time(23, 59)),
        ("LKP 15", None),
        ("jam 25", None),
    ],
)
def test_time_of_day(text, expected):
    assert find_time_of_day(text) == expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("kumpul 2026-10-20", date(2026, 10, 20)),
        ("paling lambat 20/10", date(2026, 10, 20)),
        ("deadline 20-10-2026", date(2026, 10, 20)),
        ("12 Januari", date(2027, 1, 12)),
        ("1 Nov", date(2026, 11, 1)),
        ("31/02", None),
        ("LKP 1-3", None),
        ("soal 20-10", None),
        ("LKP 15", None),
    ],
)
def test_explicit_date(text, expected):
    assert find_explicit_date(text, TODAY) == expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("kumpul hari ini", date(2026, 10, 14)),
        ("besok ya", date(2026, 10, 15)),
        ("lusa", date(2026, 10, 16)),
        ("minggu depan", date(2026, 10, 21)),
        ("dalam 3 hari", date(2026, 10, 17)),
        ("in 2 days", date(2026, 10, 16)),
        ("jumat", date(2026, 10, 16)),
        ("rabu", date(2026, 10, 21)),
        ("LKP 15", None),
    ],
)
def test_relative_date(text, expected):
    assert find_relative_date(text, TODAY) == expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Pemrog LKP 15 besok jam 10", DeadlineType.RELATIVE),
        ("besok, paling lambat 20/10", DeadlineType.EXPLICIT),
        ("kumpul sebelum pertemuan berikutnya", DeadlineType.NEXT_MEETING),
        ("submit before next class", DeadlineType.NEXT_MEETING),
        ("LKP 15 sudah ada di LMS", DeadlineType.UNKNOWN),
        ("pemrog LKP 1-3 besok", DeadlineType.RELATIVE),
    ],
)
def test_classify_deadline(text, expected):
    assert classify_deadline(text, TODAY) is expected


def test_resolve_relative_uses_stated_time():
    resolved = resolve_deadline("besok jam 10", DeadlineType.RELATIVE, NOW, END_OF_DAY)
    assert resolved == datetime(2026, 10, 15, 10, 0, tzinfo=TZ)


def test_resolve_defaults_to_end_of_day():
    resolved = resolve_deadline("kumpul 20/10", DeadlineType.EXPLICIT, NOW, END_OF_DAY)
    assert resolved == datetime(2026, 10, 20, 23, 59, tzinfo=TZ)


def test_resolve_leaves_next_meeting_to_caller():
    assert resolve_deadline("sebelum kelas", DeadlineType.NEXT_MEETING, NOW, END_OF_DAY) is None


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2026-10-20 10:00", datetime(2026, 10, 20, 10, 0, tzinfo=TZ)),
        ("2026-10-20", datetime(2026, 10, 20, 23, 59, tzinfo=TZ)),
        ("20 Oktober jam 8", datetime(2026, 10, 20, 8, 0, tzinfo=TZ)),
        ("besok", datetime(2026, 10, 15, 23, 59, tzinfo=TZ)),
        ("", None),
        ("secepatnya", None),
        (None, None),
    ],
)
def test_parse_deadline_value(value, expected):
    assert parse_deadline_value(value, NOW, END_OF_DAY) == expected


def test_numbered_range_does_not_hide_relative_deadline():
    text = "pemrog LKP 1-3 besok"
    resolved = resolve_deadline(text, classify_deadline(text, TODAY), NOW, END_OF_DAY)
    assert resolved == datetime(2026, 10, 15, 23, 59, tzinfo=TZ)
