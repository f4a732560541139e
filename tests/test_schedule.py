import json
from datetime import datetime, time

from assignment_bot.services.schedule import ScheduleOracle
from tests.conftest import NOW, TZ

TIMETABLE = {
    "Senin": [
        {"course": "KOM120C - Pemrograman", "parallel": "K1", "schedule": "08:00-09:40"},
    ],
    "Kamis": [
        {"course": "Pemrograman", "parallel": "K1", "schedule": "13:00-14:40"},
        {"course": "Struktur Data", "parallel": "K2", "schedule": "10:00-11:40"},
    ],
    "Rabu": [
        {"course": "Struktur Data", "parallel": "K1", "schedule": "07:00-08:40"},
        {"course": "Kalkulus", "parallel": "K1", "schedule": "07:00-08:40"},
    ],
    "Holiday": [],
}


def test_next_meeting_picks_earliest_later_day(directory):
    oracle = ScheduleOracle.from_dict(TIMETABLE, directory)
    # NOW is Wednesday; Thursday 13:00 comes before next Monday.
    assert oracle.next_meeting(1, "K1", NOW) == datetime(2026, 10, 15, 13, 0, tzinfo=TZ)
    assert oracle.next_meeting(1, "k1", NOW).tzinfo == TZ


def test_same_weekday_resolves_to_next_week(directory):
    oracle = ScheduleOracle.from_dict(TIMETABLE, directory)
    # Struktur Data K1 meets on Wednesdays, which is today.
    assert oracle.next_meeting(2, "K1", NOW) == datetime(2026, 10, 21, 7, 0, tzinfo=TZ)


def test_no_entry_is_none(directory):
    oracle = ScheduleOracle.from_dict(TIMETABLE, directory)
    assert oracle.next_meeting(2, "K3", NOW) is None
    assert oracle.next_meeting(1, None, NOW) is None
    assert oracle.next_meeting(5, "K1", NOW) is None


def test_from_file_missing_is_empty(tmp_path, directory):
    oracle = ScheduleOracle.from_file(tmp_path / "nope.json", directory)
    assert oracle.next_meeting(1, "K1", NOW) is None


def test_from_file(tmp_path, directory):
    path = tmp_path / "schedule.json"
    path.write_text(json.dumps(TIMETABLE), encoding="utf-8")
    oracle = ScheduleOracle.from_file(path, directory)
    assert oracle.next_meeting(2, "K2", NOW).time() == time(10, 0)
