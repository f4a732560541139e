import json
import logging
from datetime import datetime, time, timedelta
from pathlib import Path

from assignment_bot.services.course_directory import CourseDirectory

logger = logging.getLogger(__name__)

WEEKDAYS = {
    "senin": 0, "monday": 0,
    "selasa": 1, "tuesday": 1,
    "rabu": 2, "wednesday": 2,
    "kamis": 3, "thursday": 3,
    "jumat": 4, "friday": 4,
    "sabtu": 5, "saturday": 5,
    "minggu": 6, "sunday": 6,
}


class ScheduleOracle:
    """Next-meeting lookup over a static weekly timetable.

    The timetable is keyed by weekday name, each a list of::

        {"course": "KOM120C - Pemrograman", "parallel": "K1", "schedule": "08:00-09:40"}

    Courses are resolved through the course directory when the timetable is
    loaded; rows naming an unknown course are skipped.
    """

    def __init__(self, slots: dict[tuple[int, str], list[tuple[int, time]]] | None = None) -> None:
        self._slots = slots or {}

    @classmethod
    def from_dict(cls, data: dict, directory: CourseDirectory) -> "ScheduleOracle":
        slots: dict[tuple[int, str], list[tuple[int, time]]] = {}
        for day_name, rows in data.items():
            weekday = WEEKDAYS.get(day_name.strip().lower())
            if weekday is None:
                logger.warning("Unknown weekday %r in schedule, skipped", day_name)
                continue
            for row in rows:
                course = directory.resolve(row.get("course"))
                if course is None:
                    logger.warning("Schedule course %r not in directory", row.get("course"))
                    continue
                try:
                    start = time.fromisoformat(row["schedule"].split("-")[0].strip())
                except (KeyError, ValueError):
                    logger.warning("Bad schedule entry %r", row)
                    continue
                key = (course.id, row.get("parallel", "").strip().upper())
                slots.setdefault(key, []).append((weekday, start))
        return cls(slots)

    @classmethod
    def from_file(cls, path: str | Path, directory: CourseDirectory) -> "ScheduleOracle":
        """Load the timetable.  A missing file yields an empty oracle."""
        path = Path(path)
        if not path.exists():
            logger.warning("Schedule file %s not found; next-meeting hints disabled", path)
            return cls()
        with open(path, encoding="utf-8") as f:
            return cls.from_dict(json.load(f), directory)

    def next_meeting(
        self, course_id: int, section_code: str | None, after: datetime
    ) -> datetime | None:
        """Start of the next meeting of (course, section) on a later day than *after*.

        A meeting on the same weekday as *after* resolves to the following week.
        """
        if not section_code:
            return None
        slots = self._slots.get((course_id, section_code.upper()))
        if not slots:
            return None
        candidates = []
        for weekday, start in slots:
            days_ahead = (weekday - after.weekday()) % 7 or 7
            day = after.date() + timedelta(days=days_ahead)
            candidates.append(datetime.combine(day, start, tzinfo=after.tzinfo))
        return min(candidates)
