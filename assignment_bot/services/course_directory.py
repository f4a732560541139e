import json
import re
from dataclasses import dataclass

from assignment_bot.database import get_async_conn
from assignment_bot.models import Course


@dataclass(frozen=True)
class CourseMention:
    course: Course
    start: int
    end: int


def _term_pattern(term: str) -> re.Pattern:
    # Word boundaries keep short aliases ("sd", "ux") from matching inside words.
    return re.compile(rf"(?<!\w){re.escape(term)}(?!\w)", re.IGNORECASE)


class CourseDirectory:
    """Resolve course names and aliases (case-insensitive) to canonical courses."""

    def __init__(self, courses: list[Course]) -> None:
        self.courses = list(courses)
        self._by_term: dict[str, Course] = {}
        self._patterns: list[tuple[re.Pattern, Course]] = []
        for course in self.courses:
            for term in (course.name, *course.aliases):
                key = term.strip().lower()
                if not key or key in self._by_term:
                    continue
                self._by_term[key] = course
                self._patterns.append((_term_pattern(key), course))

    @classmethod
    async def load(cls, db_path: str | None = None) -> "CourseDirectory":
        conn = await get_async_conn(db_path)
        try:
            rows = await conn.execute("SELECT * FROM courses ORDER BY id")
            courses = [
                Course(
                    id=r["id"],
                    name=r["name"],
                    aliases=tuple(json.loads(r["aliases_json"])),
                )
                for r in await rows.fetchall()
            ]
        finally:
            await conn.close()
        return cls(courses)

    def resolve(self, name_or_alias: str | None) -> Course | None:
        if not name_or_alias:
            return None
        key = name_or_alias.strip().lower()
        if key in self._by_term:
            return self._by_term[key]
        # "KOM120C - Pemrograman" style labels: try each part.
        for part in re.split(r"\s+-\s+", key):
            if part in self._by_term:
                return self._by_term[part]
        return None

    def find_mentions(self, text: str) -> list[CourseMention]:
        """Courses named in *text*, in order of first appearance.

        Overlapping matches keep the longest term; each course appears once.
        """
        hits: list[CourseMention] = []
        for pattern, course in self._patterns:
            for m in pattern.finditer(text):
                hits.append(CourseMention(course, m.start(), m.end()))
        hits.sort(key=lambda h: (h.start, -(h.end - h.start)))

        mentions: list[CourseMention] = []
        seen: set[int] = set()
        last_end = -1
        for hit in hits:
            if hit.start < last_end:
                continue
            last_end = hit.end
            if hit.course.id in seen:
                continue
            seen.add(hit.course.id)
            mentions.append(hit)
        return mentions

    def names(self) -> list[str]:
        return [c.name for c in self.courses]
