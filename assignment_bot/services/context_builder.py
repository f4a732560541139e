import logging
import re
from datetime import time

import aiosqlite

from assignment_bot.config import settings
from assignment_bot.models import (
    CourseHint,
    DeadlineType,
    InboundMessage,
    MessageContext,
    SectionSource,
)
from assignment_bot.services.course_directory import CourseDirectory, CourseMention
from assignment_bot.services.deadlines import classify_deadline, resolve_deadline
from assignment_bot.services.schedule import ScheduleOracle
from assignment_bot.services.sender_history import SenderHistory

logger = logging.getLogger(__name__)

EXPLICIT_CONFIDENCE = 1.0

_CLAUSE_BREAK = re.compile(r"[,;\n]")


def section_regex(pattern: str) -> re.Pattern:
    return re.compile(rf"(?<!\w)({pattern})(?!\w)", re.IGNORECASE)


class ContextBuilder:
    """Build the disambiguation context for a candidate message.

    Every course is resolved on its own: a section code written next to one
    course is never lent to another course in the same message.  Nothing here
    raises; whatever cannot be inferred is left null or ``unknown``.
    """

    def __init__(
        self,
        directory: CourseDirectory,
        history: SenderHistory,
        oracle: ScheduleOracle,
        *,
        history_limit: int | None = None,
        section_pattern: str | None = None,
        default_deadline_time: time | None = None,
    ) -> None:
        self.directory = directory
        self.history = history
        self.oracle = oracle
        self.history_limit = history_limit or settings.history_limit
        self._section_re = section_regex(section_pattern or settings.section_pattern)
        self.default_deadline_time = default_deadline_time or time.fromisoformat(
            settings.default_deadline_time
        )

    async def build(self, message: InboundMessage) -> MessageContext:
        text = message.text or ""
        now = message.received_at
        deadline_type = classify_deadline(text, now.date())

        mentions = self.directory.find_mentions(text)
        if not mentions:
            return MessageContext(deadline_type=deadline_type)

        hints = []
        for i, mention in enumerate(mentions):
            segment, offset = self._segment_for(text, mentions, i)
            hint = await self._section_hint(message.sender_id, mention, segment, offset)
            self._apply_deadline(hint, segment, message)
            hints.append(hint)

        context = MessageContext(deadline_type=deadline_type, course_hints=hints)
        guesses = {h.section_code for h in hints}
        if len(guesses) == 1 and None not in guesses:
            context.global_section = guesses.pop()
            context.section_confidence = min(h.section_confidence for h in hints)
            if any(h.section_source is SectionSource.EXPLICIT for h in hints):
                context.section_source = SectionSource.EXPLICIT
            else:
                context.section_source = SectionSource.SENDER_HISTORY
        return context

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    @staticmethod
    def _segment_for(
        text: str, mentions: list[CourseMention], index: int
    ) -> tuple[str, int]:
        """The stretch of text that belongs to mention *index*, and its offset.

        A lone course owns the whole message.  Otherwise neighbouring courses
        split the text between them at the last clause break (comma,
        semicolon, newline), or halfway when there is none.
        """
        if len(mentions) == 1:
            return text, 0
        start = 0 if index == 0 else _boundary(text, mentions[index - 1], mentions[index])
        end = (
            len(text)
            if index + 1 == len(mentions)
            else _boundary(text, mentions[index], mentions[index + 1])
        )
        return text[start:end], start

    def _nearest_section(self, segment: str, start: int, end: int) -> str | None:
        """Section code in *segment* closest to the course name at *start*:*end*.

        None when two different codes are equally close.
        """
        found: dict[str, int] = {}
        for m in self._section_re.finditer(segment):
            distance = start - m.end() if m.end() <= start else max(m.start() - end, 0)
            code = m.group(1).upper()
            found[code] = min(distance, found.get(code, distance))
        if not found:
            return None
        best = min(found.values())
        nearest = [code for code, distance in found.items() if distance == best]
        return nearest[0] if len(nearest) == 1 else None

    async def _section_hint(
        self, sender_id: str, mention: CourseMention, segment: str, offset: int
    ) -> CourseHint:
        hint = CourseHint(course=mention.course)

        section = self._nearest_section(
            segment, mention.start - offset, mention.end - offset
        )
        if section is not None:
            hint.section_code = section
            hint.section_confidence = EXPLICIT_CONFIDENCE
            hint.section_source = SectionSource.EXPLICIT
            return hint

        try:
            ranked = await self.history.top_sections(
                sender_id, mention.course.id, self.history_limit
            )
        except aiosqlite.Error:
            logger.warning(
                "Sender history unavailable for %s/%s", sender_id, mention.course.name,
                exc_info=True,
            )
            ranked = []
        if ranked:
            section, count = ranked[0]
            hint.section_code = section.upper()
            hint.section_confidence = count / sum(n for _, n in ranked)
            hint.section_source = SectionSource.SENDER_HISTORY
        return hint

    # ------------------------------------------------------------------
    # Deadlines
    # ------------------------------------------------------------------

    def _apply_deadline(self, hint: CourseHint, segment: str, message: InboundMessage) -> None:
        """Deadline hint from the course's own segment only."""
        deadline_type = classify_deadline(segment, message.received_at.date())
        if deadline_type is DeadlineType.NEXT_MEETING:
            hint.deadline_hint = self.oracle.next_meeting(
                hint.course.id, hint.section_code, message.received_at
            )
            if hint.deadline_hint is None:
                logger.info(
                    "No meeting on record for %s %s; deadline left unknown",
                    hint.course.name, hint.section_code or "(no section)",
                )
        elif deadline_type in (DeadlineType.EXPLICIT, DeadlineType.RELATIVE):
            hint.deadline_hint = resolve_deadline(
                segment, deadline_type, message.received_at, self.default_deadline_time
            )
        hint.deadline_type = deadline_type if hint.deadline_hint else DeadlineType.UNKNOWN


def _boundary(text: str, left: CourseMention, right: CourseMention) -> int:
    between = text[left.end:right.start]
    breaks = [m.end() for m in _CLAUSE_BREAK.finditer(between)]
    if breaks:
        return left.end + breaks[-1]
    return left.end + len(between) // 2
