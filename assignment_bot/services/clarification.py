import logging
import re
from datetime import datetime, time, timedelta

from assignment_bot.config import settings
from assignment_bot.models import AssignmentDraft, ClarificationSession, GENERIC_TITLES
from assignment_bot.services.context_builder import section_regex
from assignment_bot.services.course_directory import CourseDirectory
from assignment_bot.services.dedup import leading_identifier
from assignment_bot.services.deadlines import (
    find_explicit_date,
    find_relative_date,
    parse_deadline_value,
    strip_deadline_phrases,
)
from assignment_bot.services.extraction import normalize_section

logger = logging.getLogger(__name__)

_FIELD_KEYS = {
    "course": "course", "mata kuliah": "course", "matkul": "course", "mk": "course",
    "title": "title", "judul": "title", "nama tugas": "title",
    "deadline": "deadline", "due": "deadline", "batas waktu": "deadline",
    "parallel": "section", "paralel": "section", "kode": "section",
    "code": "section", "section": "section", "kelas": "section",
    "description": "description", "deskripsi": "description",
    "keterangan": "description", "desc": "description",
}


class ClarificationTracker:
    """Per-sender sessions awaiting the fields a draft was missing.

    ``Empty → Awaiting → {Filled | Expired | Cancelled} → Empty``.  At most
    one session per sender: opening a new one discards the old one, and a
    reply that does not fill the session cancels it.  All methods are
    synchronous, so callers never hold a session across a network call.
    """

    def __init__(
        self,
        directory: CourseDirectory,
        *,
        ttl: timedelta | None = None,
        section_pattern: str | None = None,
        default_deadline_time: time | None = None,
    ) -> None:
        self.directory = directory
        self.ttl = ttl or timedelta(minutes=settings.clarification_ttl_minutes)
        self._section_re = section_regex(section_pattern or settings.section_pattern)
        self.default_deadline_time = default_deadline_time or time.fromisoformat(
            settings.default_deadline_time
        )
        self._sessions: dict[str, ClarificationSession] = {}

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def get(self, sender_id: str, now: datetime) -> ClarificationSession | None:
        """The sender's open session, expiring it first if its time is up."""
        session = self._sessions.get(sender_id)
        if session is not None and session.is_expired(now):
            del self._sessions[sender_id]
            logger.info("Clarification for %s expired (%r)", sender_id, session.draft.title)
            return None
        return session

    def open(self, draft: AssignmentDraft, now: datetime) -> ClarificationSession:
        missing = draft.missing_fields()
        if not missing:
            raise ValueError("draft is complete; nothing to clarify")
        previous = self._sessions.pop(draft.sender_id, None)
        if previous is not None:
            logger.info(
                "Clarification for %s superseded (%r discarded)",
                draft.sender_id, previous.draft.title,
            )
        session = ClarificationSession(
            sender_id=draft.sender_id,
            draft=draft,
            missing_fields=missing,
            created_at=now,
            expires_at=now + self.ttl,
        )
        self._sessions[draft.sender_id] = session
        logger.info("Clarification opened for %s, missing %s", draft.sender_id, sorted(missing))
        return session

    def offer(self, sender_id: str, text: str, now: datetime) -> AssignmentDraft | None:
        """Offer a new message to the sender's open session.

        Returns the completed draft if the message supplies every missing
        field (the session is closed as filled).  Otherwise any open session
        is cancelled and None is returned: the message is a fresh candidate.
        """
        session = self.get(sender_id, now)
        if session is None:
            return None
        del self._sessions[sender_id]

        changes, leftover = self.parse_reply(text, session, now)
        filled = session.draft.with_changes(**changes)
        if filled.is_complete and _same_assignment(session.draft, leftover):
            logger.info("Clarification for %s filled (%r)", sender_id, filled.title)
            return filled
        logger.info("Clarification for %s cancelled by a new message", sender_id)
        return None

    def cancel(self, sender_id: str) -> bool:
        return self._sessions.pop(sender_id, None) is not None

    def sweep(self, now: datetime) -> int:
        """Drop every expired session.  Returns how many were dropped."""
        expired = [s for s, session in self._sessions.items() if session.is_expired(now)]
        for sender_id in expired:
            del self._sessions[sender_id]
        if expired:
            logger.info("Swept %d expired clarification(s)", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)

    # ------------------------------------------------------------------
    # Reply parsing
    # ------------------------------------------------------------------

    def parse_reply(
        self, text: str, session: ClarificationSession, now: datetime
    ) -> tuple[dict, str]:
        """Draft field changes found in a clarification reply.

        Understands ``Field: value`` lines and bare replies: a course name or
        alias, a section code, a date, or (when only the title is missing)
        the remaining text as the title.  Returns the changes and whatever
        text was left unused.
        """
        changes: dict = {}
        bare_lines: list[str] = []
        for raw_line in text.replace("`", "").splitlines():
            line = raw_line.strip()
            if not line:
                continue
            key, sep, value = line.partition(":")
            field = _FIELD_KEYS.get(key.strip().lower()) if sep else None
            if field is None:
                bare_lines.append(line)
                continue
            value = value.strip()
            if not value or value.startswith("[") or value == "...":
                continue
            self._apply_field(changes, field, value, now)

        leftover = ""
        bare = " ".join(bare_lines)
        if bare:
            leftover = self._apply_bare(changes, bare, session, now)
        return changes, leftover

    def _apply_field(self, changes: dict, field: str, value: str, now: datetime) -> None:
        if field == "course":
            course = self.directory.resolve(value)
            if course is None:
                mentions = self.directory.find_mentions(value)
                course = mentions[0].course if mentions else None
            if course is not None:
                changes["course"] = course
        elif field == "title":
            changes["title"] = value
        elif field == "deadline":
            deadline = parse_deadline_value(value, now, self.default_deadline_time)
            if deadline is not None:
                changes["deadline"] = deadline
        elif field == "section":
            section = normalize_section(value)
            if section is not None:
                changes["section_code"] = section
        elif field == "description":
            changes["description"] = value

    def _apply_bare(
        self, changes: dict, text: str, session: ClarificationSession, now: datetime
    ) -> str:
        remainder = text
        mentions = self.directory.find_mentions(text)
        if mentions and "course" not in changes:
            changes["course"] = mentions[0].course
            remainder = remainder[: mentions[0].start] + " " + remainder[mentions[0].end :]

        m = self._section_re.search(remainder)
        if m and "section_code" not in changes:
            changes["section_code"] = m.group(1).upper()
            remainder = remainder[: m.start()] + " " + remainder[m.end() :]

        today = now.date()
        if "deadline" not in changes and (
            find_explicit_date(remainder, today) or find_relative_date(remainder, today)
        ):
            deadline = parse_deadline_value(remainder, now, self.default_deadline_time)
            if deadline is not None:
                changes["deadline"] = deadline

        # "jam 10" is a time, not an assignment called "jam" number 10.
        remainder = strip_deadline_phrases(remainder)
        remainder = re.sub(r"\s+", " ", remainder).strip(" -,.:;")
        if (
            "title" in session.missing_fields
            and "title" not in changes
            and remainder.lower() not in GENERIC_TITLES
        ):
            changes["title"] = remainder
            return ""
        return remainder


def _same_assignment(original: AssignmentDraft, leftover: str) -> bool:
    """Reject a "fill" whose leftover text names a different numbered assignment."""
    if not leftover or not original.title:
        return True
    other = leading_identifier(leftover)
    return other is None or other == leading_identifier(original.title)
