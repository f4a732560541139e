from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

GENERIC_TITLES = frozenset({"", "tugas", "tugas baru", "assignment", "task", "new assignment"})


# ------------------------------------------------------------------
# Tags
# ------------------------------------------------------------------


class MessageKind(str, Enum):
    COMMAND = "command"
    CANDIDATE = "candidate"
    IGNORABLE = "ignorable"


class SectionSource(str, Enum):
    EXPLICIT = "explicit"
    SENDER_HISTORY = "sender_history"
    UNKNOWN = "unknown"


class DeadlineType(str, Enum):
    EXPLICIT = "explicit"
    NEXT_MEETING = "next_meeting"
    RELATIVE = "relative"
    UNKNOWN = "unknown"


class ExtractionKind(str, Enum):
    NEW = "new"
    UPDATE = "update"
    MULTIPLE = "multiple"
    UNRECOGNIZED = "unrecognized"


class DraftTag(str, Enum):
    NEW = "new"
    UPDATE = "update"
    MULTIPLE_MEMBER = "multiple_member"


class MatchConfidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ResolutionAction(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    SKIP = "skip"  # an Update draft with no confident target


# ------------------------------------------------------------------
# Inbound
# ------------------------------------------------------------------


@dataclass
class InboundMessage:
    id: str
    chat_id: str
    sender_id: str
    text: str
    received_at: datetime
    image_base64: str | None = None
    image_mime: str = "image/jpeg"
    from_me: bool = False

    @property
    def has_image(self) -> bool:
        return bool(self.image_base64)


@dataclass(frozen=True)
class Command:
    verb: str  # ping | help | tugas | today | done | undone | expand
    args: tuple[int, ...] = ()


@dataclass(frozen=True)
class Classification:
    kind: MessageKind
    command: Command | None = None


# ------------------------------------------------------------------
# Directory / history
# ------------------------------------------------------------------


@dataclass(frozen=True)
class Course:
    id: int
    name: str
    aliases: tuple[str, ...] = ()


@dataclass(frozen=True)
class SenderHistoryEntry:
    sender_id: str
    course_id: int
    section_code: str
    recorded_at: datetime


# ------------------------------------------------------------------
# Context
# ------------------------------------------------------------------


@dataclass
class CourseHint:
    course: Course
    section_code: str | None = None
    section_confidence: float = 0.0
    section_source: SectionSource = SectionSource.UNKNOWN
    deadline_hint: datetime | None = None
    deadline_type: DeadlineType = DeadlineType.UNKNOWN


@dataclass
class MessageContext:
    global_section: str | None = None
    section_confidence: float = 0.0
    section_source: SectionSource = SectionSource.UNKNOWN
    deadline_type: DeadlineType = DeadlineType.UNKNOWN
    course_hints: list[CourseHint] = field(default_factory=list)

    def hint_for(self, course_id: int) -> CourseHint | None:
        for hint in self.course_hints:
            if hint.course.id == course_id:
                return hint
        return None

    def to_prompt_dict(self) -> dict:
        """Serialized form handed to every chain entry."""
        return {
            "global_section": self.global_section,
            "section_confidence": round(self.section_confidence, 2),
            "section_source": self.section_source.value,
            "deadline_type": self.deadline_type.value,
            "course_hints": [
                {
                    "course": h.course.name,
                    "section_code": h.section_code,
                    "section_source": h.section_source.value,
                    "deadline_hint": (
                        h.deadline_hint.strftime("%Y-%m-%d %H:%M")
                        if h.deadline_hint
                        else None
                    ),
                    "deadline_type": h.deadline_type.value,
                }
                for h in self.course_hints
            ],
        }


# ------------------------------------------------------------------
# Drafts and records
# ------------------------------------------------------------------


@dataclass
class AssignmentDraft:
    message_id: str
    sender_id: str
    tag: DraftTag = DraftTag.NEW
    course: Course | None = None
    title: str | None = None
    description: str | None = None
    deadline: datetime | None = None
    section_code: str | None = None
    title_change_reason: str | None = None

    def missing_fields(self) -> frozenset[str]:
        """Required fields the draft cannot be persisted without."""
        missing = set()
        if self.course is None:
            missing.add("course")
        if self.title is None or self.title.strip().lower() in GENERIC_TITLES:
            missing.add("title")
        return frozenset(missing)

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields()

    def with_changes(self, **changes) -> "AssignmentDraft":
        return replace(self, **changes)


@dataclass
class Assignment:
    id: int
    course_id: int
    title: str
    description: str
    deadline: datetime | None
    section_code: str | None
    sender_id: str | None
    message_ids: list[str]
    completed: bool
    created_at: str


@dataclass(frozen=True)
class Resolution:
    action: ResolutionAction
    matched: Assignment | None = None
    confidence: MatchConfidence | None = None
    reason: str = ""


@dataclass
class ClarificationSession:
    sender_id: str
    draft: AssignmentDraft
    missing_fields: frozenset[str]
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


# ------------------------------------------------------------------
# Results
# ------------------------------------------------------------------


@dataclass
class ExtractionResult:
    kind: ExtractionKind
    drafts: list[AssignmentDraft]
    provider: str


@dataclass
class IngestResult:
    message_id: str
    inserted_ids: list[int] = field(default_factory=list)
    updated_ids: list[int] = field(default_factory=list)
    clarification_requested: frozenset[str] | None = None
    unmatched_updates: list[str] = field(default_factory=list)
    unrecognized: bool = False
    abandoned: bool = False
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "message_id": self.message_id,
            "inserted_ids": self.inserted_ids,
            "updated_ids": self.updated_ids,
            "clarification_requested": (
                sorted(self.clarification_requested)
                if self.clarification_requested is not None
                else None
            ),
            "unmatched_updates": self.unmatched_updates,
            "unrecognized": self.unrecognized,
            "abandoned": self.abandoned,
            "error": self.error,
        }
