import logging
from datetime import time

from assignment_bot.config import settings
from assignment_bot.models import (
    AssignmentDraft,
    Course,
    DraftTag,
    ExtractionKind,
    ExtractionResult,
    InboundMessage,
    MessageContext,
)
from assignment_bot.schemas import ExtractedItem, ExtractionPayload
from assignment_bot.services.course_directory import CourseDirectory
from assignment_bot.services.deadlines import parse_deadline_value
from assignment_bot.services.prompts import build_extraction_prompt
from assignment_bot.services.providers import FallbackChain, Image

logger = logging.getLogger(__name__)

_TAGS = {
    ExtractionKind.NEW: DraftTag.NEW,
    ExtractionKind.UPDATE: DraftTag.UPDATE,
    ExtractionKind.MULTIPLE: DraftTag.MULTIPLE_MEMBER,
}


def normalize_section(value: str | None) -> str | None:
    if not value:
        return None
    code = value.strip().upper()
    if code in ("", "ALL", "NULL", "NONE", "N/A"):
        return None
    return code


class ExtractionOrchestrator:
    """Turn a candidate message plus its context into assignment drafts.

    The heavy lifting is delegated to a :class:`FallbackChain`; this class
    picks the chain for the message shape and maps the validated payload to
    drafts.  Context hints fill only the fields the model left empty.
    """

    def __init__(
        self,
        directory: CourseDirectory,
        text_chain: FallbackChain,
        image_chain: FallbackChain | None = None,
        default_deadline_time: time | None = None,
    ) -> None:
        self.directory = directory
        self.text_chain = text_chain
        self.image_chain = image_chain or text_chain
        self.default_deadline_time = default_deadline_time or time.fromisoformat(
            settings.default_deadline_time
        )

    async def extract(
        self, message: InboundMessage, context: MessageContext
    ) -> ExtractionResult:
        """Raises :class:`TerminalExtractionFailure` if every chain entry fails."""
        prompt = build_extraction_prompt(
            message.text,
            context,
            self.directory.names(),
            message.received_at,
            has_image=message.has_image,
        )
        if message.has_image:
            chain = self.image_chain
            image = Image(message.image_base64, message.image_mime)
        else:
            chain = self.text_chain
            image = None

        payload, provider = await chain.run(prompt, ExtractionPayload.model_validate, image)
        kind = ExtractionKind(payload.classification)
        if kind is ExtractionKind.UNRECOGNIZED:
            return ExtractionResult(kind=kind, drafts=[], provider=provider)

        tag = _TAGS[kind]
        drafts = [self._to_draft(item, tag, message, context) for item in payload.items]
        logger.info(
            "Message %s: %s with %d draft(s) via %s",
            message.id, kind.value, len(drafts), provider,
        )
        return ExtractionResult(kind=kind, drafts=drafts, provider=provider)

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def _resolve_course(self, name: str | None, context: MessageContext) -> Course | None:
        course = self.directory.resolve(name)
        if course is None and name:
            mentions = self.directory.find_mentions(name)
            if mentions:
                course = mentions[0].course
        if course is None and len(context.course_hints) == 1:
            course = context.course_hints[0].course
        return course

    def _to_draft(
        self,
        item: ExtractedItem,
        tag: DraftTag,
        message: InboundMessage,
        context: MessageContext,
    ) -> AssignmentDraft:
        course = self._resolve_course(item.course, context)
        hint = context.hint_for(course.id) if course else None

        section = normalize_section(item.section_code)
        if section is None and hint is not None:
            section = hint.section_code

        deadline = parse_deadline_value(
            item.deadline, message.received_at, self.default_deadline_time
        )
        if deadline is None and hint is not None:
            deadline = hint.deadline_hint

        return AssignmentDraft(
            message_id=message.id,
            sender_id=message.sender_id,
            tag=tag,
            course=course,
            title=item.title.strip() if item.title else None,
            description=item.description,
            deadline=deadline,
            section_code=section,
            title_change_reason=item.title_change_reason,
        )
