import asyncio
import logging
from datetime import datetime, time, timedelta, timezone

import aiosqlite

from assignment_bot.clients import GeminiClient, GroqClient
from assignment_bot.config import settings
from assignment_bot.errors import TerminalExtractionFailure
from assignment_bot.models import (
    AssignmentDraft,
    ExtractionKind,
    InboundMessage,
    IngestResult,
    MessageContext,
    ResolutionAction,
    SenderHistoryEntry,
)
from assignment_bot.services.clarification import ClarificationTracker
from assignment_bot.services.context_builder import ContextBuilder
from assignment_bot.services.course_directory import CourseDirectory
from assignment_bot.services.dedup import DuplicateResolver
from assignment_bot.services.extraction import ExtractionOrchestrator
from assignment_bot.services.providers import (
    FallbackChain,
    build_extraction_entries,
    build_verification_entries,
)
from assignment_bot.services.schedule import ScheduleOracle
from assignment_bot.services.sender_history import SenderHistory
from assignment_bot.services.serializer import KeyedSerializer
from assignment_bot.services.store import AssignmentStore

logger = logging.getLogger(__name__)

EXTRACTION_FAILED_REPLY = "could not understand, try rephrasing"
STORAGE_FAILED_REPLY = "could not save, try again later"


def local_now() -> datetime:
    return datetime.now(timezone(timedelta(hours=settings.timezone_offset_hours)))


def _fill_from_context(draft: AssignmentDraft, context: MessageContext) -> AssignmentDraft:
    """Section and deadline the draft lacks, taken from its own course's hint."""
    hint = context.hint_for(draft.course.id) if draft.course else None
    if hint is None:
        return draft
    return draft.with_changes(
        section_code=draft.section_code or hint.section_code,
        deadline=draft.deadline or hint.deadline_hint,
    )


class IngestionEngine:
    """Single entry point for candidate messages.

    ``ingest`` runs the whole pipeline for one message: clarification
    offer, context, extraction, duplicate resolution, persistence and the
    sender-history record.  Messages from the same sender are processed
    strictly one after another; different senders run concurrently.
    """

    def __init__(
        self,
        context_builder: ContextBuilder,
        extractor: ExtractionOrchestrator,
        resolver: DuplicateResolver,
        tracker: ClarificationTracker,
        store: AssignmentStore,
        history: SenderHistory,
    ) -> None:
        self.context_builder = context_builder
        self.extractor = extractor
        self.resolver = resolver
        self.tracker = tracker
        self.store = store
        self.history = history
        self._serializer = KeyedSerializer()

    async def ingest(
        self, message: InboundMessage, cancel_event: asyncio.Event | None = None
    ) -> IngestResult:
        """Process *message*.  Never raises for provider or storage failures.

        If *cancel_event* is set before a write, the message is abandoned
        with nothing persisted from that point on.
        """
        return await self._serializer.run(
            message.sender_id, lambda: self._ingest(message, cancel_event)
        )

    def cancel_clarification(self, sender_id: str) -> bool:
        return self.tracker.cancel(sender_id)

    def sweep_clarifications(self, now: datetime | None = None) -> int:
        return self.tracker.sweep(now or local_now())

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _ingest(
        self, message: InboundMessage, cancel_event: asyncio.Event | None
    ) -> IngestResult:
        result = IngestResult(message_id=message.id)
        now = message.received_at

        filled = self.tracker.offer(message.sender_id, message.text or "", now)
        context = await self.context_builder.build(message)
        if filled is not None:
            drafts = [_fill_from_context(filled, context)]
        else:
            try:
                extraction = await self.extractor.extract(message, context)
            except TerminalExtractionFailure as e:
                logger.error("Extraction failed for message %s: %s", message.id, e)
                result.error = EXTRACTION_FAILED_REPLY
                return result
            if not extraction.drafts:
                if extraction.kind is not ExtractionKind.UNRECOGNIZED:
                    logger.warning(
                        "Message %s extracted as %s via %s but carried no items",
                        message.id, extraction.kind.value, extraction.provider,
                    )
                result.unrecognized = True
                return result
            drafts = extraction.drafts

        try:
            for draft in drafts:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("Message %s abandoned before persistence", message.id)
                    result.abandoned = True
                    return result
                await self._handle_draft(draft, now, result, cancel_event)
                if result.abandoned:
                    return result
        except aiosqlite.Error:
            logger.exception("Storage failure while ingesting message %s", message.id)
            result.error = STORAGE_FAILED_REPLY
        return result

    async def _handle_draft(
        self,
        draft: AssignmentDraft,
        now: datetime,
        result: IngestResult,
        cancel_event: asyncio.Event | None,
    ) -> None:
        if not draft.is_complete:
            if result.clarification_requested is None:
                session = self.tracker.open(draft, now)
                result.clarification_requested = session.missing_fields
            else:
                # One session per sender: later incomplete items are dropped.
                logger.info(
                    "Incomplete draft %r from %s dropped, clarification already pending",
                    draft.title, draft.sender_id,
                )
            return

        resolution = await self.resolver.resolve(draft, now)
        if resolution.action is ResolutionAction.SKIP:
            logger.info("Update %r matched no open assignment", draft.title)
            result.unmatched_updates.append(draft.title)
            return
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Message %s abandoned before persistence", draft.message_id)
            result.abandoned = True
            return

        if resolution.action is ResolutionAction.UPDATE:
            try:
                assignment_id = await self.store.upsert(draft, resolution.matched.id)
                result.updated_ids.append(assignment_id)
            except LookupError:
                logger.warning(
                    "Matched assignment %d vanished; inserting %r instead",
                    resolution.matched.id, draft.title,
                )
                result.inserted_ids.append(await self.store.upsert(draft))
        else:
            result.inserted_ids.append(await self.store.upsert(draft))

        if draft.section_code:
            await self.history.record(
                SenderHistoryEntry(
                    sender_id=draft.sender_id,
                    course_id=draft.course.id,
                    section_code=draft.section_code,
                    recorded_at=now,
                )
            )


# ------------------------------------------------------------------
# Wiring
# ------------------------------------------------------------------


def build_engine(
    directory: CourseDirectory,
    oracle: ScheduleOracle,
    *,
    db_path: str | None = None,
    groq_client: GroqClient | None = None,
    gemini_client: GeminiClient | None = None,
) -> IngestionEngine:
    """Assemble the engine from settings with the production providers."""
    groq_client = groq_client or GroqClient()
    gemini_client = gemini_client or GeminiClient()
    default_time = time.fromisoformat(settings.default_deadline_time)

    store = AssignmentStore(db_path)
    history = SenderHistory(db_path)
    text_chain = FallbackChain(
        build_extraction_entries(groq_client, gemini_client, with_image=False)
    )
    image_chain = FallbackChain(
        build_extraction_entries(groq_client, gemini_client, with_image=True)
    )
    verification_chain = FallbackChain(build_verification_entries(gemini_client))

    return IngestionEngine(
        context_builder=ContextBuilder(directory, history, oracle),
        extractor=ExtractionOrchestrator(
            directory, text_chain, image_chain, default_deadline_time=default_time
        ),
        resolver=DuplicateResolver(store, verification_chain),
        tracker=ClarificationTracker(directory),
        store=store,
        history=history,
    )
