import logging
import re
from datetime import datetime

from assignment_bot.config import settings
from assignment_bot.errors import TerminalExtractionFailure
from assignment_bot.models import (
    Assignment,
    AssignmentDraft,
    DraftTag,
    MatchConfidence,
    Resolution,
    ResolutionAction,
)
from assignment_bot.schemas import VerificationPayload
from assignment_bot.services.prompts import build_verification_prompt
from assignment_bot.services.providers import FallbackChain
from assignment_bot.services.store import AssignmentStore

logger = logging.getLogger(__name__)

_WORD = re.compile(r"\w+")
# Assignment-type token followed by its number: "LKP 15", "Kuis-2", "Tugas #3".
_IDENTIFIER = re.compile(r"([^\W\d_]+)\s*[-#.]?\s*(\d+)")


# ------------------------------------------------------------------
# Title similarity
# ------------------------------------------------------------------


def word_overlap(a: str, b: str) -> float:
    """Shared words over the larger word set, case-insensitive (0.0–1.0)."""
    words_a = set(_WORD.findall(a.lower()))
    words_b = set(_WORD.findall(b.lower()))
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / max(len(words_a), len(words_b))


def leading_identifier(title: str) -> tuple[str, int] | None:
    m = _IDENTIFIER.search(title.lower())
    if not m:
        return None
    return m.group(1), int(m.group(2))


def prefilter(
    draft: AssignmentDraft,
    assignments: list[Assignment],
    threshold: float,
    limit: int,
) -> list[Assignment]:
    """Open assignments that plausibly describe the same work as *draft*.

    Kept when the titles share at least *threshold* of their words or carry
    the same type-and-number identifier; best scores first, at most *limit*.
    """
    if draft.course is None or not draft.title:
        return []
    draft_ident = leading_identifier(draft.title)
    scored: list[tuple[float, Assignment]] = []
    for a in assignments:
        if a.completed or a.course_id != draft.course.id:
            continue
        if draft.section_code and a.section_code and a.section_code != draft.section_code:
            continue
        overlap = word_overlap(draft.title, a.title)
        same_ident = draft_ident is not None and leading_identifier(a.title) == draft_ident
        if overlap >= threshold or same_ident:
            scored.append((overlap + (1.0 if same_ident else 0.0), a))
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [a for _, a in scored[:limit]]


def decide(
    verdict: VerificationPayload,
    candidates: list[Assignment],
    on_miss: ResolutionAction,
) -> Resolution:
    """Only a high-confidence verdict pointing at a real candidate updates."""
    confidence = MatchConfidence(verdict.confidence)
    index = verdict.match_index
    if confidence is MatchConfidence.HIGH and index is not None and 1 <= index <= len(candidates):
        return Resolution(
            ResolutionAction.UPDATE,
            matched=candidates[index - 1],
            confidence=confidence,
            reason=verdict.reason,
        )
    return Resolution(on_miss, confidence=confidence, reason=verdict.reason)


# ------------------------------------------------------------------
# Resolver
# ------------------------------------------------------------------


class DuplicateResolver:
    """Decide insert-new vs update-existing for a complete draft.

    Drafts extracted as updates use the same matching, but a miss is skipped
    instead of inserted: an update with no confident target is not a new
    assignment.
    """

    def __init__(
        self,
        store: AssignmentStore,
        verification_chain: FallbackChain,
        *,
        overlap_threshold: float | None = None,
        max_candidates: int | None = None,
    ) -> None:
        self.store = store
        self.chain = verification_chain
        self.overlap_threshold = (
            settings.dedup_overlap_threshold if overlap_threshold is None else overlap_threshold
        )
        self.max_candidates = max_candidates or settings.dedup_max_candidates

    async def resolve(self, draft: AssignmentDraft, now: datetime) -> Resolution:
        on_miss = (
            ResolutionAction.SKIP if draft.tag is DraftTag.UPDATE else ResolutionAction.INSERT
        )
        existing = await self.store.find_open_candidates(draft.course.id, draft.section_code)
        candidates = prefilter(draft, existing, self.overlap_threshold, self.max_candidates)
        if not candidates:
            return Resolution(on_miss, reason="no candidates")

        prompt = build_verification_prompt(draft, candidates, now)
        try:
            verdict, provider = await self.chain.run(prompt, VerificationPayload.model_validate)
        except TerminalExtractionFailure as e:
            logger.warning("Verification unavailable for %r: %s", draft.title, e)
            return Resolution(on_miss, reason="verification unavailable")

        resolution = decide(verdict, candidates, on_miss)
        logger.info(
            "Draft %r vs %d candidate(s): %s (%s via %s)",
            draft.title, len(candidates), resolution.action.value,
            verdict.confidence, provider,
        )
        return resolution
