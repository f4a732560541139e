import json
from datetime import datetime, timedelta

from assignment_bot.models import Assignment, AssignmentDraft, MessageContext
from assignment_bot.schemas import EXTRACTION_SCHEMA, VERIFICATION_SCHEMA
from assignment_bot.services.providers import Prompt

EXTRACTION_SYSTEM = (
    "You are a bilingual (Indonesian/English) academic assistant that extracts "
    "structured assignment information from group chat messages.\n\n"
    "Classify the message as exactly one of:\n"
    "- multiple: the message announces two or more assignments (numbered lists, "
    "several courses). Check this first. Return one item per assignment.\n"
    "- new: the message announces a single new assignment. Return one item.\n"
    "- update: the message changes or clarifies an existing assignment "
    "(\"diundur\", \"ganti\", \"jadinya\", \"revisi\"). Return one item whose title "
    "identifies the assignment being changed and whose other fields hold only "
    "the changed values.\n"
    "- unrecognized: not about assignments. Return an empty items list.\n\n"
    "Rules:\n"
    "- course must be one of the available courses, or null if none is named.\n"
    "- Never copy a section code from one course to another course.\n"
    "- Use the context hints for section codes and deadlines when the message "
    "itself is vague; an explicit value in the message always wins.\n"
    "- deadline is \"YYYY-MM-DD HH:MM\" in local time, or null. Copy reference "
    "dates exactly; do not compute them yourself.\n"
    "- title is short and specific (e.g. \"LKP 15\"), never a generic word like "
    "\"tugas\". Use null when the message gives no title.\n"
    "- description is one line; never empty when a title exists.\n"
    "- title_change_reason is set only when an update explicitly renames the "
    "assignment; otherwise null.\n\n"
    "Respond with a JSON object: {\"classification\": ..., \"items\": [{\"course\", "
    "\"title\", \"description\", \"deadline\", \"section_code\", "
    "\"title_change_reason\"}]}."
)

VERIFICATION_SYSTEM = (
    "You decide whether a newly extracted assignment is the same assignment as "
    "one already on record. Same course and section are given. Match on the "
    "assignment's identity (type and number, topic), not on wording. Answer "
    "high only when you are certain; a different number or a different "
    "section is never a match.\n\n"
    "Respond with a JSON object: {\"match_index\": <1-based index or null>, "
    "\"confidence\": \"low\"|\"medium\"|\"high\", \"reason\": \"...\"}."
)


def _fmt(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "none"


def build_extraction_prompt(
    text: str,
    context: MessageContext,
    course_names: list[str],
    now: datetime,
    has_image: bool = False,
) -> Prompt:
    reference = {
        "today": now.strftime("%Y-%m-%d"),
        "besok / tomorrow": (now + timedelta(days=1)).strftime("%Y-%m-%d"),
        "lusa / day after tomorrow": (now + timedelta(days=2)).strftime("%Y-%m-%d"),
        "minggu depan / next week": (now + timedelta(days=7)).strftime("%Y-%m-%d"),
    }
    user = (
        f"Current time: {now.strftime('%Y-%m-%d %H:%M')} ({now.strftime('%A')})\n"
        f"Reference dates: {json.dumps(reference)}\n\n"
        f"Available courses: {', '.join(course_names)}\n\n"
        f"Context hints: {json.dumps(context.to_prompt_dict())}\n\n"
        f"Message: \"{text}\""
    )
    if has_image:
        user += (
            "\n\nAn image is attached. Use it only if it shows assignment details; "
            "it may be unrelated."
        )
    return Prompt(
        system=EXTRACTION_SYSTEM,
        user=user,
        schema=EXTRACTION_SCHEMA,
        schema_name="extraction",
    )


def build_verification_prompt(
    draft: AssignmentDraft, candidates: list[Assignment], now: datetime
) -> Prompt:
    lines = [
        f"#{i}: \"{a.title}\" | section {a.section_code or 'N/A'} | "
        f"deadline {_fmt(a.deadline)} | desc \"{(a.description or '')[:80]}\""
        for i, a in enumerate(candidates, start=1)
    ]
    user = (
        f"Current time: {now.strftime('%Y-%m-%d %H:%M')}\n"
        f"Course: {draft.course.name if draft.course else 'unknown'}\n\n"
        f"New assignment: \"{draft.title}\" | section {draft.section_code or 'N/A'} | "
        f"deadline {_fmt(draft.deadline)} | desc \"{(draft.description or '')[:80]}\"\n\n"
        "Existing assignments:\n" + "\n".join(lines)
    )
    return Prompt(
        system=VERIFICATION_SYSTEM,
        user=user,
        schema=VERIFICATION_SCHEMA,
        schema_name="verification",
    )
