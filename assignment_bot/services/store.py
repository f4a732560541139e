import json
from datetime import datetime

import aiosqlite

from assignment_bot.database import get_async_conn
from assignment_bot.models import Assignment, AssignmentDraft


def _row_to_assignment(row: aiosqlite.Row) -> Assignment:
    return Assignment(
        id=row["id"],
        course_id=row["course_id"],
        title=row["title"],
        description=row["description"],
        deadline=datetime.fromisoformat(row["deadline"]) if row["deadline"] else None,
        section_code=row["section_code"],
        sender_id=row["sender_id"],
        message_ids=json.loads(row["message_ids_json"]),
        completed=bool(row["completed"]),
        created_at=row["created_at"],
    )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class AssignmentStore:
    """Narrow read/write contract over the ``assignments`` table."""

    def __init__(self, db_path: str | None = None) -> None:
        self.db_path = db_path

    async def get(self, assignment_id: int) -> Assignment | None:
        conn = await get_async_conn(self.db_path)
        try:
            row = await conn.execute(
                "SELECT * FROM assignments WHERE id = ?", (assignment_id,)
            )
            found = await row.fetchone()
            return _row_to_assignment(found) if found else None
        finally:
            await conn.close()

    async def find_open_candidates(
        self, course_id: int, section_code: str | None = None
    ) -> list[Assignment]:
        """Open assignments of *course_id*, newest first.

        When *section_code* is known, assignments recorded for a different
        section are excluded; assignments with no section stay eligible.
        """
        query = "SELECT * FROM assignments WHERE course_id = ? AND completed = 0"
        params: list = [course_id]
        if section_code:
            query += " AND (section_code IS NULL OR section_code = ?)"
            params.append(section_code)
        query += " ORDER BY created_at DESC, id DESC"
        conn = await get_async_conn(self.db_path)
        try:
            rows = await conn.execute(query, params)
            return [_row_to_assignment(r) for r in await rows.fetchall()]
        finally:
            await conn.close()

    async def upsert(self, draft: AssignmentDraft, matched_id: int | None = None) -> int:
        """Insert *draft*, or merge it into assignment *matched_id*.

        Inserts are keyed on (originating message, course, title), so a
        redelivered message lands on the row it already created.  Merges
        overwrite deadline, description and section with the draft's non-null
        values; the title only changes when the draft carries a reason for it.
        """
        if draft.course is None or not draft.title:
            raise ValueError("cannot persist a draft without course and title")

        conn = await get_async_conn(self.db_path)
        try:
            if matched_id is None:
                return await self._insert(conn, draft)
            return await self._merge(conn, draft, matched_id)
        finally:
            await conn.close()

    async def _insert(self, conn: aiosqlite.Connection, draft: AssignmentDraft) -> int:
        await conn.execute(
            "INSERT INTO assignments (course_id, title, description, deadline, "
            "section_code, sender_id, origin_message_id, message_ids_json) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(origin_message_id, course_id, title) DO UPDATE SET "
            "description = excluded.description, deadline = excluded.deadline, "
            "section_code = excluded.section_code, updated_at = CURRENT_TIMESTAMP",
            (
                draft.course.id,
                draft.title,
                draft.description or draft.title,
                _iso(draft.deadline),
                draft.section_code,
                draft.sender_id,
                draft.message_id,
                json.dumps([draft.message_id]),
            ),
        )
        await conn.commit()
        row = await conn.execute(
            "SELECT id FROM assignments "
            "WHERE origin_message_id = ? AND course_id = ? AND title = ?",
            (draft.message_id, draft.course.id, draft.title),
        )
        found = await row.fetchone()
        return found["id"]

    async def _merge(
        self, conn: aiosqlite.Connection, draft: AssignmentDraft, matched_id: int
    ) -> int:
        row = await conn.execute(
            "SELECT * FROM assignments WHERE id = ?", (matched_id,)
        )
        found = await row.fetchone()
        if not found:
            raise LookupError(f"Assignment {matched_id} not found")
        existing = _row_to_assignment(found)

        title = existing.title
        if draft.title_change_reason and draft.title:
            title = draft.title
        message_ids = existing.message_ids
        if draft.message_id not in message_ids:
            message_ids = [*message_ids, draft.message_id]

        await conn.execute(
            "UPDATE assignments SET title = ?, description = ?, deadline = ?, "
            "section_code = ?, message_ids_json = ?, updated_at = CURRENT_TIMESTAMP "
            "WHERE id = ?",
            (
                title,
                draft.description or existing.description,
                _iso(draft.deadline) or _iso(existing.deadline),
                draft.section_code or existing.section_code,
                json.dumps(message_ids),
                matched_id,
            ),
        )
        await conn.commit()
        return matched_id


class ProcessedMessages:
    """Ledger of inbound message ids, used by the caller to drop redeliveries."""

    def __init__(self, db_path: str | None = None) -> None:
        self.db_path = db_path

    async def mark_processed(self, message_id: str) -> bool:
        """Record *message_id*.  Returns False if it was already recorded."""
        conn = await get_async_conn(self.db_path)
        try:
            cursor = await conn.execute(
                "INSERT OR IGNORE INTO processed_messages (message_id) VALUES (?)",
                (message_id,),
            )
            await conn.commit()
            return cursor.rowcount == 1
        finally:
            await conn.close()
