from assignment_bot.database import get_async_conn
from assignment_bot.models import SenderHistoryEntry


class SenderHistory:
    """Append-only (sender, course, section) facts and their frequency ranking."""

    def __init__(self, db_path: str | None = None) -> None:
        self.db_path = db_path

    async def top_sections(
        self, sender_id: str, course_id: int, limit: int = 3
    ) -> list[tuple[str, int]]:
        """Sections this sender has used for *course_id*, most frequent first.

        Ties go to the section used most recently.
        """
        conn = await get_async_conn(self.db_path)
        try:
            rows = await conn.execute(
                "SELECT section_code, COUNT(*) AS n, MAX(recorded_at) AS last_seen "
                "FROM sender_history WHERE sender_id = ? AND course_id = ? "
                "GROUP BY section_code ORDER BY n DESC, last_seen DESC LIMIT ?",
                (sender_id, course_id, limit),
            )
            return [(r["section_code"], r["n"]) for r in await rows.fetchall()]
        finally:
            await conn.close()

    async def record(self, entry: SenderHistoryEntry) -> None:
        conn = await get_async_conn(self.db_path)
        try:
            await conn.execute(
                "INSERT INTO sender_history "
                "(sender_id, course_id, section_code, recorded_at) VALUES (?, ?, ?, ?)",
                (
                    entry.sender_id,
                    entry.course_id,
                    entry.section_code,
                    entry.recorded_at.isoformat(),
                ),
            )
            await conn.commit()
        finally:
            await conn.close()
