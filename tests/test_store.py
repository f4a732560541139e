import asyncio
from datetime import datetime

import pytest

from assignment_bot.database import get_async_conn
from assignment_bot.models import AssignmentDraft, Course, SenderHistoryEntry
from assignment_bot.services.sender_history import SenderHistory
from assignment_bot.services.store import AssignmentStore, ProcessedMessages
from tests.conftest import NOW, TZ

PEMROG = Course(1, "Pemrograman")
STRUKDAT = Course(2, "Struktur Data")


def draft(**fields) -> AssignmentDraft:
    base = {
        "message_id": "m1",
        "sender_id": "s",
        "course": PEMROG,
        "title": "LKP 15",
        "description": "Rekursi",
        "section_code": "K1",
        "deadline": datetime(2026, 10, 15, 10, 0, tzinfo=TZ),
    }
    base.update(fields)
    return AssignmentDraft(**base)


class TestAssignmentStore:
    def test_insert_and_get(self, db_path):
        store = AssignmentStore(db_path)
        new_id = asyncio.run(store.upsert(draft()))
        saved = asyncio.run(store.get(new_id))
        assert saved.title == "LKP 15"
        assert saved.course_id == 1
        assert saved.deadline == datetime(2026, 10, 15, 10, 0, tzinfo=TZ)
        assert saved.message_ids == ["m1"]
        assert saved.completed is False

    def test_redelivered_insert_is_idempotent(self, db_path):
        store = AssignmentStore(db_path)
        first = asyncio.run(store.upsert(draft()))
        second = asyncio.run(store.upsert(draft(description="Rekursi (revisi)")))
        assert first == second
        [only] = asyncio.run(store.find_open_candidates(1))
        assert only.description == "Rekursi (revisi)"

    def test_incomplete_draft_rejected(self, db_path):
        with pytest.raises(ValueError):
            asyncio.run(AssignmentStore(db_path).upsert(draft(course=None)))

    def test_merge_overwrites_non_null_fields_only(self, db_path):
        store = AssignmentStore(db_path)
        target = asyncio.run(store.upsert(draft()))
        update = draft(
            message_id="m2",
            title="LKP 15 - Recursion",
            description=None,
            section_code=None,
            deadline=datetime(2026, 10, 17, 23, 59, tzinfo=TZ),
        )
        assert asyncio.run(store.upsert(update, target)) == target

        merged = asyncio.run(store.get(target))
        assert merged.title == "LKP 15"
        assert merged.description == "Rekursi"
        assert merged.section_code == "K1"
        assert merged.deadline == datetime(2026, 10, 17, 23, 59, tzinfo=TZ)
        assert merged.message_ids == ["m1", "m2"]

    def test_merge_renames_with_reason(self, db_path):
        store = AssignmentStore(db_path)
        target = asyncio.run(store.upsert(draft()))
        asyncio.run(
            store.upsert(draft(message_id="m2", title="LKP 16", title_change_reason="salah nomor"), target)
        )
        assert asyncio.run(store.get(target)).title == "LKP 16"

    def test_merge_into_missing_row(self, db_path):
        with pytest.raises(LookupError):
            asyncio.run(AssignmentStore(db_path).upsert(draft(), 999))

    def test_open_candidates_filter(self, db_path):
        store = AssignmentStore(db_path)

        async def seed():
            ids = [
                await store.upsert(draft(message_id="a", title="A", section_code="K1")),
                await store.upsert(draft(message_id="b", title="B", section_code="K2")),
                await store.upsert(draft(message_id="c", title="C", section_code=None)),
                await store.upsert(draft(message_id="d", title="D", course=STRUKDAT)),
                await store.upsert(draft(message_id="e", title="E", section_code="K1")),
            ]
            conn = await get_async_conn(db_path)
            try:
                await conn.execute("UPDATE assignments SET completed = 1 WHERE id = ?", (ids[4],))
                await conn.commit()
            finally:
                await conn.close()

        asyncio.run(seed())
        titles = {a.title for a in asyncio.run(store.find_open_candidates(1, "K1"))}
        assert titles == {"A", "C"}
        assert {a.title for a in asyncio.run(store.find_open_candidates(1))} == {"A", "B", "C"}


def test_sender_history_ranking(db_path):
    history = SenderHistory(db_path)

    async def seed():
        for minute, section in enumerate(["K1", "K2", "K2", "K1", "K3"]):
            await history.record(
                SenderHistoryEntry("s", 1, section, NOW.replace(minute=minute))
            )
        await history.record(SenderHistoryEntry("other", 1, "K3", NOW))
        await history.record(SenderHistoryEntry("s", 2, "K3", NOW))

    asyncio.run(seed())
    # K1 and K2 tie on count; K1 was used last.
    assert asyncio.run(history.top_sections("s", 1)) == [("K1", 2), ("K2", 2), ("K3", 1)]
    assert asyncio.run(history.top_sections("s", 1, limit=1)) == [("K1", 2)]
    assert asyncio.run(history.top_sections("nobody", 1)) == []


def test_processed_messages_ledger(db_path):
    ledger = ProcessedMessages(db_path)
    assert asyncio.run(ledger.mark_processed("m1")) is True
    assert asyncio.run(ledger.mark_processed("m1")) is False
    assert asyncio.run(ledger.mark_processed("m2")) is True
