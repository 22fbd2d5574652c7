"""SQLite-backed feedback store so suggestion feedback survives restarts."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import aiosqlite

from suggestion_engine.models.domain import FeedbackAction, FeedbackRecord, SuggestionFamily
from suggestion_engine.storage.migrations import initialize_feedback_db


class SQLiteFeedbackStore:
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    async def initialize(self) -> None:
        await initialize_feedback_db(self._db_path)

    async def save_feedback(self, record: FeedbackRecord) -> None:
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(
                "INSERT OR REPLACE INTO feedback "
                "(feedback_id, suggestion_id, family, action, subject_id, original, edited, timestamp) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.id,
                    record.suggestion_id,
                    record.family.value,
                    record.action.value,
                    record.subject_id,
                    json.dumps(record.original, default=str),
                    json.dumps(record.edited, default=str) if record.edited is not None else None,
                    record.timestamp.isoformat(),
                ),
            )
            await db.commit()

    async def get_recent_feedback(self, limit: int = 100) -> list[FeedbackRecord]:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM feedback ORDER BY timestamp DESC LIMIT ?", (limit,)
            ) as cursor:
                rows = await cursor.fetchall()
                return [self._row_to_record(row) for row in reversed(rows)]

    async def count_feedback(self) -> int:
        async with aiosqlite.connect(self._db_path) as db:
            async with db.execute("SELECT COUNT(*) FROM feedback") as cursor:
                row = await cursor.fetchone()
                return row[0] if row else 0

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> FeedbackRecord:
        timestamp = datetime.fromisoformat(row["timestamp"])
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return FeedbackRecord(
            id=row["feedback_id"],
            suggestion_id=row["suggestion_id"],
            family=SuggestionFamily(row["family"]),
            action=FeedbackAction(row["action"]),
            subject_id=row["subject_id"],
            original=json.loads(row["original"]),
            edited=json.loads(row["edited"]) if row["edited"] is not None else None,
            timestamp=timestamp,
        )
