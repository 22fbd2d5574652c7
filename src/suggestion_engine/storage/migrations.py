"""Idempotent database schema creation."""

from __future__ import annotations

import aiosqlite

FEEDBACK_TABLE = """
CREATE TABLE IF NOT EXISTS feedback (
    feedback_id TEXT PRIMARY KEY,
    suggestion_id TEXT NOT NULL,
    family TEXT NOT NULL,
    action TEXT NOT NULL,
    subject_id TEXT,
    original TEXT NOT NULL DEFAULT '{}',
    edited TEXT,
    timestamp TEXT NOT NULL
)
"""

FEEDBACK_TIMESTAMP_INDEX = """
CREATE INDEX IF NOT EXISTS idx_feedback_timestamp ON feedback(timestamp)
"""

FEEDBACK_FAMILY_INDEX = """
CREATE INDEX IF NOT EXISTS idx_feedback_family ON feedback(family)
"""


async def initialize_feedback_db(db_path: str) -> None:
    async with aiosqlite.connect(db_path) as db:
        await db.execute(FEEDBACK_TABLE)
        await db.execute(FEEDBACK_TIMESTAMP_INDEX)
        await db.execute(FEEDBACK_FAMILY_INDEX)
        await db.commit()
