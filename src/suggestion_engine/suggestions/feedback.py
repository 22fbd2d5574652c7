"""Append-only feedback history over a bounded in-memory window."""

from __future__ import annotations

from collections import deque
from uuid import uuid4

from pydantic import BaseModel

from suggestion_engine.models.domain import FeedbackAction, FeedbackRecord, SuggestionFamily
from suggestion_engine.models.suggestions import FAMILY_BY_KIND
from suggestion_engine.observability.logger import get_logger
from suggestion_engine.protocols.stores import FeedbackStore

logger = get_logger("feedback")


def family_of(suggestion: BaseModel) -> SuggestionFamily:
    kind = getattr(suggestion, "kind", None)
    if kind in FAMILY_BY_KIND:
        return FAMILY_BY_KIND[kind]
    raise ValueError(f"Cannot infer suggestion family for {type(suggestion).__name__}")


class FeedbackRecorder:
    """Keeps the most recent ``window`` records; older ones are evicted first.

    When a store is attached every record is persisted before it joins the window,
    so a failed write leaves both unchanged. ``load`` warms the window at startup.
    """

    def __init__(self, window: int = 100, store: FeedbackStore | None = None) -> None:
        self._records: deque[FeedbackRecord] = deque(maxlen=window)
        self._store = store
        self._version = 0

    @property
    def version(self) -> int:
        """Bumped on every change to the window."""
        return self._version

    async def load(self) -> int:
        if self._store is None:
            return 0
        records = await self._store.get_recent_feedback(self._records.maxlen or 100)
        self._records.extend(records)
        self._version += 1
        return len(records)

    async def record(
        self,
        suggestion: BaseModel,
        action: FeedbackAction,
        edited: BaseModel | dict | None = None,
        subject_id: str | None = None,
        family: SuggestionFamily | None = None,
    ) -> FeedbackRecord:
        if isinstance(edited, BaseModel):
            edited = edited.model_dump(mode="json")
        record = FeedbackRecord(
            id=str(uuid4()),
            suggestion_id=getattr(suggestion, "id", "") or "",
            family=family or family_of(suggestion),
            action=action,
            original=suggestion.model_dump(mode="json"),
            edited=edited,
            subject_id=subject_id,
        )
        if self._store is not None:
            await self._store.save_feedback(record)
        self._records.append(record)
        self._version += 1
        logger.info(
            "feedback_recorded",
            suggestion_id=record.suggestion_id,
            family=record.family.value,
            action=record.action.value,
        )
        return record

    def history(self, family: SuggestionFamily | None = None, limit: int | None = None) -> list[FeedbackRecord]:
        records = [r for r in self._records if family is None or r.family == family]
        if limit is not None:
            records = records[-limit:]
        return records

    def summary(self) -> dict[str, dict]:
        """Per-family action counts and acceptance rate (accepted + edited over all)."""
        counts: dict[str, dict] = {}
        for r in self._records:
            entry = counts.setdefault(r.family.value, {a.value: 0 for a in FeedbackAction})
            entry[r.action.value] += 1
        for entry in counts.values():
            total = sum(entry[a.value] for a in FeedbackAction)
            positive = entry[FeedbackAction.ACCEPTED.value] + entry[FeedbackAction.EDITED.value]
            entry["total"] = total
            entry["acceptance_rate"] = round(positive / total, 4) if total else 0.0
        return counts

    def clear(self) -> None:
        self._records.clear()
        self._version += 1

    def __len__(self) -> int:
        return len(self._records)
