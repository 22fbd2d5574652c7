"""Protocols for stores the suggestion layer writes through."""

from __future__ import annotations

from typing import Protocol

from suggestion_engine.models.domain import FeedbackRecord, Relationship


class RelationshipStore(Protocol):
    async def add_relationship(self, relationship: Relationship) -> Relationship: ...

    async def list_relationships(self, item_id: str | None = None) -> list[Relationship]: ...


class FeedbackStore(Protocol):
    async def initialize(self) -> None: ...

    async def save_feedback(self, record: FeedbackRecord) -> None: ...

    async def get_recent_feedback(self, limit: int = 100) -> list[FeedbackRecord]: ...
