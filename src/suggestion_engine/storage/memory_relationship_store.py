"""In-memory relationship store used when no host persistence is wired in."""

from __future__ import annotations

import asyncio

from suggestion_engine.models.domain import Relationship


class InMemoryRelationshipStore:
    def __init__(self) -> None:
        self._relationships: dict[str, Relationship] = {}
        self._lock = asyncio.Lock()

    async def add_relationship(self, relationship: Relationship) -> Relationship:
        async with self._lock:
            self._relationships[relationship.id] = relationship
        return relationship

    async def list_relationships(self, item_id: str | None = None) -> list[Relationship]:
        async with self._lock:
            relationships = list(self._relationships.values())
        if item_id is None:
            return relationships
        return [r for r in relationships if item_id in (r.from_item_id, r.to_item_id)]
