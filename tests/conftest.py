"""Shared test fixtures."""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from suggestion_engine.config.settings import Settings
from suggestion_engine.models.domain import (
    Claim,
    Evidence,
    Item,
    ItemRole,
    Relationship,
    RelationshipType,
    Subject,
    WorkingSet,
)
from suggestion_engine.providers.mock_provider import MockProvider
from suggestion_engine.providers.pacing import RequestPacer
from suggestion_engine.providers.registry import ProviderRegistry
from suggestion_engine.storage.memory_relationship_store import InMemoryRelationshipStore
from suggestion_engine.suggestions.feedback import FeedbackRecorder
from suggestion_engine.suggestions.manager import SuggestionManager


@pytest.fixture
def settings():
    """Mock-provider settings with no persistence and no pacing delays."""
    return Settings(
        _env_file=None,
        provider_type="mock",
        feedback_db_path="",
        min_request_interval_ms=0,
        retry_initial_delay_ms=0,
        auto_connect_processing_delay_ms=0,
    )


@pytest.fixture
def tmp_dir():
    """Create a temporary directory."""
    return tempfile.mkdtemp()


@pytest.fixture
def feedback_db_path(tmp_dir):
    return str(Path(tmp_dir) / "feedback.db")


@pytest.fixture
def sleeps():
    """Records requested sleeps; the matching ``no_sleep`` returns immediately."""
    return []


@pytest.fixture
def no_sleep(sleeps):
    async def _sleep(seconds, token=None):
        if token is not None:
            token.raise_if_cancelled()
        sleeps.append(seconds)

    return _sleep


@pytest.fixture
def provider(settings, no_sleep):
    return MockProvider(settings, pacer=RequestPacer(base_interval_s=0.0), sleep=no_sleep)


@pytest.fixture
def registry(settings, provider):
    return ProviderRegistry(settings, factory=lambda _settings: provider)


@pytest.fixture
def relationship_store():
    return InMemoryRelationshipStore()


@pytest.fixture
def manager(settings, registry, relationship_store):
    return SuggestionManager(registry, settings, FeedbackRecorder(window=10), relationship_store)


def make_items(count: int) -> list[Item]:
    roles = [ItemRole.SUPPORTS, ItemRole.CONTRADICTS, ItemRole.METHOD, ItemRole.BACKGROUND, ItemRole.OTHER]
    return [
        Item(
            id=f"p{i}",
            title=f"Study {i} on sleep and memory",
            authors=[f"Author {i}", "Coauthor"],
            year=2015 + i,
            abstract=f"Abstract for study {i}. " * 20,
            summary=f"Study {i} reports an effect of sleep on recall.",
            role=roles[(i - 1) % len(roles)],
            claims=[Claim(f"Claim {i}.{n}", "moderate") for n in range(3)],
            evidence=[Evidence(f"Experiment {i}", "experimental")],
        )
        for i in range(1, count + 1)
    ]


@pytest.fixture
def working_set():
    """Six items (growing tier) with one existing p1 -> p2 relationship."""
    return WorkingSet(
        subject=Subject(id="s1", title="Sleep and memory consolidation", description="Does sleep help recall?"),
        items=make_items(6),
        relationships=[
            Relationship(id="r1", from_item_id="p1", to_item_id="p2", type=RelationshipType.SUPPORTS)
        ],
    )


@pytest.fixture
def working_set_factory():
    def _make(count: int, relationships: list[Relationship] | None = None) -> WorkingSet:
        return WorkingSet(
            subject=Subject(id="s1", title="Sleep and memory consolidation"),
            items=make_items(count),
            relationships=relationships or [],
        )

    return _make
