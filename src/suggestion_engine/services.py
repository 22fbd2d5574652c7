"""Service container: owns the provider registry, manager, queue and analyzer."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from suggestion_engine.config.settings import Settings, validate_settings
from suggestion_engine.gap.plan_based import PlanBasedGapAnalyzer
from suggestion_engine.observability.logger import get_logger
from suggestion_engine.protocols.stores import RelationshipStore
from suggestion_engine.providers.base import BaseProvider
from suggestion_engine.providers.registry import ProviderRegistry, create_provider
from suggestion_engine.queue.auto_connect import BackgroundSuggestionQueue
from suggestion_engine.storage.memory_relationship_store import InMemoryRelationshipStore
from suggestion_engine.storage.sqlite_feedback_store import SQLiteFeedbackStore
from suggestion_engine.suggestions.feedback import FeedbackRecorder
from suggestion_engine.suggestions.learner import FeedbackLearner
from suggestion_engine.suggestions.manager import SuggestionManager

logger = get_logger("services")


@dataclass
class ServiceContainer:
    """Explicitly constructed component graph with a start/close lifecycle.

    Components are built once; a settings change is pushed to each of them, and the
    provider is replaced only when its identity (type, credential, endpoint, model)
    changes.
    """

    settings: Settings
    providers: ProviderRegistry
    feedback: FeedbackRecorder
    learner: FeedbackLearner
    relationships: RelationshipStore
    manager: SuggestionManager
    queue: BackgroundSuggestionQueue
    plan_analyzer: PlanBasedGapAnalyzer
    feedback_store: SQLiteFeedbackStore | None = None

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        provider_factory: Callable[[Settings], BaseProvider] = create_provider,
        relationship_store: RelationshipStore | None = None,
    ) -> ServiceContainer:
        settings = validate_settings(settings or Settings())
        providers = ProviderRegistry(settings, factory=provider_factory)
        feedback_store = SQLiteFeedbackStore(settings.feedback_db_path) if settings.feedback_db_path else None
        feedback = FeedbackRecorder(window=settings.feedback_window, store=feedback_store)
        relationships = relationship_store or InMemoryRelationshipStore()
        learner = FeedbackLearner(feedback)
        manager = SuggestionManager(providers, settings, feedback, relationships, learner=learner)
        return cls(
            settings=settings,
            providers=providers,
            feedback=feedback,
            learner=learner,
            relationships=relationships,
            manager=manager,
            queue=BackgroundSuggestionQueue(manager, settings),
            plan_analyzer=PlanBasedGapAnalyzer(providers, settings),
            feedback_store=feedback_store,
        )

    async def start(self) -> None:
        if self.feedback_store is not None:
            Path(self.settings.feedback_db_path).parent.mkdir(parents=True, exist_ok=True)
            await self.feedback_store.initialize()
            loaded = await self.feedback.load()
            logger.info("feedback_loaded", records=loaded)
        self.queue.start()
        logger.info(
            "services_started",
            provider_type=self.settings.provider_type,
            configured=self.providers.is_available(),
        )

    async def update_settings(self, **changes) -> bool:
        """Apply setting changes everywhere; returns True when the provider was replaced."""
        settings = validate_settings(self.settings.model_copy(update=changes))
        self.settings = settings
        replaced = await self.providers.update(settings)
        self.manager.update_settings(settings)
        self.queue.update_settings(settings)
        self.plan_analyzer.update_settings(settings)
        logger.info("settings_updated", fields=sorted(changes), provider_replaced=replaced)
        return replaced

    async def aclose(self) -> None:
        await self.queue.stop()
        await self.providers.aclose()
        logger.info("services_closed")
