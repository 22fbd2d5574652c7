"""Owns the single provider instance per configured credential/endpoint pair."""

from __future__ import annotations

from collections.abc import Callable

from suggestion_engine.config.settings import Settings
from suggestion_engine.observability.logger import get_logger
from suggestion_engine.providers.base import BaseProvider
from suggestion_engine.providers.http_provider import HttpCompletionProvider
from suggestion_engine.providers.mock_provider import MockProvider

logger = get_logger("provider_registry")


def create_provider(settings: Settings) -> BaseProvider:
    if settings.provider_type == "mock":
        return MockProvider(settings)
    return HttpCompletionProvider(settings)


def provider_key(settings: Settings) -> tuple:
    return (settings.provider_type, settings.api_key, settings.base_url, settings.model_name)


class ProviderRegistry:
    """Lazily builds the provider and replaces it when the identity settings change.

    Every caller shares the same instance, and with it the same pacing state, until
    ``update`` sees a different provider type, credential, endpoint or model override.
    """

    def __init__(
        self,
        settings: Settings,
        factory: Callable[[Settings], BaseProvider] = create_provider,
    ) -> None:
        self._settings = settings
        self._factory = factory
        self._provider: BaseProvider | None = None
        self._key = provider_key(settings)

    @property
    def settings(self) -> Settings:
        return self._settings

    def get(self) -> BaseProvider:
        if self._provider is None:
            self._provider = self._factory(self._settings)
            logger.info("provider_created", provider=self._provider.name)
        return self._provider

    def is_available(self) -> bool:
        return self.get().is_configured()

    async def update(self, settings: Settings) -> bool:
        """Adopt new settings; returns True when the provider instance was replaced."""
        new_key = provider_key(settings)
        replaced = new_key != self._key
        self._settings = settings
        self._key = new_key
        if replaced and self._provider is not None:
            old = self._provider
            self._provider = None
            await old.aclose()
            logger.info("provider_invalidated", provider=old.name)
        return replaced

    async def aclose(self) -> None:
        if self._provider is not None:
            await self._provider.aclose()
            self._provider = None
