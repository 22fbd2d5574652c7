"""Resolve model name, output budget and temperature for a task-complexity tier."""

from __future__ import annotations

from dataclasses import dataclass

from suggestion_engine.config.settings import Settings
from suggestion_engine.models.domain import ModelTier


@dataclass(frozen=True)
class ModelTierConfig:
    model: str
    max_tokens: int
    temperature: float


def tier_config(settings: Settings, tier: ModelTier) -> ModelTierConfig:
    if tier is ModelTier.FAST:
        model, max_tokens, temperature = settings.fast_model, settings.fast_max_tokens, settings.fast_temperature
    elif tier is ModelTier.ADVANCED:
        model, max_tokens, temperature = (
            settings.advanced_model,
            settings.advanced_max_tokens,
            settings.advanced_temperature,
        )
    else:
        model, max_tokens, temperature = (
            settings.standard_model,
            settings.standard_max_tokens,
            settings.standard_temperature,
        )
    return ModelTierConfig(model=settings.model_name or model, max_tokens=max_tokens, temperature=temperature)
