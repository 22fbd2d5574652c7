"""FastAPI dependency injection helpers."""

from __future__ import annotations

from fastapi import Request

from suggestion_engine.gap.plan_based import PlanBasedGapAnalyzer
from suggestion_engine.queue.auto_connect import BackgroundSuggestionQueue
from suggestion_engine.services import ServiceContainer
from suggestion_engine.suggestions.manager import SuggestionManager


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_manager(request: Request) -> SuggestionManager:
    return request.app.state.services.manager


def get_queue(request: Request) -> BackgroundSuggestionQueue:
    return request.app.state.services.queue


def get_plan_analyzer(request: Request) -> PlanBasedGapAnalyzer:
    return request.app.state.services.plan_analyzer
