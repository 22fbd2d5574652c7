"""Health, adaptive policy and provider settings endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from suggestion_engine.api.dependencies import get_services
from suggestion_engine.config.settings import Settings
from suggestion_engine.context.adaptive import cold_start_message, policy_for
from suggestion_engine.models.schemas import (
    ConnectionTestResponse,
    HealthResponse,
    PolicyResponse,
    SettingsResponse,
    SettingsUpdate,
)
from suggestion_engine.services import ServiceContainer

router = APIRouter()


def _settings_response(settings: Settings, provider_replaced: bool = False) -> SettingsResponse:
    return SettingsResponse(
        provider_type=settings.provider_type,
        has_api_key=bool(settings.api_key.strip()),
        base_url=settings.base_url,
        model_name=settings.model_name,
        confidence_threshold=settings.confidence_threshold,
        max_suggestions=settings.max_suggestions,
        send_long_text=settings.send_long_text,
        send_excerpts=settings.send_excerpts,
        features={
            "relationship_suggestions": settings.enable_relationship_suggestions,
            "summary_suggestions": settings.enable_summary_suggestions,
            "claim_extraction": settings.enable_claim_extraction,
            "gap_analysis": settings.enable_gap_analysis,
            "plan_based_gaps": settings.enable_plan_based_gaps,
            "screening": settings.enable_screening,
            "intake": settings.enable_intake,
            "auto_connect": settings.enable_auto_connect,
        },
        provider_replaced=provider_replaced,
    )


@router.get("/health", response_model=HealthResponse)
async def health(services: ServiceContainer = Depends(get_services)) -> HealthResponse:
    provider = services.providers.get()
    return HealthResponse(
        status="ok",
        provider=provider.name,
        configured=provider.is_configured(),
        queue_running=services.queue.running,
        feedback_records=len(services.feedback),
    )


@router.get("/policy", response_model=PolicyResponse)
async def policy(item_count: int = Query(ge=0)) -> PolicyResponse:
    config = policy_for(item_count)
    return PolicyResponse(
        item_count=item_count,
        tier=config.tier.value,
        max_context_items=config.max_context_items,
        include_long_text=config.include_long_text,
        auto_trigger=config.auto_trigger,
        features={
            "relationship_suggestions": config.show_relationship_suggestions,
            "role_suggestions": config.show_role_suggestions,
            "summary_suggestions": config.show_summary_suggestions,
            "claim_extraction": config.show_claim_extraction,
            "gap_analysis": config.show_gap_analysis,
        },
        guidance=config.guidance,
        cold_start_message=cold_start_message(item_count),
    )


@router.get("/settings", response_model=SettingsResponse)
async def get_settings(services: ServiceContainer = Depends(get_services)) -> SettingsResponse:
    return _settings_response(services.settings)


@router.patch("/settings", response_model=SettingsResponse)
async def update_settings(
    update: SettingsUpdate,
    services: ServiceContainer = Depends(get_services),
) -> SettingsResponse:
    changes = update.model_dump(exclude_none=True)
    replaced = await services.update_settings(**changes) if changes else False
    return _settings_response(services.settings, provider_replaced=replaced)


@router.post("/settings/test-connection", response_model=ConnectionTestResponse)
async def test_connection(services: ServiceContainer = Depends(get_services)) -> ConnectionTestResponse:
    provider = services.providers.get()
    return ConnectionTestResponse(ok=await provider.test_connection(), provider=provider.name)
