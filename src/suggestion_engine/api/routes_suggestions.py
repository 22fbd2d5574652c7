"""One endpoint per suggestion family."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from suggestion_engine.api.dependencies import get_manager, get_plan_analyzer
from suggestion_engine.gap.plan_based import PlanBasedGapAnalyzer
from suggestion_engine.models.schemas import (
    ClaimSuggestionsResponse,
    GapRequest,
    GapSuggestionsResponse,
    IntakeRequest,
    ItemSuggestionRequest,
    RelationshipSuggestionsResponse,
    RerankRequest,
    RerankResponse,
    ScreeningRequest,
    ScreeningResponse,
    SummaryRequest,
    SummarySuggestionResponse,
)
from suggestion_engine.models.suggestions import IntakeAnalysis
from suggestion_engine.suggestions.manager import SuggestionManager

router = APIRouter(prefix="/suggestions")


@router.post("/relationships", response_model=RelationshipSuggestionsResponse)
async def suggest_relationships(
    request: ItemSuggestionRequest,
    manager: SuggestionManager = Depends(get_manager),
) -> RelationshipSuggestionsResponse:
    suggestions = await manager.suggest_relationships(
        request.working_set.to_domain(),
        request.item_id,
        excerpts=request.domain_excerpts(),
        max_suggestions=request.max_suggestions,
    )
    return RelationshipSuggestionsResponse(suggestions=suggestions)


@router.post("/summary", response_model=SummarySuggestionResponse)
async def suggest_summary(
    request: SummaryRequest,
    manager: SuggestionManager = Depends(get_manager),
) -> SummarySuggestionResponse:
    suggestion = await manager.suggest_summary(
        request.working_set.to_domain(),
        request.item_id,
        excerpts=request.domain_excerpts(),
        current_summary=request.current_summary,
    )
    return SummarySuggestionResponse(suggestion=suggestion)


@router.post("/claims", response_model=ClaimSuggestionsResponse)
async def extract_claims(
    request: ItemSuggestionRequest,
    manager: SuggestionManager = Depends(get_manager),
) -> ClaimSuggestionsResponse:
    suggestions = await manager.extract_claims(
        request.working_set.to_domain(),
        request.item_id,
        excerpts=request.domain_excerpts(),
        max_suggestions=request.max_suggestions,
    )
    return ClaimSuggestionsResponse(suggestions=suggestions)


@router.post("/gaps", response_model=GapSuggestionsResponse)
async def analyze_gaps(
    request: GapRequest,
    manager: SuggestionManager = Depends(get_manager),
) -> GapSuggestionsResponse:
    suggestions = await manager.analyze_gaps(
        request.working_set.to_domain(), max_suggestions=request.max_suggestions
    )
    return GapSuggestionsResponse(suggestions=suggestions)


@router.post("/gaps/plan-based", response_model=GapSuggestionsResponse)
async def analyze_gaps_plan_based(
    request: GapRequest,
    analyzer: PlanBasedGapAnalyzer = Depends(get_plan_analyzer),
) -> GapSuggestionsResponse:
    suggestions = await analyzer.analyze(request.working_set.to_domain())
    return GapSuggestionsResponse(suggestions=suggestions)


@router.post("/screening", response_model=ScreeningResponse)
async def screen_items(
    request: ScreeningRequest,
    manager: SuggestionManager = Depends(get_manager),
) -> ScreeningResponse:
    results = await manager.screen_items(
        request.working_set.to_domain(), [c.to_domain() for c in request.candidates]
    )
    return ScreeningResponse(results=results)


@router.post("/intake", response_model=IntakeAnalysis)
async def analyze_intake(
    request: IntakeRequest,
    manager: SuggestionManager = Depends(get_manager),
) -> IntakeAnalysis:
    return await manager.analyze_intake(request.working_set.to_domain(), request.item.to_domain())


@router.post("/relationships/rerank", response_model=RerankResponse)
async def rerank_relationships(
    request: RerankRequest,
    manager: SuggestionManager = Depends(get_manager),
) -> RerankResponse:
    results = await manager.rerank_relationships(
        request.working_set.to_domain(), request.candidates, max_results=request.max_results
    )
    return RerankResponse(results=results)
