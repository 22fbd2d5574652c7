"""Accept, edit and dismiss suggestions; inspect feedback history."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query

from suggestion_engine.api.dependencies import get_manager
from suggestion_engine.models.domain import FeedbackRecord, SuggestionFamily
from suggestion_engine.models.schemas import (
    AcceptRelationshipRequest,
    AcceptRequest,
    DismissRequest,
    FeedbackResponse,
    RelationshipResponse,
)
from suggestion_engine.suggestions.manager import SuggestionManager

router = APIRouter()


def _feedback_response(record: FeedbackRecord) -> FeedbackResponse:
    data = asdict(record)
    data["family"] = record.family.value
    data["action"] = record.action.value
    return FeedbackResponse(**data)


@router.post("/suggestions/{suggestion_id}/accept-relationship", response_model=RelationshipResponse)
async def accept_relationship(
    suggestion_id: str,
    request: AcceptRelationshipRequest,
    manager: SuggestionManager = Depends(get_manager),
) -> RelationshipResponse:
    relationship = await manager.accept_relationship(
        suggestion_id,
        relationship_type=request.relationship_type,
        note=request.note,
        subject_id=request.subject_id,
    )
    return RelationshipResponse.from_domain(relationship)


@router.post("/suggestions/{suggestion_id}/accept", response_model=FeedbackResponse)
async def accept(
    suggestion_id: str,
    request: AcceptRequest,
    manager: SuggestionManager = Depends(get_manager),
) -> FeedbackResponse:
    record = await manager.accept(suggestion_id, edited=request.edited, subject_id=request.subject_id)
    return _feedback_response(record)


@router.post("/suggestions/{suggestion_id}/dismiss", response_model=FeedbackResponse)
async def dismiss(
    suggestion_id: str,
    request: DismissRequest,
    manager: SuggestionManager = Depends(get_manager),
) -> FeedbackResponse:
    record = await manager.dismiss(suggestion_id, subject_id=request.subject_id)
    return _feedback_response(record)


@router.get("/feedback", response_model=list[FeedbackResponse])
async def list_feedback(
    family: SuggestionFamily | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    manager: SuggestionManager = Depends(get_manager),
) -> list[FeedbackResponse]:
    return [_feedback_response(r) for r in manager.feedback.history(family, limit)]


@router.get("/feedback/summary")
async def feedback_summary(manager: SuggestionManager = Depends(get_manager)) -> dict:
    return manager.feedback.summary()


@router.get("/feedback/preferences")
async def feedback_preferences(
    subject_id: str | None = None,
    manager: SuggestionManager = Depends(get_manager),
) -> dict:
    """What has been learned from this subject's feedback, and the prompt guidance it yields."""
    preferences = manager.learner.learn(subject_id).to_dict()
    preferences["prompt_context"] = {
        family.value: manager.learner.build_prompt_context(subject_id, family)
        for family in (SuggestionFamily.RELATIONSHIP, SuggestionFamily.SUMMARY, SuggestionFamily.INTAKE)
    }
    return preferences
