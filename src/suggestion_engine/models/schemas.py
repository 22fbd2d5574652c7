"""Pydantic models for API request/response serialization."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from suggestion_engine.models.domain import (
    Claim,
    Evidence,
    Excerpt,
    Item,
    ItemRole,
    Job,
    Relationship,
    RelationshipType,
    Subject,
    WorkingSet,
)
from suggestion_engine.models.suggestions import (
    ClaimSuggestion,
    GapSuggestion,
    RelationshipSuggestion,
    RerankedRelationship,
    ScreeningSuggestion,
    SummarySuggestion,
)


class SubjectPayload(BaseModel):
    id: str
    title: str
    description: str = ""


class ClaimPayload(BaseModel):
    claim: str
    strength: str | None = None
    assessment: str | None = None


class EvidencePayload(BaseModel):
    description: str
    type: str = "other"


class ItemPayload(BaseModel):
    id: str
    title: str
    authors: list[str] = Field(default_factory=list)
    year: int | None = None
    abstract: str | None = None
    summary: str = ""
    role: ItemRole = ItemRole.OTHER
    claims: list[ClaimPayload] = Field(default_factory=list)
    evidence: list[EvidencePayload] = Field(default_factory=list)

    def to_domain(self) -> Item:
        return Item(
            id=self.id,
            title=self.title,
            authors=list(self.authors),
            year=self.year,
            abstract=self.abstract,
            summary=self.summary,
            role=self.role,
            claims=[Claim(c.claim, c.strength, c.assessment) for c in self.claims],
            evidence=[Evidence(e.description, e.type) for e in self.evidence],
        )


class RelationshipPayload(BaseModel):
    id: str
    from_item_id: str
    to_item_id: str
    type: RelationshipType
    note: str | None = None

    def to_domain(self) -> Relationship:
        return Relationship(
            id=self.id,
            from_item_id=self.from_item_id,
            to_item_id=self.to_item_id,
            type=self.type,
            note=self.note,
        )


class ExcerptPayload(BaseModel):
    text: str
    comment: str | None = None
    item_id: str | None = None

    def to_domain(self) -> Excerpt:
        return Excerpt(text=self.text, comment=self.comment, item_id=self.item_id)


class WorkingSetPayload(BaseModel):
    subject: SubjectPayload
    items: list[ItemPayload] = Field(default_factory=list)
    relationships: list[RelationshipPayload] = Field(default_factory=list)

    def to_domain(self) -> WorkingSet:
        return WorkingSet(
            subject=Subject(self.subject.id, self.subject.title, self.subject.description),
            items=[i.to_domain() for i in self.items],
            relationships=[r.to_domain() for r in self.relationships],
        )


# --- Suggestion requests -----------------------------------------------------


class ItemSuggestionRequest(BaseModel):
    working_set: WorkingSetPayload
    item_id: str
    excerpts: list[ExcerptPayload] | None = None
    max_suggestions: int | None = Field(default=None, ge=1, le=20)

    def domain_excerpts(self) -> list[Excerpt] | None:
        if self.excerpts is None:
            return None
        return [e.to_domain() for e in self.excerpts]


class SummaryRequest(ItemSuggestionRequest):
    current_summary: str | None = None


class GapRequest(BaseModel):
    working_set: WorkingSetPayload
    max_suggestions: int | None = Field(default=None, ge=1, le=20)


class ScreeningRequest(BaseModel):
    working_set: WorkingSetPayload
    candidates: list[ItemPayload]


class IntakeRequest(BaseModel):
    working_set: WorkingSetPayload
    item: ItemPayload


class RelationshipSuggestionsResponse(BaseModel):
    suggestions: list[RelationshipSuggestion]


class SummarySuggestionResponse(BaseModel):
    suggestion: SummarySuggestion | None


class ClaimSuggestionsResponse(BaseModel):
    suggestions: list[ClaimSuggestion]


class GapSuggestionsResponse(BaseModel):
    suggestions: list[GapSuggestion]


class RerankRequest(BaseModel):
    working_set: WorkingSetPayload
    candidates: list[RelationshipSuggestion] = Field(max_length=50)
    max_results: int | None = Field(default=None, ge=1, le=50)


class ScreeningResponse(BaseModel):
    results: list[ScreeningSuggestion]


class RerankResponse(BaseModel):
    results: list[RerankedRelationship]


# --- Feedback ------------------------------------------------------------------


class AcceptRelationshipRequest(BaseModel):
    relationship_type: RelationshipType | None = None
    note: str | None = None
    subject_id: str | None = None


class AcceptRequest(BaseModel):
    edited: dict | None = None
    subject_id: str | None = None


class DismissRequest(BaseModel):
    subject_id: str | None = None


class RelationshipResponse(BaseModel):
    id: str
    from_item_id: str
    to_item_id: str
    type: RelationshipType
    note: str | None
    ai_suggested: bool
    ai_confidence: float | None
    created_at: datetime

    @classmethod
    def from_domain(cls, relationship: Relationship) -> RelationshipResponse:
        return cls(
            id=relationship.id,
            from_item_id=relationship.from_item_id,
            to_item_id=relationship.to_item_id,
            type=relationship.type,
            note=relationship.note,
            ai_suggested=relationship.ai_suggested,
            ai_confidence=relationship.ai_confidence,
            created_at=relationship.created_at,
        )


class FeedbackResponse(BaseModel):
    id: str
    suggestion_id: str
    family: str
    action: Literal["accepted", "edited", "dismissed"]
    original: dict
    edited: dict | None
    subject_id: str | None
    timestamp: datetime


# --- Queue ---------------------------------------------------------------------


class EnqueueRequest(BaseModel):
    working_set: WorkingSetPayload
    item_id: str


class EnqueueResponse(BaseModel):
    job_id: str | None
    accepted: bool


class JobResponse(BaseModel):
    id: str
    item_id: str
    status: Literal["pending", "processing", "completed", "failed"]
    created_at: datetime
    started_at: datetime | None
    finished_at: datetime | None
    suggestion_count: int
    error: str | None

    @classmethod
    def from_domain(cls, job: Job) -> JobResponse:
        return cls(
            id=job.id,
            item_id=job.item_id,
            status=job.status.value,
            created_at=job.created_at,
            started_at=job.started_at,
            finished_at=job.finished_at,
            suggestion_count=len(job.suggestions or []),
            error=job.error,
        )


class QueueStatusResponse(BaseModel):
    pending: int
    processing: int
    completed: int
    failed: int
    running: bool
    current_item_id: str | None
    jobs: list[JobResponse]


# --- Settings / health -----------------------------------------------------------


class SettingsUpdate(BaseModel):
    provider_type: Literal["anthropic", "openai-compatible", "mock"] | None = None
    api_key: str | None = None
    base_url: str | None = None
    model_name: str | None = None
    enable_relationship_suggestions: bool | None = None
    enable_summary_suggestions: bool | None = None
    enable_claim_extraction: bool | None = None
    enable_gap_analysis: bool | None = None
    enable_plan_based_gaps: bool | None = None
    enable_screening: bool | None = None
    enable_intake: bool | None = None
    enable_auto_connect: bool | None = None
    confidence_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    max_suggestions: int | None = Field(default=None, ge=1, le=20)
    send_long_text: bool | None = None
    send_excerpts: bool | None = None


class SettingsResponse(BaseModel):
    provider_type: str
    has_api_key: bool
    base_url: str
    model_name: str
    confidence_threshold: float
    max_suggestions: int
    send_long_text: bool
    send_excerpts: bool
    features: dict[str, bool]
    provider_replaced: bool = False


class ConnectionTestResponse(BaseModel):
    ok: bool
    provider: str


class PolicyResponse(BaseModel):
    item_count: int
    tier: str
    max_context_items: int
    include_long_text: bool
    auto_trigger: bool
    features: dict[str, bool]
    guidance: str
    cold_start_message: str | None


class HealthResponse(BaseModel):
    status: str
    provider: str
    configured: bool
    queue_running: bool
    feedback_records: int
