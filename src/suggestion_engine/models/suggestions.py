"""Suggestion variants produced by the manager, decoded as a tagged union."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, Field, TypeAdapter

from suggestion_engine.models.domain import ItemRole, RelationshipType, SuggestionFamily, utcnow

GapType = Literal[
    "knowledge",
    "methodological",
    "population",
    "theoretical",
    "temporal",
    "geographic",
    "contradictory",
]
EvidenceType = Literal["experimental", "computational", "theoretical", "meta-analysis", "other"]
ClaimStrength = Literal["strong", "moderate", "weak"]
EvidenceKind = Literal["summary", "claim", "evidence", "citation", "abstract", "excerpt"]


def new_suggestion_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:12]}"


class EvidenceRef(BaseModel):
    item_id: str
    kind: EvidenceKind = "summary"
    text: str = ""
    relevance: str = ""


class SuggestionBase(BaseModel):
    id: str
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""
    evidence: list[EvidenceRef] = Field(default_factory=list)
    source: str = "model"
    created_at: datetime = Field(default_factory=utcnow)

    def referenced_item_ids(self) -> set[str]:
        return {ref.item_id for ref in self.evidence}


class RelationshipSuggestion(SuggestionBase):
    kind: Literal["relationship"] = "relationship"
    target_item_id: str
    suggested_item_id: str
    suggested_item_title: str
    relationship_type: RelationshipType

    def referenced_item_ids(self) -> set[str]:
        return super().referenced_item_ids() | {self.target_item_id, self.suggested_item_id}


class SummaryBasis(BaseModel):
    long_text: bool = False
    excerpts: bool = False
    related_item_ids: list[str] = Field(default_factory=list)


class SummarySuggestion(SuggestionBase):
    kind: Literal["summary"] = "summary"
    item_id: str
    text: str
    alternatives: list[str] = Field(default_factory=list)
    refined_from: str | None = None
    based_on: SummaryBasis = Field(default_factory=SummaryBasis)

    def referenced_item_ids(self) -> set[str]:
        return super().referenced_item_ids() | {self.item_id} | set(self.based_on.related_item_ids)


class ClaimSuggestion(SuggestionBase):
    kind: Literal["claim"] = "claim"
    item_id: str
    claim: str
    strength: ClaimStrength = "moderate"
    evidence_snippets: list[str] = Field(default_factory=list)
    evidence_type: EvidenceType = "other"
    claim_source: Literal["long_text", "excerpts", "combined"] = "combined"

    def referenced_item_ids(self) -> set[str]:
        return super().referenced_item_ids() | {self.item_id}


class GapSuggestion(SuggestionBase):
    kind: Literal["gap"] = "gap"
    subject_id: str
    gap_type: GapType = "knowledge"
    title: str
    description: str = ""
    priority: Literal["high", "medium", "low"] = "medium"
    related_item_ids: list[str] = Field(default_factory=list)
    future_research_question: str = ""

    def referenced_item_ids(self) -> set[str]:
        return super().referenced_item_ids() | set(self.related_item_ids)


Suggestion = Annotated[
    Union[RelationshipSuggestion, SummarySuggestion, ClaimSuggestion, GapSuggestion],
    Field(discriminator="kind"),
]
suggestion_adapter: TypeAdapter[Suggestion] = TypeAdapter(Suggestion)

FAMILY_BY_KIND = {
    "relationship": SuggestionFamily.RELATIONSHIP,
    "summary": SuggestionFamily.SUMMARY,
    "claim": SuggestionFamily.CLAIM,
    "gap": SuggestionFamily.GAP,
    "intake": SuggestionFamily.INTAKE,
}


class ScreeningSuggestion(BaseModel):
    item_id: str
    decision: Literal["include", "exclude", "maybe"]
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""
    suggested_role: ItemRole | None = None
    suggested_summary: str | None = None
    exclusion_reason: str | None = None


class IntakeClaim(BaseModel):
    claim: str
    strength: ClaimStrength = "moderate"
    evidence_type: EvidenceType = "other"


class PotentialRelationship(BaseModel):
    item_id: str
    item_title: str
    relationship_type: RelationshipType
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""


class IntakeAnalysis(BaseModel):
    kind: Literal["intake"] = "intake"
    id: str
    item_id: str
    role: ItemRole
    role_confidence: float = Field(ge=0.0, le=1.0)
    # Role this researcher has repeatedly switched the suggested role to.
    alternative_role: ItemRole | None = None
    role_reasoning: str = ""
    summary: str = ""
    summary_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    alternative_summaries: list[str] = Field(default_factory=list)
    claims: list[IntakeClaim] = Field(default_factory=list)
    relevance_score: int = Field(default=50, ge=0, le=100)
    relevance_reasoning: str = ""
    potential_relationships: list[PotentialRelationship] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


class RerankedRelationship(BaseModel):
    suggestion: RelationshipSuggestion
    original_confidence: float = Field(ge=0.0, le=1.0)
    adjusted_confidence: float = Field(ge=0.0, le=1.0)
    # Positive when the candidate moved up.
    rank_change: int = 0
    reasoning: str = ""
