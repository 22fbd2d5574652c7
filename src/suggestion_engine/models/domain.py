"""Core domain objects used throughout the system."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from suggestion_engine.cancellation import CancellationToken


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ItemRole(str, Enum):
    SUPPORTS = "supports"
    CONTRADICTS = "contradicts"
    METHOD = "method"
    BACKGROUND = "background"
    OTHER = "other"


# Roles the context selector guarantees one representative for.
DIVERSITY_ROLES = (ItemRole.SUPPORTS, ItemRole.CONTRADICTS, ItemRole.METHOD, ItemRole.BACKGROUND)


class RelationshipType(str, Enum):
    SUPPORTS = "supports"
    CONTRADICTS = "contradicts"
    EXTENDS = "extends"
    USES_METHOD = "uses-method"
    SAME_TOPIC = "same-topic"
    REVIEWS = "reviews"
    REPLICATES = "replicates"
    CRITIQUES = "critiques"


class FinishReason(str, Enum):
    COMPLETE = "complete"
    LENGTH = "length"
    STOP = "stop"
    ERROR = "error"


class ModelTier(str, Enum):
    FAST = "fast"
    STANDARD = "standard"
    ADVANCED = "advanced"


class SuggestionFamily(str, Enum):
    RELATIONSHIP = "relationship"
    SUMMARY = "summary"
    CLAIM = "claim"
    GAP = "gap"
    SCREENING = "screening"
    INTAKE = "intake"


class FeedbackAction(str, Enum):
    ACCEPTED = "accepted"
    EDITED = "edited"
    DISMISSED = "dismissed"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


_JOB_STATUS_ORDER = {
    JobStatus.PENDING: 0,
    JobStatus.PROCESSING: 1,
    JobStatus.COMPLETED: 2,
    JobStatus.FAILED: 2,
}


# --- Working set -----------------------------------------------------------


@dataclass
class Subject:
    id: str
    title: str
    description: str = ""


@dataclass
class Claim:
    claim: str
    strength: str | None = None  # "strong", "moderate", "weak"
    assessment: str | None = None  # researcher's own stance, e.g. "agree"


@dataclass
class Evidence:
    description: str
    type: str = "other"


@dataclass
class Item:
    id: str
    title: str
    authors: list[str] = field(default_factory=list)
    year: int | None = None
    abstract: str | None = None
    summary: str = ""
    role: ItemRole = ItemRole.OTHER
    claims: list[Claim] = field(default_factory=list)
    evidence: list[Evidence] = field(default_factory=list)


@dataclass
class Relationship:
    id: str
    from_item_id: str
    to_item_id: str
    type: RelationshipType
    note: str | None = None
    ai_suggested: bool = False
    ai_confidence: float | None = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Excerpt:
    text: str
    comment: str | None = None
    item_id: str | None = None


@dataclass
class WorkingSet:
    subject: Subject
    items: list[Item] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)

    @property
    def item_ids(self) -> set[str]:
        return {item.id for item in self.items}

    def get_item(self, item_id: str) -> Item | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None


# --- Request context (immutable) -------------------------------------------


@dataclass(frozen=True)
class SubjectContext:
    title: str
    description: str


@dataclass(frozen=True)
class ItemContext:
    id: str
    title: str
    authors: str
    year: int | None
    abstract: str | None
    summary: str
    role: ItemRole
    claims: tuple[Claim, ...] = ()
    evidence: tuple[Evidence, ...] = ()


@dataclass(frozen=True)
class RelationshipContext:
    from_item_id: str
    from_title: str
    to_item_id: str
    to_title: str
    type: RelationshipType
    note: str | None = None


@dataclass(frozen=True)
class ExcerptContext:
    text: str
    comment: str | None = None


@dataclass(frozen=True)
class RequestContext:
    subject: SubjectContext
    target: ItemContext | None
    related: tuple[ItemContext, ...]
    relationships: tuple[RelationshipContext, ...]
    excerpts: tuple[ExcerptContext, ...] | None = None

    @property
    def item_ids(self) -> set[str]:
        ids = {item.id for item in self.related}
        if self.target is not None:
            ids.add(self.target.id)
        return ids


# --- Completions -----------------------------------------------------------


@dataclass(frozen=True)
class CompletionRequest:
    prompt: str
    system: str | None = None
    max_tokens: int = 1024
    temperature: float = 0.3
    stop_sequences: tuple[str, ...] = ()
    model: str | None = None
    cancel: CancellationToken | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class CompletionResult:
    text: str
    input_tokens: int
    output_tokens: int
    finish_reason: FinishReason
    model: str
    latency_ms: float


@dataclass(frozen=True)
class JSONCompletion:
    data: Any
    result: CompletionResult


# --- Background queue ------------------------------------------------------


@dataclass
class Job:
    id: str
    item_id: str
    working_set: WorkingSet = field(repr=False)
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    suggestions: list | None = None
    error: str | None = None

    def transition(self, status: JobStatus, now: datetime | None = None) -> None:
        if self.status.terminal or _JOB_STATUS_ORDER[status] <= _JOB_STATUS_ORDER[self.status]:
            raise ValueError(f"Job {self.id} cannot move from {self.status.value} to {status.value}")
        self.status = status
        stamp = now or utcnow()
        if status is JobStatus.PROCESSING:
            self.started_at = stamp
        else:
            self.finished_at = stamp


# --- Plan-based analysis ---------------------------------------------------


@dataclass
class PlanObservation:
    category: str  # coverage, methodology, temporal, contradiction, subject-alignment
    finding: str
    supporting_item_ids: list[str]
    confidence: float


@dataclass
class ProposedGap:
    type: str
    hypothesis: str
    evidence: list[str]
    cited_item_ids: list[str]
    needs_verification: bool = True


@dataclass
class AnalysisPlan:
    id: str
    subject_id: str
    observations: list[PlanObservation] = field(default_factory=list)
    proposed_gaps: list[ProposedGap] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)


# --- Feedback --------------------------------------------------------------


@dataclass
class FeedbackRecord:
    id: str
    suggestion_id: str
    family: SuggestionFamily
    action: FeedbackAction
    original: dict
    edited: dict | None = None
    subject_id: str | None = None
    timestamp: datetime = field(default_factory=utcnow)
