"""Decode raw model JSON into suggestion variants, rejecting ungrounded entries."""

from __future__ import annotations

import math
from typing import Annotated, Any

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

from suggestion_engine.models.domain import (
    AnalysisPlan,
    ItemRole,
    PlanObservation,
    ProposedGap,
    RelationshipType,
    RequestContext,
)
from suggestion_engine.models.suggestions import (
    ClaimSuggestion,
    EvidenceRef,
    GapSuggestion,
    IntakeAnalysis,
    IntakeClaim,
    PotentialRelationship,
    RelationshipSuggestion,
    ScreeningSuggestion,
    SummaryBasis,
    SummarySuggestion,
    new_suggestion_id,
)
from suggestion_engine.observability.logger import get_logger

logger = get_logger("suggestion_parsing")

DEFAULT_CONFIDENCE = 0.5


# --- Field coercion ----------------------------------------------------------


def _confidence(value: Any) -> float:
    if isinstance(value, bool):
        return DEFAULT_CONFIDENCE
    if isinstance(value, str):
        try:
            value = float(value.strip().rstrip("%")) / (100 if value.strip().endswith("%") else 1)
        except ValueError:
            return DEFAULT_CONFIDENCE
    if not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, float(value)))


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value.strip() if isinstance(value, str) else str(value)


def _text_list(value: Any) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [_text(v) for v in value if v is not None and _text(v)]


def _one_of(allowed: tuple[str, ...], default: str | None):
    def coerce(value: Any) -> str | None:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in allowed:
                return lowered
        return default

    return coerce


def _dict_list(value: Any) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


Confidence = Annotated[float, BeforeValidator(_confidence)]
Text = Annotated[str, BeforeValidator(_text)]
TextList = Annotated[list[str], BeforeValidator(_text_list)]
DictList = Annotated[list[dict], BeforeValidator(_dict_list)]

_RELATIONSHIP_TYPES = tuple(t.value for t in RelationshipType)
_ROLES = tuple(r.value for r in ItemRole)
_GAP_TYPES = (
    "knowledge",
    "methodological",
    "population",
    "theoretical",
    "temporal",
    "geographic",
    "contradictory",
)
_EVIDENCE_TYPES = ("experimental", "computational", "theoretical", "meta-analysis", "other")
_EVIDENCE_KINDS = ("summary", "claim", "evidence", "citation", "abstract", "excerpt")


def _id_field(*aliases: str):
    return Field(validation_alias=AliasChoices(*aliases))


class _RawModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# --- Raw response shapes -----------------------------------------------------


class RawEvidence(_RawModel):
    item_id: Text = Field(default="", validation_alias=AliasChoices("item_id", "itemId", "paperId", "id"))
    kind: Annotated[str, BeforeValidator(_one_of(_EVIDENCE_KINDS, "summary"))] = Field(
        default="summary", validation_alias=AliasChoices("kind", "type")
    )
    text: Text = ""
    relevance: Text = ""


class RawRelationship(_RawModel):
    item_id: Text = _id_field("item_id", "itemId", "paperId", "suggested_item_id", "id")
    relationship_type: Annotated[str, BeforeValidator(_one_of(_RELATIONSHIP_TYPES, "same-topic"))] = Field(
        default="same-topic", validation_alias=AliasChoices("relationship_type", "connectionType", "type")
    )
    confidence: Confidence = DEFAULT_CONFIDENCE
    reasoning: Text = "No reasoning provided"
    evidence: DictList = Field(default_factory=list)


class RawSummary(_RawModel):
    suggestion: Text = Field(validation_alias=AliasChoices("suggestion", "summary", "takeaway", "text"))
    confidence: Confidence = DEFAULT_CONFIDENCE
    reasoning: Text = ""
    alternatives: TextList = Field(default_factory=list)


class RawClaim(_RawModel):
    claim: Text
    strength: Annotated[str, BeforeValidator(_one_of(("strong", "moderate", "weak"), "moderate"))] = Field(
        default="moderate", validation_alias=AliasChoices("strength", "strengthSuggestion")
    )
    confidence: Confidence = DEFAULT_CONFIDENCE
    evidence_snippets: TextList = Field(
        default_factory=list, validation_alias=AliasChoices("evidence_snippets", "evidenceSnippets")
    )
    evidence_type: Annotated[str, BeforeValidator(_one_of(_EVIDENCE_TYPES, "other"))] = Field(
        default="other", validation_alias=AliasChoices("evidence_type", "evidenceType")
    )
    source: Annotated[str, BeforeValidator(_one_of(("long_text", "excerpts", "combined"), "combined"))] = "combined"
    reasoning: Text = ""


class RawGap(_RawModel):
    gap_type: Annotated[str, BeforeValidator(_one_of(_GAP_TYPES, "knowledge"))] = Field(
        default="knowledge", validation_alias=AliasChoices("gap_type", "type")
    )
    title: Text
    description: Text = ""
    priority: Annotated[str, BeforeValidator(_one_of(("high", "medium", "low"), "medium"))] = "medium"
    confidence: Confidence = DEFAULT_CONFIDENCE
    related_item_ids: TextList = Field(
        default_factory=list, validation_alias=AliasChoices("related_item_ids", "relatedPaperIds", "item_ids")
    )
    future_research_question: Text = Field(
        default="", validation_alias=AliasChoices("future_research_question", "futureResearchQuestion")
    )


class RawScreening(_RawModel):
    item_id: Text = _id_field("item_id", "itemId", "paperId", "id")
    decision: Annotated[str, BeforeValidator(_one_of(("include", "exclude", "maybe"), "maybe"))] = "maybe"
    confidence: Confidence = DEFAULT_CONFIDENCE
    reasoning: Text = ""
    suggested_role: Annotated[str | None, BeforeValidator(_one_of(_ROLES, None))] = None
    suggested_summary: Text = ""
    exclusion_reason: Text = ""


class RawPotentialRelationship(_RawModel):
    item_id: Text = _id_field("item_id", "existingPaperId", "paperId", "id")
    relationship_type: Annotated[str, BeforeValidator(_one_of(_RELATIONSHIP_TYPES, "same-topic"))] = Field(
        default="same-topic", validation_alias=AliasChoices("relationship_type", "connectionType", "type")
    )
    confidence: Confidence = DEFAULT_CONFIDENCE
    reasoning: Text = ""


def _relevance(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return 50
    try:
        number = float(value)
    except ValueError:
        return 50
    return int(max(0, min(100, round(number))))


class RawIntake(_RawModel):
    role: Annotated[str, BeforeValidator(_one_of(_ROLES, "other"))] = Field(
        default="other", validation_alias=AliasChoices("role", "thesisRole")
    )
    role_confidence: Confidence = Field(default=DEFAULT_CONFIDENCE, validation_alias=AliasChoices("role_confidence", "roleConfidence"))
    role_reasoning: Text = ""
    summary: Text = Field(default="", validation_alias=AliasChoices("summary", "takeaway"))
    summary_confidence: Confidence = DEFAULT_CONFIDENCE
    alternative_summaries: TextList = Field(default_factory=list)
    claims: DictList = Field(default_factory=list, validation_alias=AliasChoices("claims", "arguments"))
    relevance_score: Annotated[int, BeforeValidator(_relevance)] = Field(
        default=50, validation_alias=AliasChoices("relevance_score", "relevanceScore")
    )
    relevance_reasoning: Text = ""
    potential_relationships: DictList = Field(
        default_factory=list,
        validation_alias=AliasChoices("potential_relationships", "potentialConnections"),
    )


# --- Helpers -----------------------------------------------------------------


def as_entries(data: Any, *keys: str) -> list[dict]:
    """Normalize a decoded response to a list of objects.

    Accepts a bare list, an object wrapping the list under one of ``keys`` (or under
    its only list-valued field), or a single object.
    """
    if isinstance(data, dict):
        for key in keys:
            if isinstance(data.get(key), list):
                data = data[key]
                break
        else:
            lists = [v for v in data.values() if isinstance(v, list)]
            data = lists[0] if len(lists) == 1 and not _looks_like_entry(data) else [data]
    if not isinstance(data, list):
        return []
    return [entry for entry in data if isinstance(entry, dict)]


def _looks_like_entry(data: dict) -> bool:
    return any(k in data for k in ("confidence", "title", "claim", "item_id", "decision"))


def _decode(model: type[_RawModel], entry: dict, family: str):
    try:
        return model.model_validate(entry)
    except ValidationError as e:
        logger.warning("suggestion_entry_rejected", family=family, errors=e.error_count())
        return None


def _evidence_refs(raw: list[dict], known_ids: set[str], default_item_id: str) -> list[EvidenceRef]:
    refs = []
    for entry in raw:
        ev = _decode(RawEvidence, entry, "evidence")
        if ev is None:
            continue
        item_id = ev.item_id or default_item_id
        if item_id not in known_ids:
            continue
        refs.append(EvidenceRef(item_id=item_id, kind=ev.kind, text=ev.text, relevance=ev.relevance))
    return refs


# --- Family parsers ----------------------------------------------------------


def parse_relationship_suggestions(data: Any, context: RequestContext) -> list[RelationshipSuggestion]:
    target = context.target
    if target is None:
        return []
    known_ids = context.item_ids
    titles = {i.id: i.title for i in context.related}
    linked = {
        r.to_item_id if r.from_item_id == target.id else r.from_item_id
        for r in context.relationships
        if target.id in (r.from_item_id, r.to_item_id)
    }

    best: dict[str, RelationshipSuggestion] = {}
    for entry in as_entries(data, "suggestions", "relationships"):
        raw = _decode(RawRelationship, entry, "relationship")
        if raw is None:
            continue
        if raw.item_id not in known_ids or raw.item_id == target.id or raw.item_id in linked:
            logger.info("ungrounded_suggestion_dropped", family="relationship", item_id=raw.item_id)
            continue
        suggestion = RelationshipSuggestion(
            id=new_suggestion_id("rel"),
            target_item_id=target.id,
            suggested_item_id=raw.item_id,
            suggested_item_title=titles.get(raw.item_id, raw.item_id),
            relationship_type=RelationshipType(raw.relationship_type),
            confidence=raw.confidence,
            reasoning=raw.reasoning,
            evidence=_evidence_refs(raw.evidence, known_ids, target.id),
            source="combined",
        )
        current = best.get(raw.item_id)
        if current is None or suggestion.confidence > current.confidence:
            best[raw.item_id] = suggestion
    return list(best.values())


def parse_summary_suggestion(
    data: Any, context: RequestContext, refined_from: str | None = None
) -> SummarySuggestion | None:
    target = context.target
    if target is None or not isinstance(data, dict):
        return None
    raw = _decode(RawSummary, data, "summary")
    if raw is None or not raw.suggestion:
        return None
    return SummarySuggestion(
        id=new_suggestion_id("summary"),
        item_id=target.id,
        text=raw.suggestion,
        alternatives=[a for a in raw.alternatives if a != raw.suggestion],
        refined_from=refined_from,
        confidence=raw.confidence,
        reasoning=raw.reasoning,
        source="refinement" if refined_from else "model",
        based_on=SummaryBasis(
            long_text=bool(target.abstract),
            excerpts=bool(context.excerpts),
            related_item_ids=[i.id for i in context.related],
        ),
    )


def parse_claim_suggestions(data: Any, context: RequestContext) -> list[ClaimSuggestion]:
    target = context.target
    if target is None:
        return []
    suggestions = []
    for entry in as_entries(data, "claims", "arguments"):
        raw = _decode(RawClaim, entry, "claim")
        if raw is None or not raw.claim:
            continue
        kind = "excerpt" if raw.source == "excerpts" else "abstract"
        suggestions.append(
            ClaimSuggestion(
                id=new_suggestion_id("claim"),
                item_id=target.id,
                claim=raw.claim,
                strength=raw.strength,
                evidence_snippets=raw.evidence_snippets,
                evidence_type=raw.evidence_type,
                claim_source=raw.source,
                confidence=raw.confidence,
                reasoning=raw.reasoning,
                evidence=[EvidenceRef(item_id=target.id, kind=kind, text=s) for s in raw.evidence_snippets],
                source=raw.source,
            )
        )
    return suggestions


def parse_gap_suggestions(
    data: Any, subject_id: str, known_ids: set[str], source: str = "model"
) -> list[GapSuggestion]:
    """Gaps citing only unknown ids are dropped; unknown ids are stripped from the rest."""
    suggestions = []
    for entry in as_entries(data, "gaps", "suggestions"):
        raw = _decode(RawGap, entry, "gap")
        if raw is None or not raw.title:
            continue
        cited = list(dict.fromkeys(raw.related_item_ids))
        grounded = [i for i in cited if i in known_ids]
        if cited and not grounded:
            logger.info("ungrounded_suggestion_dropped", family="gap", title=raw.title)
            continue
        suggestions.append(
            GapSuggestion(
                id=new_suggestion_id("gap"),
                subject_id=subject_id,
                gap_type=raw.gap_type,
                title=raw.title,
                description=raw.description,
                priority=raw.priority,
                related_item_ids=grounded,
                future_research_question=raw.future_research_question,
                confidence=raw.confidence,
                reasoning=raw.description,
                evidence=[EvidenceRef(item_id=i, kind="summary") for i in grounded],
                source=source,
            )
        )
    return suggestions


def parse_screening_suggestions(data: Any, candidate_ids: list[str]) -> list[ScreeningSuggestion]:
    """One decision per candidate, in candidate order; missing ones default to maybe."""
    valid = set(candidate_ids)
    decided: dict[str, ScreeningSuggestion] = {}
    for entry in as_entries(data, "decisions", "screening"):
        raw = _decode(RawScreening, entry, "screening")
        if raw is None or raw.item_id not in valid or raw.item_id in decided:
            continue
        include = raw.decision == "include"
        decided[raw.item_id] = ScreeningSuggestion(
            item_id=raw.item_id,
            decision=raw.decision,
            confidence=raw.confidence,
            reasoning=raw.reasoning,
            suggested_role=ItemRole(raw.suggested_role or "background") if include else None,
            suggested_summary=(raw.suggested_summary or None) if include else None,
            exclusion_reason=(raw.exclusion_reason or "other") if raw.decision == "exclude" else None,
        )

    results = []
    for item_id in candidate_ids:
        if item_id in decided:
            results.append(decided[item_id])
        else:
            results.append(
                ScreeningSuggestion(
                    item_id=item_id,
                    decision="maybe",
                    confidence=0.0,
                    reasoning="No decision was returned for this item.",
                )
            )
    return results


def parse_intake_analysis(data: Any, context: RequestContext) -> IntakeAnalysis:
    target = context.target
    if target is None:
        raise ValueError("Intake parsing requires a target item")
    raw = _decode(RawIntake, data if isinstance(data, dict) else {}, "intake") or RawIntake()

    claims = []
    for entry in raw.claims:
        claim = _decode(RawClaim, entry, "intake_claim")
        if claim is not None and claim.claim:
            claims.append(IntakeClaim(claim=claim.claim, strength=claim.strength, evidence_type=claim.evidence_type))

    titles = {i.id: i.title for i in context.related}
    potential = []
    seen: set[str] = set()
    for entry in raw.potential_relationships:
        rel = _decode(RawPotentialRelationship, entry, "intake_relationship")
        if rel is None or rel.item_id not in titles or rel.item_id in seen:
            continue
        seen.add(rel.item_id)
        potential.append(
            PotentialRelationship(
                item_id=rel.item_id,
                item_title=titles[rel.item_id],
                relationship_type=RelationshipType(rel.relationship_type),
                confidence=rel.confidence,
                reasoning=rel.reasoning,
            )
        )

    return IntakeAnalysis(
        id=new_suggestion_id("intake"),
        item_id=target.id,
        role=ItemRole(raw.role),
        role_confidence=raw.role_confidence,
        role_reasoning=raw.role_reasoning,
        summary=raw.summary,
        summary_confidence=raw.summary_confidence,
        alternative_summaries=raw.alternative_summaries,
        claims=claims,
        relevance_score=raw.relevance_score,
        relevance_reasoning=raw.relevance_reasoning,
        potential_relationships=potential,
    )


# --- Analysis plan -----------------------------------------------------------

_OBSERVATION_CATEGORIES = ("coverage", "methodology", "temporal", "contradiction", "subject-alignment")


class RawObservation(_RawModel):
    category: Annotated[str, BeforeValidator(_one_of(_OBSERVATION_CATEGORIES, "coverage"))] = "coverage"
    finding: Text
    supporting_item_ids: TextList = Field(
        default_factory=list,
        validation_alias=AliasChoices("supporting_item_ids", "supportingPaperIds", "item_ids"),
    )
    confidence: Confidence = DEFAULT_CONFIDENCE


class RawProposedGap(_RawModel):
    type: Annotated[str, BeforeValidator(_one_of(_GAP_TYPES, "knowledge"))] = Field(
        default="knowledge", validation_alias=AliasChoices("type", "gap_type")
    )
    hypothesis: Text
    evidence: TextList = Field(default_factory=list)
    cited_item_ids: TextList = Field(
        default_factory=list,
        validation_alias=AliasChoices("cited_item_ids", "citedPaperIds", "related_item_ids"),
    )
    needs_verification: bool = Field(
        default=True, validation_alias=AliasChoices("needs_verification", "needsVerification")
    )


def parse_analysis_plan(data: Any, subject_id: str, known_ids: set[str]) -> AnalysisPlan:
    """Keep observations and proposed gaps whose citations intersect ``known_ids``.

    Unknown ids are stripped from the survivors.
    """
    if not isinstance(data, dict):
        data = {}
    observations = []
    for entry in _dict_list(data.get("observations")):
        raw = _decode(RawObservation, entry, "plan_observation")
        if raw is None or not raw.finding:
            continue
        cited = [i for i in dict.fromkeys(raw.supporting_item_ids) if i in known_ids]
        if not cited:
            logger.info("ungrounded_observation_dropped", category=raw.category)
            continue
        observations.append(
            PlanObservation(
                category=raw.category,
                finding=raw.finding,
                supporting_item_ids=cited,
                confidence=raw.confidence,
            )
        )

    gaps = []
    for entry in _dict_list(data.get("proposed_gaps", data.get("proposedGaps"))):
        raw = _decode(RawProposedGap, entry, "plan_gap")
        if raw is None or not raw.hypothesis:
            continue
        cited = [i for i in dict.fromkeys(raw.cited_item_ids) if i in known_ids]
        if not cited:
            logger.info("ungrounded_proposed_gap_dropped", type=raw.type)
            continue
        gaps.append(
            ProposedGap(
                type=raw.type,
                hypothesis=raw.hypothesis,
                evidence=raw.evidence,
                cited_item_ids=cited,
                needs_verification=raw.needs_verification,
            )
        )
    return AnalysisPlan(id=new_suggestion_id("plan"), subject_id=subject_id, observations=observations, proposed_gaps=gaps)


# --- Re-ranking ----------------------------------------------------------------


def _index(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value.lstrip("-").isdigit():
            return None
        return int(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value if isinstance(value, int) else None


def _score(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return max(0.0, min(100.0, number))


class RawRerank(_RawModel):
    index: Annotated[int | None, BeforeValidator(_index)] = None
    adjusted_score: Annotated[float | None, BeforeValidator(_score)] = Field(
        default=None, validation_alias=AliasChoices("adjusted_score", "adjustedScore", "score")
    )
    reasoning: Text = ""


def parse_rerank_scores(data: Any, candidate_count: int) -> dict[int, tuple[float, str]]:
    """Map candidate index to (confidence 0-1, reasoning).

    Entries with an index outside the candidate list or without a score are
    dropped; the first entry for an index wins.
    """
    scores: dict[int, tuple[float, str]] = {}
    for entry in as_entries(data, "rankings", "reranked", "results"):
        raw = _decode(RawRerank, entry, "rerank")
        if raw is None or raw.index is None or raw.adjusted_score is None:
            continue
        if not 0 <= raw.index < candidate_count:
            logger.info("ungrounded_rerank_dropped", index=raw.index)
            continue
        if raw.index in scores:
            continue
        scores[raw.index] = (round(raw.adjusted_score / 100, 4), raw.reasoning)
    return scores
