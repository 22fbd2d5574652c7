"""Tests for decoding model output into grounded suggestions."""

from __future__ import annotations

import pytest

from suggestion_engine.context.assembler import ContextAssembler
from suggestion_engine.models.domain import ItemRole, RelationshipType
from suggestion_engine.models.suggestions import suggestion_adapter
from suggestion_engine.suggestions.parsing import (
    as_entries,
    parse_analysis_plan,
    parse_claim_suggestions,
    parse_gap_suggestions,
    parse_intake_analysis,
    parse_relationship_suggestions,
    parse_rerank_scores,
    parse_screening_suggestions,
    parse_summary_suggestion,
)


@pytest.fixture
def context(settings, working_set):
    return ContextAssembler(settings).build(
        working_set.subject, "p1", working_set.items, working_set.relationships
    )


def test_as_entries_shapes():
    assert as_entries([{"a": 1}, "junk", {"b": 2}]) == [{"a": 1}, {"b": 2}]
    assert as_entries({"suggestions": [{"a": 1}]}, "suggestions") == [{"a": 1}]
    assert as_entries({"results": [{"a": 1}]}, "suggestions") == [{"a": 1}]
    assert as_entries({"title": "one gap", "tags": ["x"]}, "gaps") == [{"title": "one gap", "tags": ["x"]}]
    assert as_entries("nope") == []


def test_relationships_drop_unknown_self_and_linked_ids(context):
    data = [
        {"item_id": "p3", "relationship_type": "contradicts", "confidence": 0.8, "reasoning": "Opposite result"},
        {"item_id": "p1", "relationship_type": "supports", "confidence": 0.9},
        {"item_id": "p2", "relationship_type": "supports", "confidence": 0.9},
        {"item_id": "p99", "relationship_type": "supports", "confidence": 0.9},
    ]
    suggestions = parse_relationship_suggestions(data, context)
    assert [s.suggested_item_id for s in suggestions] == ["p3"]
    assert suggestions[0].relationship_type is RelationshipType.CONTRADICTS
    assert suggestions[0].suggested_item_title == "Study 3 on sleep and memory"


def test_relationships_coerce_fields_and_dedupe(context):
    data = {
        "relationships": [
            {"paperId": "p4", "type": "cites", "confidence": "85%"},
            {"item_id": "p4", "relationship_type": "extends", "confidence": 0.4},
            {"item_id": "p5", "confidence": 7, "evidence": [{"item_id": "p5", "kind": "claim", "text": "c"},
                                                            {"item_id": "ghost", "text": "x"}]},
        ]
    }
    suggestions = {s.suggested_item_id: s for s in parse_relationship_suggestions(data, context)}
    assert suggestions["p4"].relationship_type is RelationshipType.SAME_TOPIC
    assert suggestions["p4"].confidence == pytest.approx(0.85)
    assert suggestions["p5"].confidence == 1.0
    assert [e.item_id for e in suggestions["p5"].evidence] == ["p5"]


def test_every_evidence_reference_resolves_to_context(context):
    data = [
        {"item_id": i, "confidence": 0.7, "evidence": [{"item_id": j, "text": "t"} for j in ("p1", "p3", "zz")]}
        for i in ("p3", "p4", "p6", "nope")
    ]
    for suggestion in parse_relationship_suggestions(data, context):
        assert suggestion.referenced_item_ids() <= context.item_ids


def test_summary_suggestion(context):
    data = {"summary": "Sleep improves recall.", "confidence": 0.9, "alternatives": ["Sleep improves recall.", "Alt"]}
    suggestion = parse_summary_suggestion(data, context, refined_from="Old draft")
    assert suggestion.text == "Sleep improves recall."
    assert suggestion.alternatives == ["Alt"]
    assert suggestion.source == "refinement"
    assert suggestion.based_on.long_text is True
    assert parse_summary_suggestion({"confidence": 0.9}, context) is None
    assert parse_summary_suggestion(["not", "an", "object"], context) is None


def test_claim_suggestions(context):
    data = [
        {"claim": "Sleep spindles predict recall", "strength": "STRONG", "evidence_type": "experimental",
         "evidence_snippets": ["r=0.6"], "source": "excerpts", "confidence": 0.8},
        {"claim": "", "confidence": 0.9},
        {"strength": "weak"},
    ]
    claims = parse_claim_suggestions(data, context)
    assert len(claims) == 1
    assert claims[0].strength == "strong"
    assert claims[0].evidence[0].kind == "excerpt"
    assert claims[0].item_id == "p1"


def test_gap_suggestions_strip_and_drop_ungrounded():
    data = {
        "gaps": [
            {"gap_type": "temporal", "title": "No recent work", "related_item_ids": ["p1", "ghost"], "confidence": 0.7},
            {"type": "invented", "title": "Made-up", "related_item_ids": ["ghost"], "confidence": 0.9},
            {"title": "Uncited observation", "confidence": 0.6},
        ]
    }
    gaps = parse_gap_suggestions(data, "s1", {"p1", "p2"})
    assert [g.title for g in gaps] == ["No recent work", "Uncited observation"]
    assert gaps[0].related_item_ids == ["p1"]
    assert gaps[0].gap_type == "temporal"
    assert gaps[1].gap_type == "knowledge"


def test_screening_gives_every_candidate_one_decision():
    data = [
        {"item_id": "c2", "decision": "exclude", "exclusion_reason": "off-topic", "confidence": 0.9},
        {"item_id": "c1", "decision": "include", "suggested_role": "method", "confidence": 0.8},
        {"item_id": "c1", "decision": "exclude", "confidence": 0.99},
        {"item_id": "stranger", "decision": "include"},
    ]
    results = parse_screening_suggestions(data, ["c1", "c2", "c3"])
    assert [(r.item_id, r.decision) for r in results] == [("c1", "include"), ("c2", "exclude"), ("c3", "maybe")]
    assert results[0].suggested_role is ItemRole.METHOD
    assert results[1].exclusion_reason == "off-topic"
    assert results[1].suggested_role is None
    assert results[2].confidence == 0.0


def test_intake_grounds_potential_relationships(context):
    data = {
        "thesisRole": "contradicts",
        "roleConfidence": 0.8,
        "takeaway": "Challenges the consolidation account.",
        "relevanceScore": 140,
        "arguments": [{"claim": "No effect of naps", "strength": "moderate"}],
        "potentialConnections": [
            {"existingPaperId": "p2", "connectionType": "contradicts", "confidence": 0.7},
            {"existingPaperId": "ghost", "connectionType": "supports", "confidence": 0.9},
        ],
    }
    analysis = parse_intake_analysis(data, context)
    assert analysis.item_id == "p1"
    assert analysis.role is ItemRole.CONTRADICTS
    assert analysis.relevance_score == 100
    assert [c.claim for c in analysis.claims] == ["No effect of naps"]
    assert [r.item_id for r in analysis.potential_relationships] == ["p2"]


def test_analysis_plan_checks_citations():
    data = {
        "observations": [
            {"category": "methodology", "finding": "Mostly lab studies", "supporting_item_ids": ["p1", "x"]},
            {"category": "coverage", "finding": "Invented", "supporting_item_ids": ["x", "y"]},
        ],
        "proposed_gaps": [
            {"type": "population", "hypothesis": "No older adults", "cited_item_ids": ["p2"], "evidence": ["ages 18-25"]},
            {"type": "theoretical", "hypothesis": "Fabricated", "cited_item_ids": ["nope"]},
            {"type": "temporal", "hypothesis": "Uncited", "cited_item_ids": []},
        ],
    }
    plan = parse_analysis_plan(data, "s1", {"p1", "p2"})
    assert [o.finding for o in plan.observations] == ["Mostly lab studies"]
    assert plan.observations[0].supporting_item_ids == ["p1"]
    assert [g.hypothesis for g in plan.proposed_gaps] == ["No older adults"]


def test_suggestion_union_round_trips(context):
    suggestion = parse_relationship_suggestions([{"item_id": "p3", "confidence": 0.7}], context)[0]
    decoded = suggestion_adapter.validate_python(suggestion.model_dump(mode="json"))
    assert decoded == suggestion


def test_rerank_scores_keep_grounded_indexes():
    data = {
        "rankings": [
            {"index": 1, "adjusted_score": 85, "reasoning": "Directly relevant"},
            {"index": "0", "score": 140},
            {"index": 1, "adjusted_score": 10},
            {"index": 3, "adjusted_score": 90},
            {"index": -1, "adjusted_score": 90},
            {"index": True, "adjusted_score": 90},
            {"index": 2, "adjusted_score": "NaN"},
            {"index": 2},
        ]
    }
    assert parse_rerank_scores(data, 3) == {1: (0.85, "Directly relevant"), 0: (1.0, "")}


def test_rerank_scores_accept_float_indexes_and_camel_case():
    data = [{"index": 0.0, "adjustedScore": 42.5}]
    assert parse_rerank_scores(data, 1) == {0: (0.425, "")}
    assert parse_rerank_scores("not json", 1) == {}
