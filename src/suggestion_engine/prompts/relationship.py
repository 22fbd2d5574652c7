"""Prompt templates for relationship suggestions."""

from __future__ import annotations

from suggestion_engine.models.domain import RequestContext
from suggestion_engine.prompts.formatting import (
    format_excerpts,
    format_item,
    format_items,
    format_relationships,
    format_subject,
    section,
)

RELATIONSHIP_SYSTEM = """You are an expert research assistant helping academics identify intellectual relationships between items in their literature collection.

Analyze the researcher's own synthesis (summaries, claims, evidence) to suggest meaningful relationships they may have missed.

Key principles:
1. Ground suggestions in the researcher's notes, not just metadata
2. Be specific about WHY a relationship exists
3. Prefer relationships supported by multiple signals (summary + claim + evidence)
4. Only reference item IDs that appear in the candidate list
5. Never invent information not present in the provided data

Relationship types:
- supports: B provides evidence or arguments that strengthen A's claims
- contradicts: the items reach opposite or incompatible conclusions
- extends: B builds on A's methodology, theory or findings
- uses-method: B uses a method introduced or refined by A
- same-topic: same topic without a direct intellectual relationship
- reviews: one item is a review covering the other
- replicates: B attempts to reproduce A's results
- critiques: B offers critical analysis of A"""

RELATIONSHIP_PROMPT = """RESEARCHER'S SUBJECT:
{subject}

TARGET ITEM TO FIND RELATIONSHIPS FOR:
{target}

CANDIDATE ITEMS IN COLLECTION:
{candidates}{existing}{excerpts}

Compare the TARGET item against each CANDIDATE item. For each relationship you identify, provide:
- item_id: the candidate item's ID (copy it exactly)
- relationship_type: one of [supports, contradicts, extends, uses-method, same-topic, reviews, replicates, critiques]
- confidence: 0.0-1.0
- reasoning: 1-2 sentences explaining WHY the relationship exists
- evidence: list of {{"item_id": "...", "kind": "summary" | "claim" | "evidence" | "abstract" | "excerpt", "text": "..."}} pointing at the researcher's notes that support it

Return a JSON array with at most {max_suggestions} suggestions, ordered by confidence.
If no relationship is convincing, return an empty array: []"""


def build_relationship_prompt(context: RequestContext, max_suggestions: int) -> str:
    if context.target is None:
        raise ValueError("Target item is required for relationship suggestions")
    target_id = context.target.id

    linked = set()
    for r in context.relationships:
        if r.from_item_id == target_id:
            linked.add(r.to_item_id)
        elif r.to_item_id == target_id:
            linked.add(r.from_item_id)
    candidates = [i for i in context.related if i.id != target_id and i.id not in linked]

    return RELATIONSHIP_PROMPT.format(
        subject=format_subject(context.subject),
        target=format_item(context.target, abstract_chars=None),
        candidates=format_items(candidates),
        existing=section(
            "EXISTING RELATIONSHIPS (do not suggest duplicates)",
            format_relationships(context.relationships),
        ),
        excerpts=section("RESEARCHER'S HIGHLIGHTS FROM THE TARGET", format_excerpts(context.excerpts, limit=10)),
        max_suggestions=max_suggestions,
    )
