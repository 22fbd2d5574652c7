"""Prompt templates for unified intake analysis of a newly added item."""

from __future__ import annotations

from suggestion_engine.models.domain import RequestContext
from suggestion_engine.prompts.formatting import format_subject

INTAKE_SYSTEM = """You are an expert research assistant performing a first-pass analysis of a new item entering a researcher's literature collection.

In one pass you classify the item's role for the researcher's subject, draft a summary, extract its key claims, rate its relevance, and point out likely relationships to items already in the collection.

Roles:
- supports: evidence or arguments in favor of the subject's position
- contradicts: evidence or arguments against it
- method: provides a method or tool the research relies on
- background: context, definitions or history
- other: none of the above

Only reference existing item IDs that appear in the collection list."""

INTAKE_PROMPT = """RESEARCHER'S SUBJECT:
{subject}

NEW ITEM:
Title: {title}
Authors: {authors}
Year: {year}{abstract}

EXISTING COLLECTION:
{existing}

Return JSON:
{{
  "role": "supports" | "contradicts" | "method" | "background" | "other",
  "role_confidence": 0.0-1.0,
  "role_reasoning": "Why this role",
  "summary": "One-sentence takeaway for this subject",
  "summary_confidence": 0.0-1.0,
  "alternative_summaries": ["..."],
  "claims": [
    {{"claim": "...", "strength": "strong" | "moderate" | "weak", "evidence_type": "experimental" | "computational" | "theoretical" | "meta-analysis" | "other"}}
  ],
  "relevance_score": 0-100,
  "relevance_reasoning": "How central the item is to the subject",
  "potential_relationships": [
    {{"item_id": "existing item ID", "relationship_type": "supports" | "contradicts" | "extends" | "uses-method" | "same-topic" | "reviews" | "replicates" | "critiques", "confidence": 0.0-1.0, "reasoning": "..."}}
  ]
}}"""


def build_intake_prompt(context: RequestContext) -> str:
    target = context.target
    if target is None:
        raise ValueError("Target item is required for intake analysis")
    existing = "\n".join(
        f'  - [{i.id}] ({i.role.value}) "{i.title}": {i.summary}'
        for i in context.related
        if i.id != target.id
    )
    return INTAKE_PROMPT.format(
        subject=format_subject(context.subject),
        title=target.title,
        authors=target.authors or "Unknown",
        year=target.year or "Unknown",
        abstract=f"\nAbstract: {target.abstract}" if target.abstract else "",
        existing=existing or "  (empty collection)",
    )
