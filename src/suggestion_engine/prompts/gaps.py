"""Prompt templates for single-pass gap analysis."""

from __future__ import annotations

from collections import Counter

from suggestion_engine.models.domain import RelationshipType, RequestContext
from suggestion_engine.prompts.formatting import format_subject

GAP_TYPES_HELP = """- knowledge: missing understanding in a key area
- methodological: lack of certain study types (e.g. no RCTs, no longitudinal studies)
- population: limited scope of subjects or contexts studied
- theoretical: missing conceptual frameworks or perspectives
- temporal: outdated literature or missing recent developments
- geographic: limited geographic or cultural coverage
- contradictory: unresolved disagreements that need resolution"""

GAP_SYSTEM = f"""You are an expert research methodology consultant helping academics identify gaps in their literature coverage.

Analyze the collection and identify what is MISSING that would strengthen the researcher's understanding of their subject.

Gap types:
{GAP_TYPES_HELP}

Key principles:
1. Ground every gap in the items actually present and cite their IDs
2. Weigh gap severity against the researcher's subject
3. Suggest a specific research question for each gap
4. Do not suggest gaps outside the subject's scope"""

GAP_PROMPT = """RESEARCHER'S SUBJECT:
{subject}

COLLECTION OVERVIEW:
Total items: {total}

By role:
{roles}

By period:
{periods}

Evidence types:
{evidence}{contradictions}

ITEMS:
{items}

Identify the most important gaps. Return a JSON array:
[
  {{
    "gap_type": "knowledge" | "methodological" | "population" | "theoretical" | "temporal" | "geographic" | "contradictory",
    "title": "Short descriptive title (5-10 words)",
    "description": "2-3 sentences grounded in the collection",
    "priority": "high" | "medium" | "low",
    "confidence": 0.0-1.0,
    "related_item_ids": ["IDs of items that reveal this gap"],
    "future_research_question": "A specific question that would address the gap"
  }}
]

At most {max_suggestions} gaps, ordered by priority."""


def _breakdown(counter: Counter) -> str:
    if not counter:
        return "  (none)"
    return "\n".join(f"  - {key}: {count}" for key, count in sorted(counter.items(), key=lambda kv: str(kv[0])))


def build_gap_prompt(context: RequestContext, max_suggestions: int) -> str:
    items = context.related
    roles = Counter(i.role.value for i in items)
    periods = Counter(f"{(i.year // 5) * 5}-{(i.year // 5) * 5 + 4}" if i.year else "unknown" for i in items)
    evidence = Counter(e.type for i in items for e in i.evidence)

    contradictions = [
        f"- {r.from_title} vs {r.to_title}: {r.note or 'no note'}"
        for r in context.relationships
        if r.type is RelationshipType.CONTRADICTS
    ]
    contradiction_block = (
        "\n\nKNOWN CONTRADICTIONS:\n" + "\n".join(contradictions) if contradictions else ""
    )

    item_lines = []
    for i in items:
        line = f'  - [{i.id}] ({i.role.value}) {i.title} ({i.year or "n.d."})\n    Summary: "{i.summary}"'
        if i.claims:
            line += "\n    Claims: " + "; ".join(c.claim for c in i.claims)
        item_lines.append(line)

    return GAP_PROMPT.format(
        subject=format_subject(context.subject),
        total=len(items),
        roles=_breakdown(roles),
        periods=_breakdown(periods),
        evidence=_breakdown(evidence),
        contradictions=contradiction_block,
        items="\n".join(item_lines) or "  (no items)",
        max_suggestions=max_suggestions,
    )
