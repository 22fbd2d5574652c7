"""Prompt templates for the two-step plan/verify gap analysis."""

from __future__ import annotations

from suggestion_engine.models.domain import Item, ProposedGap, WorkingSet

PLAN_SYSTEM = """You are an expert research methodology consultant. Your task is to ANALYZE a literature collection and create a detailed PLAN for gap identification.

CRITICAL RULES:
1. ONLY cite items that are present in the provided index
2. EVERY observation must reference specific item IDs
3. Do NOT invent or assume items exist
4. Be conservative: only flag gaps you can directly support with evidence

Your plan will be verified in a second step, so be precise and cite your sources."""

VERIFY_SYSTEM = """You are a skeptical reviewer verifying a proposed gap analysis. Your role is to:
1. Check that each proposed gap is actually supported by the cited items
2. Remove gaps based on speculation or invented citations
3. Refine gap descriptions to be more precise
4. Only output gaps that remain grounded after re-reading the items

Be ruthlessly honest. Returning an empty list is an acceptable answer."""

PLAN_PROMPT = """SUBJECT TO ANALYZE:
{subject}

COMPLETE ITEM INDEX ({count} items):
{index}

RELATIONSHIPS BETWEEN ITEMS:
{relationships}

---

Create an ANALYSIS PLAN:

1. OBSERVATIONS: 3-5 key observations about this collection
   - Each observation MUST cite specific item IDs
   - Categories: coverage, methodology, temporal, contradiction, subject-alignment

2. PROPOSED GAPS: potential gaps that follow from the observations
   - Each gap MUST cite the item IDs that reveal it
   - Quote specific text from those items as evidence

Return JSON:
{{
  "observations": [
    {{
      "category": "coverage" | "methodology" | "temporal" | "contradiction" | "subject-alignment",
      "finding": "Specific observation",
      "supporting_item_ids": ["id-1", "id-2"],
      "confidence": 0.0-1.0
    }}
  ],
  "proposed_gaps": [
    {{
      "type": "knowledge" | "methodological" | "population" | "theoretical" | "temporal" | "geographic" | "contradictory",
      "hypothesis": "What we think is missing",
      "evidence": ["Quote or data point from item X"],
      "cited_item_ids": ["id-1", "id-2"],
      "needs_verification": true
    }}
  ]
}}

Remember: ONLY cite IDs from the index above."""

VERIFY_PROMPT = """SUBJECT: {subject}

PROPOSED GAPS TO VERIFY:
{gaps}

For each proposed gap, check:
1. Is the hypothesis actually supported by the cited items as written above?
2. Does the quoted evidence accurately reflect those items?
3. Is this a real gap or speculation?

Return only VERIFIED gaps as a JSON array:
[
  {{
    "gap_type": "knowledge" | "methodological" | "population" | "theoretical" | "temporal" | "geographic" | "contradictory",
    "title": "Short descriptive title (5-10 words)",
    "description": "2-3 sentences grounded in the cited items",
    "priority": "high" | "medium" | "low",
    "confidence": 0.0-1.0,
    "related_item_ids": ["verified item IDs only"],
    "future_research_question": "Specific question that addresses the gap"
  }}
]

REJECT gaps that rest on speculation, cite evidence that does not support the hypothesis, or fall outside the subject.
Return [] if no gap passes verification."""


def _subject_text(working_set: WorkingSet) -> str:
    subject = working_set.subject
    if subject.description:
        return f'"{subject.title}"\n{subject.description}'
    return f'"{subject.title}"'


def format_index_entry(item: Item) -> str:
    lines = [f'[{item.id}] "{item.title}" ({item.year or "n.d."})', f"  Role: {item.role.value}"]
    if item.summary:
        lines.append(f'  Summary: "{item.summary}"')
    if item.claims:
        lines.append("  Claims: " + "; ".join(c.claim for c in item.claims))
    if item.evidence:
        lines.append("  Evidence types: " + ", ".join(e.type for e in item.evidence))
    return "\n".join(lines)


def build_plan_prompt(working_set: WorkingSet) -> str:
    relationships = "\n".join(
        f"- {r.type.value}: [{r.from_item_id}] -> [{r.to_item_id}]" for r in working_set.relationships
    )
    return PLAN_PROMPT.format(
        subject=_subject_text(working_set),
        count=len(working_set.items),
        index="\n".join(format_index_entry(i) for i in working_set.items),
        relationships=relationships or "No relationships recorded",
    )


def _cited_item_text(item: Item, abstract_chars: int) -> str:
    text = f'[{item.id}] "{item.title}": {item.summary or "(no summary)"}'
    if item.claims:
        text += "\n        Claims: " + "; ".join(c.claim for c in item.claims)
    if item.abstract:
        abstract = item.abstract
        if len(abstract) > abstract_chars:
            abstract = abstract[:abstract_chars] + "..."
        text += f"\n        Abstract: {abstract}"
    return text


def build_verify_prompt(
    working_set: WorkingSet, gaps: list[ProposedGap], abstract_chars: int = 600
) -> str:
    blocks = []
    for n, gap in enumerate(gaps, start=1):
        cited = [working_set.get_item(i) for i in gap.cited_item_ids]
        cited_text = "\n      ".join(_cited_item_text(i, abstract_chars) for i in cited if i is not None)
        evidence = "\n    ".join(gap.evidence) or "(none quoted)"
        blocks.append(
            f"Gap {n}:\n"
            f"  Type: {gap.type}\n"
            f"  Hypothesis: {gap.hypothesis}\n"
            f"  Evidence cited:\n    {evidence}\n"
            f"  Items cited:\n      {cited_text}"
        )
    return VERIFY_PROMPT.format(subject=_subject_text(working_set), gaps="\n\n".join(blocks))
