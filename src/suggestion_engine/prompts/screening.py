"""Prompt templates for screening (include/exclude triage) of candidate items."""

from __future__ import annotations

from collections import defaultdict

from suggestion_engine.models.domain import Item, RequestContext
from suggestion_engine.prompts.formatting import format_subject

SCREENING_SYSTEM = """You are an expert research librarian helping academics decide which items to include in their literature review.

Decide for each candidate whether to:
- INCLUDE: directly relevant to the subject, strengthens the review
- EXCLUDE: not relevant enough, out of scope, or duplicates existing coverage
- MAYBE: potentially relevant but needs a full-text read to decide

Key principles:
1. Ground decisions in the researcher's subject
2. Consider what is already in the collection and avoid redundancy
3. Be conservative with exclusions: when unsure, choose MAYBE
4. For INCLUDE decisions also suggest a role and a draft summary"""

SCREENING_PROMPT = """RESEARCHER'S SUBJECT:
{subject}

EXISTING COLLECTION ({existing_count} items):
{existing}

---

ITEMS TO SCREEN:
{candidates}

---

For each item to screen, return one entry in a JSON array:
[
  {{
    "item_id": "the candidate's ID",
    "decision": "include" | "exclude" | "maybe",
    "confidence": 0.0-1.0,
    "reasoning": "1-2 sentences explaining the decision",
    "suggested_role": "supports" | "contradicts" | "method" | "background" | "other",
    "suggested_summary": "Draft summary (include only)",
    "exclusion_reason": "off-topic" | "duplicate" | "out-of-scope" | "quality" | "other"
  }}
]"""

CANDIDATE_ABSTRACT_CHARS = 800


def _existing_by_role(context: RequestContext) -> str:
    groups = defaultdict(list)
    for item in context.related:
        groups[item.role.value].append(item)
    blocks = []
    for role, items in groups.items():
        listed = "\n".join(f'    - "{i.title}": {i.summary}' for i in items[:3])
        more = f" (+{len(items) - 3} more)" if len(items) > 3 else ""
        blocks.append(f"  {role.upper()} ({len(items)} items{more}):\n{listed}")
    return "\n\n".join(blocks) or "No items in collection yet"


def _format_candidate(item: Item) -> str:
    lines = [f"ID: {item.id}", f"Title: {item.title}"]
    if item.authors:
        lines.append(f"Authors: {', '.join(item.authors)}")
    if item.year:
        lines.append(f"Year: {item.year}")
    abstract = item.abstract or "No abstract available"
    if len(abstract) > CANDIDATE_ABSTRACT_CHARS:
        abstract = abstract[:CANDIDATE_ABSTRACT_CHARS] + "..."
    lines.append(f"Abstract: {abstract}")
    return "\n".join(lines)


def build_screening_prompt(context: RequestContext, candidates: list[Item]) -> str:
    return SCREENING_PROMPT.format(
        subject=format_subject(context.subject),
        existing_count=len(context.related),
        existing=_existing_by_role(context),
        candidates="\n\n---\n\n".join(_format_candidate(c) for c in candidates),
    )
