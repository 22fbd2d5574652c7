"""Prompt templates for summary (takeaway) suggestions and refinements."""

from __future__ import annotations

from suggestion_engine.models.domain import RequestContext
from suggestion_engine.prompts.formatting import format_excerpts, format_subject, section

SUMMARY_SYSTEM = """You are an expert research assistant helping academics articulate the key insight of an item in the context of their own research.

Turn generic summaries into subject-relevant takeaways that capture what matters for THIS researcher.

Key principles:
1. Frame the insight relative to the researcher's subject
2. Be specific and actionable, not generic
3. Focus on the contribution, not just the topic
4. Keep to one clear sentence (10-500 characters)

Bad examples: "This paper is about protein folding." (too generic), "The authors present results." (no insight)"""

SUMMARY_PROMPT = """RESEARCHER'S SUBJECT:
{subject}

ITEM TO SUMMARIZE:
Title: {title}
Authors: {authors}
Year: {year}{abstract}

RELATED ITEM SUMMARIES (for context and style):
{related}{excerpts}

Write a takeaway that:
1. Is ONE clear sentence (10-500 characters)
2. Focuses on what matters for the subject "{subject_title}"
3. Captures the main finding or contribution
4. Uses language consistent with the related summaries above

Return JSON:
{{
  "suggestion": "The takeaway text",
  "confidence": 0.0-1.0,
  "reasoning": "Why this framing is relevant to the subject",
  "alternatives": ["Alternative framing 1", "Alternative framing 2"]
}}"""

REFINEMENT_PROMPT = """RESEARCHER'S SUBJECT:
{subject}

ITEM:
Title: {title}{abstract}

CURRENT SUMMARY (researcher's draft):
"{current}"

RELATED ITEM SUMMARIES (for style reference):
{related}

Suggest a refined version that keeps the researcher's core insight, connects it more clearly to "{subject_title}", is more specific, and stays within 10-500 characters.

Return JSON:
{{
  "suggestion": "The refined summary",
  "confidence": 0.0-1.0,
  "reasoning": "What was improved and why",
  "alternatives": ["Alternative refinement 1", "Alternative refinement 2"]
}}"""


def _related_summaries(context: RequestContext) -> str:
    target_id = context.target.id if context.target else None
    lines = [
        f'- "{i.summary}" ({i.role.value})'
        for i in context.related
        if i.id != target_id and i.summary
    ][:5]
    return "\n".join(lines) or "No other items yet"


def build_summary_prompt(context: RequestContext, current_summary: str | None = None) -> str:
    target = context.target
    if target is None:
        raise ValueError("Target item is required for summary suggestions")

    if current_summary:
        abstract = f"\nAbstract: {target.abstract[:500]}" if target.abstract else ""
        return REFINEMENT_PROMPT.format(
            subject=format_subject(context.subject),
            title=target.title,
            abstract=abstract,
            current=current_summary,
            related=_related_summaries(context),
            subject_title=context.subject.title,
        )

    return SUMMARY_PROMPT.format(
        subject=format_subject(context.subject),
        title=target.title,
        authors=target.authors or "Unknown",
        year=target.year or "Unknown",
        abstract=f"\n\nAbstract: {target.abstract}" if target.abstract else "",
        related=_related_summaries(context),
        excerpts=section("RESEARCHER'S HIGHLIGHTS", format_excerpts(context.excerpts, limit=10)),
        subject_title=context.subject.title,
    )
