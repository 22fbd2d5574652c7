"""Prompt templates for re-ranking candidate relationship suggestions."""

from __future__ import annotations

from suggestion_engine.models.domain import Item, Subject
from suggestion_engine.models.suggestions import RelationshipSuggestion

RERANK_SYSTEM = """You are an expert research librarian validating and re-ranking suggested relationships between items in a researcher's literature collection.

For each candidate:
1. Check that the suggested relationship type fits the two items
2. Judge how strong and valid the relationship is
3. Re-score it by how useful it is for the researcher's subject

Scoring guidelines:
- 90-100: essential, directly shapes understanding of the subject
- 70-89: strong, a valuable intellectual link
- 50-69: moderate, adds some value
- 30-49: weak, questionable value
- 0-29: wrong or unhelpful"""

RERANK_PROMPT = """RESEARCHER'S SUBJECT:
{subject}

CANDIDATE RELATIONSHIPS TO RE-RANK:
{candidates}

Re-rank these candidates. For each one, verify the relationship type, judge its value for the subject and give an adjusted score.

Return a JSON array with one entry per candidate you scored:
[
  {{"index": <candidate index exactly as shown>, "adjusted_score": 0-100, "reasoning": "Brief explanation of the adjustment"}}
]

Be discriminating: not every candidate is a good relationship."""


def _endpoint(label: str, item_id: str, fallback_title: str, items: dict[str, Item]) -> str:
    item = items.get(item_id)
    title = item.title if item is not None else fallback_title
    line = f'  {label}: [{item_id}] "{title}"'
    if item is not None and item.summary:
        line += f'\n    Summary: "{item.summary}"'
    return line


def format_candidate(index: int, suggestion: RelationshipSuggestion, items: dict[str, Item]) -> str:
    target = items.get(suggestion.target_item_id)
    return "\n".join(
        [
            f"CANDIDATE {index}:",
            _endpoint("From", suggestion.target_item_id, target.title if target else "", items),
            _endpoint("To", suggestion.suggested_item_id, suggestion.suggested_item_title, items),
            f"  Suggested type: {suggestion.relationship_type.value}",
            f"  Initial score: {round(suggestion.confidence * 100)}",
            f"  Initial reasoning: {suggestion.reasoning or 'None given'}",
        ]
    )


def build_rerank_prompt(
    subject: Subject, candidates: list[RelationshipSuggestion], items: dict[str, Item]
) -> str:
    subject_text = f'"{subject.title}"\n{subject.description}' if subject.description else f'"{subject.title}"'
    return RERANK_PROMPT.format(
        subject=subject_text,
        candidates="\n\n".join(format_candidate(i, c, items) for i, c in enumerate(candidates)),
    )
