"""Render request-context pieces into prompt text."""

from __future__ import annotations

from suggestion_engine.models.domain import (
    ExcerptContext,
    ItemContext,
    RelationshipContext,
    SubjectContext,
)

NO_ITEMS = "No other items in the collection yet"


def format_subject(subject: SubjectContext) -> str:
    if subject.description:
        return f'"{subject.title}"\n{subject.description}'
    return f'"{subject.title}"'


def format_item(item: ItemContext, abstract_chars: int | None = 500) -> str:
    parts = [
        f"ID: {item.id}",
        f"Title: {item.title}",
        f"Authors: {item.authors or 'Unknown'}",
    ]
    if item.year:
        parts.append(f"Year: {item.year}")
    parts.append(f"Role: {item.role.value}")
    if item.summary:
        parts.append(f'\nRESEARCHER\'S SUMMARY: "{item.summary}"')

    if item.claims:
        lines = []
        for c in item.claims:
            strength = f" [{c.strength}]" if c.strength else ""
            assessment = f" (researcher: {c.assessment})" if c.assessment else ""
            lines.append(f"  - {c.claim}{strength}{assessment}")
        parts.append("\nCLAIMS:\n" + "\n".join(lines))

    if item.evidence:
        lines = [f"  - [{e.type}] {e.description}" for e in item.evidence]
        parts.append("\nEVIDENCE:\n" + "\n".join(lines))

    if item.abstract:
        abstract = item.abstract
        if abstract_chars is not None and len(abstract) > abstract_chars:
            abstract = abstract[:abstract_chars] + "..."
        parts.append(f"\nABSTRACT: {abstract}")

    return "\n".join(parts)


def format_items(items: list[ItemContext] | tuple[ItemContext, ...], abstract_chars: int | None = 500) -> str:
    if not items:
        return NO_ITEMS
    return "\n\n---\n\n".join(format_item(i, abstract_chars) for i in items)


def format_relationships(relationships: tuple[RelationshipContext, ...]) -> str:
    lines = []
    for r in relationships:
        note = f" ({r.note})" if r.note else ""
        lines.append(f"- {r.from_title} -> {r.to_title}: {r.type.value}{note}")
    return "\n".join(lines)


def format_excerpts(excerpts: tuple[ExcerptContext, ...] | None, limit: int | None = None) -> str:
    if not excerpts:
        return ""
    selected = excerpts[:limit] if limit is not None else excerpts
    lines = []
    for e in selected:
        comment = f" [Note: {e.comment}]" if e.comment else ""
        lines.append(f'  - "{e.text}"{comment}')
    return "\n".join(lines)


def section(title: str, body: str) -> str:
    """A titled block, or nothing when the body is empty."""
    if not body:
        return ""
    return f"\n\n{title}:\n{body}"
