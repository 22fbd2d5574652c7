"""Build and trim the bounded request context handed to prompt templates."""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace

from suggestion_engine.config.settings import Settings
from suggestion_engine.models.domain import (
    DIVERSITY_ROLES,
    Excerpt,
    ExcerptContext,
    Item,
    ItemContext,
    Relationship,
    RelationshipContext,
    RequestContext,
    Subject,
    SubjectContext,
)
from suggestion_engine.observability.logger import get_logger

logger = get_logger("context_assembler")

STRUCTURAL_OVERHEAD = 1.2
ELLIPSIS = "..."
UNKNOWN_TITLE = "Unknown Item"

TrimStep = Callable[[RequestContext, int], RequestContext]


def chars_per_token_estimate(text: str) -> int:
    return math.ceil(len(text) / 4)


def format_authors(authors: list[str]) -> str:
    if not authors:
        return ""
    if len(authors) == 1:
        return authors[0]
    if len(authors) == 2:
        return f"{authors[0]} and {authors[1]}"
    return f"{authors[0]} et al."


def apply_privacy(
    items: Iterable[Item],
    excerpts: list[Excerpt] | None,
    send_long_text: bool,
    send_excerpts: bool,
) -> tuple[list[Item], list[Excerpt] | None]:
    """Null long-form text and excerpts before assembly when the user has opted out."""
    items = list(items)
    if not send_long_text:
        items = [replace(i, abstract=None) if i.abstract else i for i in items]
    if not send_excerpts:
        excerpts = None
    return items, excerpts


def select_relevant(
    target_id: str | None,
    items: list[Item],
    relationships: list[Relationship],
    limit: int = 10,
) -> list[Item]:
    """Score candidates against the target and return a role-diversified top-N.

    Same role +2, an explicit relationship to the target +5, publication years within
    two of each other +1. One item per known role is guaranteed first, remaining slots
    go by score; the result is ordered by score with ties kept in input order.
    """
    target = next((i for i in items if i.id == target_id), None) if target_id else None
    if target is None:
        return [i for i in items if i.id != target_id][:limit]

    connected = set()
    for r in relationships:
        if r.from_item_id == target.id:
            connected.add(r.to_item_id)
        elif r.to_item_id == target.id:
            connected.add(r.from_item_id)

    scored: list[tuple[int, int, Item]] = []
    for index, item in enumerate(items):
        if item.id == target.id:
            continue
        score = 0
        if item.role == target.role:
            score += 2
        if item.id in connected:
            score += 5
        if item.year is not None and target.year is not None and abs(item.year - target.year) <= 2:
            score += 1
        scored.append((score, index, item))
    scored.sort(key=lambda s: (-s[0], s[1]))

    chosen: list[tuple[int, int, Item]] = []
    chosen_ids: set[str] = set()
    for role in DIVERSITY_ROLES:
        if len(chosen) >= limit:
            break
        for entry in scored:
            if entry[2].role == role and entry[2].id not in chosen_ids:
                chosen.append(entry)
                chosen_ids.add(entry[2].id)
                break
    for entry in scored:
        if len(chosen) >= limit:
            break
        if entry[2].id not in chosen_ids:
            chosen.append(entry)
            chosen_ids.add(entry[2].id)

    chosen.sort(key=lambda s: (-s[0], s[1]))
    return [entry[2] for entry in chosen]


class ContextAssembler:
    def __init__(
        self,
        settings: Settings | None = None,
        token_estimator: Callable[[str], int] = chars_per_token_estimate,
    ) -> None:
        settings = settings or Settings()
        self._floor = settings.trim_related_floor
        self._claims_per_item = settings.trim_claims_per_item
        self._target_text_chars = settings.trim_target_text_chars
        self._estimate = token_estimator

    def build(
        self,
        subject: Subject,
        target_id: str | None,
        items: list[Item],
        relationships: list[Relationship],
        excerpts: list[Excerpt] | None = None,
        known_titles: Mapping[str, str] | None = None,
    ) -> RequestContext:
        """Assemble a context from already-selected items. Pure, performs no I/O.

        ``items`` holds the target (when ``target_id`` is given) and the related items in
        relevance order. Relationships touching any context item are kept, with titles
        resolved from ``items`` and then ``known_titles``.
        """
        target_item = None
        if target_id is not None:
            target_item = next((i for i in items if i.id == target_id), None)
            if target_item is None:
                raise ValueError(f"Target item {target_id} is not among the context items")

        related = tuple(self._item_context(i) for i in items if i.id != target_id)
        target = self._item_context(target_item) if target_item is not None else None

        titles = dict(known_titles or {})
        titles.update({i.id: i.title for i in items})
        context_ids = {i.id for i in items}
        rels = tuple(
            RelationshipContext(
                from_item_id=r.from_item_id,
                from_title=titles.get(r.from_item_id, UNKNOWN_TITLE),
                to_item_id=r.to_item_id,
                to_title=titles.get(r.to_item_id, UNKNOWN_TITLE),
                type=r.type,
                note=r.note,
            )
            for r in relationships
            if r.from_item_id in context_ids or r.to_item_id in context_ids
        )

        excerpt_ctx = None
        if excerpts is not None:
            excerpt_ctx = tuple(ExcerptContext(text=e.text, comment=e.comment) for e in excerpts if e.text)

        return RequestContext(
            subject=SubjectContext(title=subject.title, description=subject.description),
            target=target,
            related=related,
            relationships=rels,
            excerpts=excerpt_ctx,
        )

    @staticmethod
    def _item_context(item: Item) -> ItemContext:
        return ItemContext(
            id=item.id,
            title=item.title,
            authors=format_authors(item.authors),
            year=item.year,
            abstract=item.abstract,
            summary=item.summary,
            role=item.role,
            claims=tuple(item.claims),
            evidence=tuple(item.evidence),
        )

    # --- Estimation --------------------------------------------------------

    def estimate_tokens(self, context: RequestContext) -> int:
        est = self._estimate
        total = est(context.subject.title) + est(context.subject.description)
        items = list(context.related)
        if context.target is not None:
            items.append(context.target)
        for item in items:
            total += self._estimate_item(item)
        for r in context.relationships:
            total += est(r.from_title) + est(r.to_title) + est(r.type.value) + est(r.note or "")
        for e in context.excerpts or ():
            total += est(e.text) + est(e.comment or "")
        return math.ceil(total * STRUCTURAL_OVERHEAD)

    def _estimate_item(self, item: ItemContext) -> int:
        est = self._estimate
        total = (
            est(item.id)
            + est(item.title)
            + est(item.authors)
            + est(item.summary)
            + est(item.role.value)
            + est(item.abstract or "")
        )
        total += sum(est(c.claim) + est(c.strength or "") for c in item.claims)
        total += sum(est(e.description) + est(e.type) for e in item.evidence)
        return total

    # --- Trimming ----------------------------------------------------------

    @property
    def trim_steps(self) -> tuple[TrimStep, ...]:
        """Trim stages in the order they are applied."""
        return (
            self._drop_related_long_text,
            self._cap_related_items,
            self._drop_related_evidence,
            self._cap_related_claims,
            self._truncate_target_text,
        )

    def trim(self, context: RequestContext, budget: int) -> RequestContext:
        """Return a context within ``budget`` using as few stages as possible.

        Breadth goes before depth: related items lose long text, count, evidence and
        claims before the target's own long text is truncated. The input is never
        modified, and a context already within budget is returned as is.
        """
        before = self.estimate_tokens(context)
        if before <= budget:
            return context

        current = context
        applied = 0
        for step in self.trim_steps:
            current = step(current, budget)
            applied += 1
            if self.estimate_tokens(current) <= budget:
                break

        after = self.estimate_tokens(current)
        logger.debug("context_trimmed", budget=budget, before=before, after=after, stages=applied)
        if after > budget:
            logger.warning("context_over_budget", budget=budget, tokens=after)
        return current

    def _drop_related_long_text(self, context: RequestContext, budget: int) -> RequestContext:
        return replace(
            context,
            related=tuple(replace(i, abstract=None) if i.abstract else i for i in context.related),
        )

    def _cap_related_items(self, context: RequestContext, budget: int) -> RequestContext:
        keep = max(self._floor, len(context.related) // 2)
        if keep >= len(context.related):
            return context
        return replace(context, related=context.related[:keep])

    def _drop_related_evidence(self, context: RequestContext, budget: int) -> RequestContext:
        return replace(
            context,
            related=tuple(replace(i, evidence=()) if i.evidence else i for i in context.related),
        )

    def _cap_related_claims(self, context: RequestContext, budget: int) -> RequestContext:
        n = self._claims_per_item
        return replace(
            context,
            related=tuple(
                replace(i, claims=i.claims[:n]) if len(i.claims) > n else i for i in context.related
            ),
        )

    def _truncate_target_text(self, context: RequestContext, budget: int) -> RequestContext:
        target = context.target
        if target is None or not target.abstract:
            return context
        text = target.abstract
        excess_tokens = self.estimate_tokens(context) - budget
        excess_chars = math.ceil(excess_tokens / STRUCTURAL_OVERHEAD) * 4
        keep = max(0, min(self._target_text_chars, len(text) - excess_chars - len(ELLIPSIS)))
        if keep + len(ELLIPSIS) >= len(text):
            return context
        truncated = text[:keep].rstrip() + ELLIPSIS
        return replace(context, target=replace(target, abstract=truncated))
