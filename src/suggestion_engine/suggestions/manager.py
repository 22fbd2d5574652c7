"""Suggestion manager: one entry point per suggestion family."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import replace
from typing import Any
from uuid import uuid4

from suggestion_engine.cancellation import CancellationToken
from suggestion_engine.config.model_tiers import tier_config
from suggestion_engine.config.settings import Settings
from suggestion_engine.context.adaptive import AdaptiveConfig, policy_for
from suggestion_engine.context.assembler import ContextAssembler, apply_privacy, select_relevant
from suggestion_engine.exceptions import AIError, ErrorCode
from suggestion_engine.models.domain import (
    CompletionRequest,
    Excerpt,
    FeedbackAction,
    FeedbackRecord,
    Item,
    ModelTier,
    Relationship,
    RelationshipType,
    RequestContext,
    SuggestionFamily,
    WorkingSet,
)
from suggestion_engine.models.suggestions import (
    ClaimSuggestion,
    GapSuggestion,
    IntakeAnalysis,
    RelationshipSuggestion,
    RerankedRelationship,
    ScreeningSuggestion,
    SuggestionBase,
    SummarySuggestion,
)
from suggestion_engine.observability.logger import get_logger
from suggestion_engine.observability.metrics import log_suggestion_metrics
from suggestion_engine.observability.tracing import TraceContext
from suggestion_engine.prompts.claims import CLAIM_SYSTEM, build_claim_prompt
from suggestion_engine.prompts.gaps import GAP_SYSTEM, build_gap_prompt
from suggestion_engine.prompts.intake import INTAKE_SYSTEM, build_intake_prompt
from suggestion_engine.prompts.relationship import RELATIONSHIP_SYSTEM, build_relationship_prompt
from suggestion_engine.prompts.rerank import RERANK_SYSTEM, build_rerank_prompt
from suggestion_engine.prompts.screening import SCREENING_SYSTEM, build_screening_prompt
from suggestion_engine.prompts.summary import SUMMARY_SYSTEM, build_summary_prompt
from suggestion_engine.protocols.llm import CompletionProvider
from suggestion_engine.protocols.stores import RelationshipStore
from suggestion_engine.providers.registry import ProviderRegistry
from suggestion_engine.suggestions.feedback import FeedbackRecorder
from suggestion_engine.suggestions.learner import FeedbackLearner
from suggestion_engine.suggestions.parsing import (
    parse_claim_suggestions,
    parse_gap_suggestions,
    parse_intake_analysis,
    parse_relationship_suggestions,
    parse_rerank_scores,
    parse_screening_suggestions,
    parse_summary_suggestion,
)

logger = get_logger("suggestion_manager")

MAX_PENDING_SUGGESTIONS = 500
RERANK_TEMPERATURE = 0.3

Pending = SuggestionBase | IntakeAnalysis


class SuggestionManager:
    """Composes context assembly, prompts, the provider and parsing for each family.

    Errors from the provider propagate unchanged; the manager never retries on its own.
    Returned suggestions are kept as pending until accepted or dismissed.
    """

    def __init__(
        self,
        providers: ProviderRegistry,
        settings: Settings,
        feedback: FeedbackRecorder,
        relationship_store: RelationshipStore,
        learner: FeedbackLearner | None = None,
    ) -> None:
        self._providers = providers
        self._settings = settings
        self._feedback = feedback
        self._relationships = relationship_store
        self._learner = learner or FeedbackLearner(feedback)
        self._pending: OrderedDict[str, Pending] = OrderedDict()

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def feedback(self) -> FeedbackRecorder:
        return self._feedback

    @property
    def learner(self) -> FeedbackLearner:
        return self._learner

    def update_settings(self, settings: Settings) -> None:
        self._settings = settings

    def is_available(self) -> bool:
        return self._providers.get().is_configured()

    # --- Families ------------------------------------------------------------

    async def suggest_relationships(
        self,
        working_set: WorkingSet,
        target_id: str,
        excerpts: list[Excerpt] | None = None,
        max_suggestions: int | None = None,
        cancel: CancellationToken | None = None,
    ) -> list[RelationshipSuggestion]:
        self._require_enabled(self._settings.enable_relationship_suggestions, "Relationship suggestions")
        target = self._require_item(working_set, target_id)
        policy = policy_for(len(working_set.items))
        if not policy.show_relationship_suggestions:
            raise AIError(ErrorCode.FEATURE_DISABLED, policy.guidance)
        provider = self._require_provider()
        limit = self._limit(max_suggestions)
        if limit == 0:
            return []

        trace = TraceContext("relationship")
        context, tokens = self._assemble(
            provider, working_set, target, policy, excerpts, self._settings.relationship_budget, trace
        )
        subject_id = working_set.subject.id
        learned = self._learner.build_prompt_context(subject_id, SuggestionFamily.RELATIONSHIP)
        prompt = build_relationship_prompt(context, limit)
        data = await self._complete_json(
            provider, prompt, self._system(RELATIONSHIP_SYSTEM, policy, learned), ModelTier.STANDARD, cancel, trace
        )
        parsed = [self._learned_confidence(subject_id, s) for s in parse_relationship_suggestions(data, context)]
        return self._finalize(SuggestionFamily.RELATIONSHIP, data, parsed, limit, trace, tokens)

    async def suggest_summary(
        self,
        working_set: WorkingSet,
        target_id: str,
        excerpts: list[Excerpt] | None = None,
        current_summary: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> SummarySuggestion | None:
        """Suggest a summary, or refine ``current_summary`` when given.

        Returns None when the model's suggestion falls below the confidence threshold.
        """
        self._require_enabled(self._settings.enable_summary_suggestions, "Summary suggestions")
        target = self._require_item(working_set, target_id)
        policy = policy_for(len(working_set.items))
        provider = self._require_provider()

        trace = TraceContext("summary")
        context, tokens = self._assemble(
            provider, working_set, target, policy, excerpts, self._settings.summary_budget, trace
        )
        learned = self._learner.build_prompt_context(working_set.subject.id, SuggestionFamily.SUMMARY)
        prompt = build_summary_prompt(context, current_summary=current_summary)
        data = await self._complete_json(
            provider, prompt, self._system(SUMMARY_SYSTEM, policy, learned), ModelTier.FAST, cancel, trace
        )
        parsed = parse_summary_suggestion(data, context, refined_from=current_summary)
        kept = self._finalize(
            SuggestionFamily.SUMMARY, data, [parsed] if parsed else [], 1, trace, tokens
        )
        return kept[0] if kept else None

    async def extract_claims(
        self,
        working_set: WorkingSet,
        target_id: str,
        excerpts: list[Excerpt] | None = None,
        max_suggestions: int | None = None,
        cancel: CancellationToken | None = None,
    ) -> list[ClaimSuggestion]:
        self._require_enabled(self._settings.enable_claim_extraction, "Claim extraction")
        target = self._require_item(working_set, target_id)
        policy = policy_for(len(working_set.items))
        if not policy.show_claim_extraction:
            raise AIError(ErrorCode.FEATURE_DISABLED, policy.guidance)
        provider = self._require_provider()
        limit = self._limit(max_suggestions)
        if limit == 0:
            return []

        trace = TraceContext("claim")
        context, tokens = self._assemble(
            provider, working_set, target, policy, excerpts, self._settings.claim_budget, trace
        )
        prompt = build_claim_prompt(context, limit)
        data = await self._complete_json(
            provider, prompt, self._system(CLAIM_SYSTEM, policy), ModelTier.STANDARD, cancel, trace
        )
        parsed = parse_claim_suggestions(data, context)
        return self._finalize(SuggestionFamily.CLAIM, data, parsed, limit, trace, tokens)

    async def analyze_gaps(
        self,
        working_set: WorkingSet,
        max_suggestions: int | None = None,
        cancel: CancellationToken | None = None,
    ) -> list[GapSuggestion]:
        self._require_enabled(self._settings.enable_gap_analysis, "Gap analysis")
        policy = policy_for(len(working_set.items))
        if not policy.show_gap_analysis:
            raise AIError(ErrorCode.FEATURE_DISABLED, policy.guidance)
        provider = self._require_provider()
        limit = self._limit(max_suggestions)
        if limit == 0:
            return []

        trace = TraceContext("gap")
        context, tokens = self._assemble(
            provider, working_set, None, policy, None, self._settings.gap_budget, trace
        )
        prompt = build_gap_prompt(context, limit)
        data = await self._complete_json(
            provider, prompt, self._system(GAP_SYSTEM, policy), ModelTier.ADVANCED, cancel, trace
        )
        parsed = parse_gap_suggestions(data, working_set.subject.id, context.item_ids)
        return self._finalize(SuggestionFamily.GAP, data, parsed, limit, trace, tokens)

    async def screen_items(
        self,
        working_set: WorkingSet,
        candidates: list[Item],
        cancel: CancellationToken | None = None,
    ) -> list[ScreeningSuggestion]:
        """Include/exclude/maybe triage; every candidate gets exactly one decision."""
        self._require_enabled(self._settings.enable_screening, "Screening")
        if not candidates:
            raise AIError(ErrorCode.INVALID_INPUT, "No candidate items to screen")
        existing = working_set.item_ids
        duplicate = next((c.id for c in candidates if c.id in existing), None)
        if duplicate is not None:
            raise AIError(ErrorCode.INVALID_INPUT, f"Item {duplicate} is already in the working set")
        policy = policy_for(len(working_set.items))
        provider = self._require_provider()

        trace = TraceContext("screening")
        context, tokens = self._assemble(
            provider, working_set, None, policy, None, self._settings.screening_budget, trace
        )
        candidates, _ = apply_privacy(candidates, None, self._settings.send_long_text, False)
        prompt = build_screening_prompt(context, candidates)
        data = await self._complete_json(
            provider, prompt, self._system(SCREENING_SYSTEM, policy), ModelTier.FAST, cancel, trace
        )
        with trace.span("parse"):
            results = parse_screening_suggestions(data, [c.id for c in candidates])
        log_suggestion_metrics(
            trace, SuggestionFamily.SCREENING.value, len(results), len(results), len(results), tokens
        )
        return results

    async def analyze_intake(
        self,
        working_set: WorkingSet,
        new_item: Item,
        cancel: CancellationToken | None = None,
    ) -> IntakeAnalysis:
        """First-pass analysis of an item about to join the working set.

        Role and summary guidance learned from this subject's feedback is added to the
        prompt, and the analysis stays pending so that accepting, editing or dismissing
        it feeds back into later analyses.
        """
        self._require_enabled(self._settings.enable_intake, "Intake analysis")
        if not new_item.id or not new_item.title.strip():
            raise AIError(ErrorCode.INVALID_INPUT, "New item needs an id and a title")
        policy = policy_for(len(working_set.items))
        provider = self._require_provider()

        others = [i for i in working_set.items if i.id != new_item.id]
        extended = replace(working_set, items=[new_item, *others])
        trace = TraceContext("intake")
        context, tokens = self._assemble(
            provider, extended, new_item, policy, None, self._settings.intake_budget, trace
        )
        subject_id = working_set.subject.id
        learned = self._learner.build_prompt_context(subject_id, SuggestionFamily.INTAKE)
        prompt = build_intake_prompt(context)
        data = await self._complete_json(
            provider, prompt, self._system(INTAKE_SYSTEM, policy, learned), ModelTier.STANDARD, cancel, trace
        )
        with trace.span("parse"):
            analysis = parse_intake_analysis(data, context)
        analysis = analysis.model_copy(
            update={
                "role_confidence": self._learner.adjust_role_confidence(
                    subject_id, analysis.role, analysis.role_confidence
                ),
                "alternative_role": self._learner.reconsider_role(subject_id, analysis.role),
            }
        )
        self._remember(analysis)
        log_suggestion_metrics(
            trace,
            SuggestionFamily.INTAKE.value,
            1,
            1,
            len(analysis.potential_relationships),
            tokens,
        )
        return analysis

    async def rerank_relationships(
        self,
        working_set: WorkingSet,
        candidates: list[RelationshipSuggestion],
        max_results: int | None = None,
        cancel: CancellationToken | None = None,
    ) -> list[RerankedRelationship]:
        """Ask the model to re-score candidate relationships against the subject.

        Candidates the model does not score keep their initial confidence. The result
        is ordered by adjusted confidence, ties keeping their original order.
        """
        self._require_enabled(self._settings.enable_relationship_suggestions, "Relationship suggestions")
        if not candidates:
            return []
        known = working_set.item_ids
        for c in candidates:
            if c.target_item_id not in known or c.suggested_item_id not in known:
                raise AIError(ErrorCode.INVALID_INPUT, f"Candidate {c.id} references an item outside the working set")
        provider = self._require_provider()
        limit = len(candidates) if max_results is None else max(0, max_results)

        trace = TraceContext("rerank")
        prompt = build_rerank_prompt(working_set.subject, candidates, {i.id: i for i in working_set.items})
        data = await self._complete_json(
            provider, prompt, RERANK_SYSTEM, ModelTier.FAST, cancel, trace, temperature=RERANK_TEMPERATURE
        )
        with trace.span("parse"):
            scores = parse_rerank_scores(data, len(candidates))

        adjusted = [scores.get(i, (c.confidence, "No re-ranking feedback")) for i, c in enumerate(candidates)]
        order = sorted(range(len(candidates)), key=lambda i: adjusted[i][0], reverse=True)
        reranked = [
            RerankedRelationship(
                suggestion=candidates[old],
                original_confidence=candidates[old].confidence,
                adjusted_confidence=adjusted[old][0],
                rank_change=old - new,
                reasoning=adjusted[old][1],
            )
            for new, old in enumerate(order)
        ][:limit]
        log_suggestion_metrics(trace, "relationship_rerank", len(candidates), len(scores), len(reranked), 0)
        return reranked

    # --- Pending suggestions and feedback -------------------------------------

    def get_pending(self, suggestion_id: str) -> Pending | None:
        return self._pending.get(suggestion_id)

    def pending(self) -> list[Pending]:
        return list(self._pending.values())

    async def accept_relationship(
        self,
        suggestion_id: str,
        relationship_type: RelationshipType | None = None,
        note: str | None = None,
        subject_id: str | None = None,
    ) -> Relationship:
        """Promote a relationship suggestion into a permanent relationship.

        The suggestion stays pending until the store accepts the relationship. Once it
        is stored, a failure to record feedback is logged and does not fail the call.
        """
        suggestion = self._require_pending(suggestion_id)
        if not isinstance(suggestion, RelationshipSuggestion):
            raise AIError(ErrorCode.INVALID_INPUT, f"Suggestion {suggestion_id} is not a relationship suggestion")

        final_type = relationship_type or suggestion.relationship_type
        relationship = Relationship(
            id=str(uuid4()),
            from_item_id=suggestion.target_item_id,
            to_item_id=suggestion.suggested_item_id,
            type=final_type,
            note=note if note is not None else suggestion.reasoning,
            ai_suggested=True,
            ai_confidence=suggestion.confidence,
        )
        stored = await self._relationships.add_relationship(relationship)
        self._pending.pop(suggestion_id, None)

        edited = None
        action = FeedbackAction.ACCEPTED
        if final_type != suggestion.relationship_type:
            action = FeedbackAction.EDITED
            edited = suggestion.model_copy(update={"relationship_type": final_type})
        try:
            await self._feedback.record(suggestion, action, edited=edited, subject_id=subject_id)
        except Exception as e:
            logger.warning("feedback_record_failed", suggestion_id=suggestion_id, error=str(e))
        logger.info(
            "relationship_accepted",
            suggestion_id=suggestion_id,
            relationship_id=stored.id,
            type=final_type.value,
        )
        return stored

    async def accept(
        self,
        suggestion_id: str,
        edited: dict | None = None,
        subject_id: str | None = None,
    ) -> FeedbackRecord:
        """Record acceptance of a non-relationship suggestion; the host persists it."""
        suggestion = self._require_pending(suggestion_id)
        action = FeedbackAction.EDITED if edited else FeedbackAction.ACCEPTED
        record = await self._feedback.record(suggestion, action, edited=edited, subject_id=subject_id)
        self._pending.pop(suggestion_id, None)
        return record

    async def dismiss(self, suggestion_id: str, subject_id: str | None = None) -> FeedbackRecord:
        suggestion = self._require_pending(suggestion_id)
        record = await self._feedback.record(suggestion, FeedbackAction.DISMISSED, subject_id=subject_id)
        self._pending.pop(suggestion_id, None)
        return record

    # --- Internals -------------------------------------------------------------

    @staticmethod
    def _require_enabled(enabled: bool, feature: str) -> None:
        if not enabled:
            raise AIError(ErrorCode.FEATURE_DISABLED, f"{feature} are disabled in settings")

    @staticmethod
    def _require_item(working_set: WorkingSet, item_id: str) -> Item:
        item = working_set.get_item(item_id)
        if item is None:
            raise AIError(ErrorCode.INVALID_INPUT, f"Item {item_id} is not in the working set")
        return item

    def _require_provider(self) -> CompletionProvider:
        provider = self._providers.get()
        if not provider.is_configured():
            raise AIError(ErrorCode.NOT_CONFIGURED, "No completion provider credential is configured")
        return provider

    @staticmethod
    def _system(base: str, policy: AdaptiveConfig, learned: str = "") -> str:
        system = f"{base}\n\nCollection context: {policy.prompt_enhancement}"
        if learned:
            system += f"\n\nLearned preferences:\n{learned}"
        return system

    def _limit(self, max_suggestions: int | None) -> int:
        return self._settings.max_suggestions if max_suggestions is None else max(0, max_suggestions)

    def _learned_confidence(self, subject_id: str, suggestion: RelationshipSuggestion) -> RelationshipSuggestion:
        confidence = self._learner.adjust_relationship_confidence(
            subject_id, suggestion.relationship_type, suggestion.confidence
        )
        return suggestion.model_copy(update={"confidence": confidence})

    def _assemble(
        self,
        provider: CompletionProvider,
        working_set: WorkingSet,
        target: Item | None,
        policy: AdaptiveConfig,
        excerpts: list[Excerpt] | None,
        budget: int,
        trace: TraceContext,
    ) -> tuple[RequestContext, int]:
        assembler = ContextAssembler(self._settings, token_estimator=provider.estimate_tokens)
        with trace.span("assemble", budget=budget):
            items, excerpts = apply_privacy(
                working_set.items,
                excerpts,
                self._settings.send_long_text,
                self._settings.send_excerpts,
            )
            if target is None:
                related = items
            else:
                related = select_relevant(target.id, items, working_set.relationships, policy.max_context_items)
            if not policy.include_long_text:
                related = [replace(i, abstract=None) if i.abstract else i for i in related]
            selected = list(related)
            if target is not None:
                selected.insert(0, next(i for i in items if i.id == target.id))

            context = assembler.build(
                working_set.subject,
                target.id if target is not None else None,
                selected,
                working_set.relationships,
                excerpts,
                known_titles={i.id: i.title for i in working_set.items},
            )
            context = assembler.trim(context, budget)
            tokens = assembler.estimate_tokens(context)
        return context, tokens

    async def _complete_json(
        self,
        provider: CompletionProvider,
        prompt: str,
        system: str,
        tier: ModelTier,
        cancel: CancellationToken | None,
        trace: TraceContext,
        temperature: float | None = None,
    ) -> Any:
        cfg = tier_config(self._settings, tier)
        request = CompletionRequest(
            prompt=prompt,
            system=system,
            max_tokens=cfg.max_tokens,
            temperature=cfg.temperature if temperature is None else temperature,
            model=cfg.model,
            cancel=cancel,
        )
        with trace.span("completion", tier=tier.value):
            completion = await provider.complete_json(request)
        return completion.data

    def _finalize(
        self,
        family: SuggestionFamily,
        raw: Any,
        parsed: list,
        limit: int,
        trace: TraceContext,
        context_tokens: int,
    ) -> list:
        threshold = self._settings.confidence_threshold
        kept = [s for s in parsed if s.confidence >= threshold]
        kept.sort(key=lambda s: s.confidence, reverse=True)
        kept = kept[:limit]
        for suggestion in kept:
            self._remember(suggestion)
        raw_count = len(raw) if isinstance(raw, list) else 1
        log_suggestion_metrics(trace, family.value, raw_count, len(parsed), len(kept), context_tokens)
        return kept

    def _remember(self, suggestion: Pending) -> None:
        self._pending[suggestion.id] = suggestion
        self._pending.move_to_end(suggestion.id)
        while len(self._pending) > MAX_PENDING_SUGGESTIONS:
            self._pending.popitem(last=False)

    def _require_pending(self, suggestion_id: str) -> Pending:
        suggestion = self._pending.get(suggestion_id)
        if suggestion is None:
            raise AIError(ErrorCode.INVALID_INPUT, f"Unknown or expired suggestion {suggestion_id}")
        return suggestion
