"""Two-step gap analysis: cite-everything plan, then skeptical verification."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import replace

from suggestion_engine.cancellation import CancellationToken
from suggestion_engine.config.model_tiers import tier_config
from suggestion_engine.config.settings import Settings
from suggestion_engine.context.assembler import apply_privacy
from suggestion_engine.exceptions import AIError, ErrorCode
from suggestion_engine.models.domain import AnalysisPlan, CompletionRequest, ModelTier, WorkingSet
from suggestion_engine.models.suggestions import GapSuggestion
from suggestion_engine.observability.logger import get_logger
from suggestion_engine.observability.metrics import log_suggestion_metrics
from suggestion_engine.observability.tracing import TraceContext
from suggestion_engine.prompts.plan import PLAN_SYSTEM, VERIFY_SYSTEM, build_plan_prompt, build_verify_prompt
from suggestion_engine.protocols.llm import CompletionProvider
from suggestion_engine.providers.registry import ProviderRegistry
from suggestion_engine.suggestions.parsing import parse_analysis_plan, parse_gap_suggestions

logger = get_logger("plan_based_gaps")

PLAN_TEMPERATURE = 0.3
VERIFY_TEMPERATURE = 0.2

ProgressCallback = Callable[[str, float], Awaitable[None] | None]


class PlanBasedGapAnalyzer:
    """Gap analysis where every citation is checked mechanically at both steps.

    ``generate_plan`` drops observations and proposed gaps that cite no known item.
    ``verify`` only sees the surviving gaps and their cited items' text, and any
    verified gap must cite ids from that cited set.
    """

    def __init__(self, providers: ProviderRegistry, settings: Settings) -> None:
        self._providers = providers
        self._settings = settings

    def update_settings(self, settings: Settings) -> None:
        self._settings = settings

    async def generate_plan(
        self, working_set: WorkingSet, cancel: CancellationToken | None = None
    ) -> AnalysisPlan:
        provider = self._prepare(working_set)
        working_set = self._private(working_set)
        trace = TraceContext("gap_plan")
        cfg = tier_config(self._settings, ModelTier.ADVANCED)
        request = CompletionRequest(
            prompt=build_plan_prompt(working_set),
            system=PLAN_SYSTEM,
            max_tokens=cfg.max_tokens,
            temperature=PLAN_TEMPERATURE,
            model=cfg.model,
            cancel=cancel,
        )
        with trace.span("completion", step="plan"):
            completion = await provider.complete_json(request)
        with trace.span("parse"):
            plan = parse_analysis_plan(completion.data, working_set.subject.id, working_set.item_ids)
        logger.info(
            "analysis_plan_generated",
            plan_id=plan.id,
            observations=len(plan.observations),
            proposed_gaps=len(plan.proposed_gaps),
            latency_ms=round(trace.elapsed_ms, 2),
        )
        return plan

    async def verify(
        self,
        working_set: WorkingSet,
        plan: AnalysisPlan,
        cancel: CancellationToken | None = None,
    ) -> list[GapSuggestion]:
        provider = self._prepare(working_set)
        if not plan.proposed_gaps:
            logger.info("verification_skipped", plan_id=plan.id)
            return []
        working_set = self._private(working_set)
        trace = TraceContext("gap_verify")
        cited = {i for gap in plan.proposed_gaps for i in gap.cited_item_ids} & working_set.item_ids

        cfg = tier_config(self._settings, ModelTier.STANDARD)
        request = CompletionRequest(
            prompt=build_verify_prompt(working_set, plan.proposed_gaps),
            system=VERIFY_SYSTEM,
            max_tokens=cfg.max_tokens,
            temperature=VERIFY_TEMPERATURE,
            model=cfg.model,
            cancel=cancel,
        )
        with trace.span("completion", step="verify"):
            completion = await provider.complete_json(request)
        with trace.span("parse"):
            parsed = parse_gap_suggestions(completion.data, working_set.subject.id, cited, source="plan-verified")

        threshold = self._settings.confidence_threshold
        verified = [g for g in parsed if g.related_item_ids and g.confidence >= threshold]
        verified.sort(key=lambda g: g.confidence, reverse=True)
        verified = verified[: self._settings.max_suggestions]
        log_suggestion_metrics(trace, "gap", len(plan.proposed_gaps), len(parsed), len(verified), 0)
        return verified

    async def analyze(
        self,
        working_set: WorkingSet,
        on_progress: ProgressCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> list[GapSuggestion]:
        """Plan then verify, reporting coarse progress through ``on_progress``."""

        async def progress(stage: str, fraction: float) -> None:
            if on_progress is None:
                return
            result = on_progress(stage, fraction)
            if result is not None:
                await result

        await progress("planning", 0.0)
        plan = await self.generate_plan(working_set, cancel)
        await progress("verifying", 0.3)
        gaps = await self.verify(working_set, plan, cancel)
        await progress("finalizing", 0.7)
        logger.info("plan_based_analysis_complete", plan_id=plan.id, gaps=len(gaps))
        await progress("complete", 1.0)
        return gaps

    def _prepare(self, working_set: WorkingSet) -> CompletionProvider:
        if not self._settings.enable_plan_based_gaps:
            raise AIError(ErrorCode.FEATURE_DISABLED, "Plan-based gap analysis is disabled in settings")
        if not working_set.items:
            raise AIError(ErrorCode.INVALID_INPUT, "Gap analysis needs at least one item")
        provider = self._providers.get()
        if not provider.is_configured():
            raise AIError(ErrorCode.NOT_CONFIGURED, "No completion provider credential is configured")
        return provider

    def _private(self, working_set: WorkingSet) -> WorkingSet:
        items, _ = apply_privacy(working_set.items, None, self._settings.send_long_text, False)
        return replace(working_set, items=items)
