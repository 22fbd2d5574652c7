"""Deterministic offline provider for development, demos and tests."""

from __future__ import annotations

import json
import re
from collections import deque

from suggestion_engine.cancellation import cancellable_sleep
from suggestion_engine.config.settings import Settings
from suggestion_engine.models.domain import CompletionRequest, CompletionResult, FinishReason
from suggestion_engine.prompts.claims import CLAIM_SYSTEM
from suggestion_engine.prompts.gaps import GAP_SYSTEM
from suggestion_engine.prompts.intake import INTAKE_SYSTEM
from suggestion_engine.prompts.plan import PLAN_SYSTEM, VERIFY_SYSTEM
from suggestion_engine.prompts.relationship import RELATIONSHIP_SYSTEM
from suggestion_engine.prompts.rerank import RERANK_SYSTEM
from suggestion_engine.prompts.screening import SCREENING_SYSTEM
from suggestion_engine.prompts.summary import SUMMARY_SYSTEM
from suggestion_engine.providers.base import BaseProvider
from suggestion_engine.providers.pacing import RequestPacer

_ID_LINE_RE = re.compile(r"^ID: (\S+)", re.MULTILINE)
_BRACKET_ID_RE = re.compile(r"\[([^\]\s]+)\] ")
_CANDIDATE_RE = re.compile(r"^CANDIDATE (\d+):", re.MULTILINE)


class MockProvider(BaseProvider):
    """Replays scripted responses, or answers from canned templates keyed on the system prompt.

    Scripted entries may be strings (returned as completion text) or exceptions (raised).
    Every request is kept in ``requests`` for inspection.
    """

    name = "mock"

    def __init__(
        self,
        settings: Settings | None = None,
        responses: list[str | Exception] | None = None,
        pacer: RequestPacer | None = None,
        sleep=cancellable_sleep,
    ) -> None:
        settings = settings or Settings(provider_type="mock")
        super().__init__(settings, pacer=pacer, sleep=sleep)
        self._responses: deque[str | Exception] = deque(responses or [])
        self.requests: list[CompletionRequest] = []

    def is_configured(self) -> bool:
        return True

    def queue_response(self, response: str | Exception) -> None:
        self._responses.append(response)

    async def _send(self, request: CompletionRequest) -> CompletionResult:
        self.requests.append(request)
        if self._responses:
            scripted = self._responses.popleft()
            if isinstance(scripted, Exception):
                raise scripted
            text = scripted
        else:
            text = canned_response(request)
        return CompletionResult(
            text=text,
            input_tokens=self.estimate_tokens((request.system or "") + request.prompt),
            output_tokens=self.estimate_tokens(text),
            finish_reason=FinishReason.COMPLETE,
            model=request.model or "mock",
            latency_ms=0.0,
        )


def canned_response(request: CompletionRequest) -> str:
    system = request.system or ""
    prompt = request.prompt

    if system.startswith(RELATIONSHIP_SYSTEM):
        _, _, candidates = prompt.partition("CANDIDATE ITEMS IN COLLECTION:")
        ids = _ID_LINE_RE.findall(candidates)[:2]
        return json.dumps(
            [
                {
                    "item_id": item_id,
                    "relationship_type": "same-topic",
                    "confidence": 0.75,
                    "reasoning": "Both items address the same question in the subject.",
                    "evidence": [{"item_id": item_id, "kind": "summary", "text": "Shared focus"}],
                }
                for item_id in ids
            ]
        )
    if system.startswith(SUMMARY_SYSTEM):
        return json.dumps(
            {
                "suggestion": "This item offers a concrete result that bears directly on the subject.",
                "confidence": 0.7,
                "reasoning": "Derived from the item's abstract and the subject description.",
                "alternatives": ["This item provides context for the subject's central question."],
            }
        )
    if system.startswith(CLAIM_SYSTEM):
        return json.dumps(
            [
                {
                    "claim": "The proposed approach improves on the baseline.",
                    "strength": "moderate",
                    "confidence": 0.7,
                    "evidence_snippets": [],
                    "evidence_type": "experimental",
                    "source": "long_text",
                    "reasoning": "Stated as the main result.",
                }
            ]
        )
    if system.startswith(GAP_SYSTEM) or system.startswith(VERIFY_SYSTEM):
        ids = list(dict.fromkeys(_BRACKET_ID_RE.findall(prompt)))[:2]
        return json.dumps(
            [
                {
                    "gap_type": "methodological",
                    "title": "Few longitudinal studies in the collection",
                    "description": "The collection relies on cross-sectional designs.",
                    "priority": "medium",
                    "confidence": 0.7,
                    "related_item_ids": ids,
                    "future_research_question": "Do the effects persist over time?",
                }
            ]
            if ids
            else []
        )
    if system.startswith(PLAN_SYSTEM):
        ids = list(dict.fromkeys(_BRACKET_ID_RE.findall(prompt)))[:2]
        return json.dumps(
            {
                "observations": [
                    {
                        "category": "methodology",
                        "finding": "Most items use cross-sectional designs.",
                        "supporting_item_ids": ids,
                        "confidence": 0.7,
                    }
                ],
                "proposed_gaps": [
                    {
                        "type": "methodological",
                        "hypothesis": "No longitudinal evidence is present.",
                        "evidence": ["Cross-sectional design noted in the summaries"],
                        "cited_item_ids": ids,
                        "needs_verification": True,
                    }
                ]
                if ids
                else [],
            }
        )
    if system.startswith(SCREENING_SYSTEM):
        return json.dumps(
            [
                {
                    "item_id": item_id,
                    "decision": "maybe",
                    "confidence": 0.5,
                    "reasoning": "Needs a full-text read to decide.",
                }
                for item_id in _ID_LINE_RE.findall(prompt)
            ]
        )
    if system.startswith(RERANK_SYSTEM):
        # Later candidates score higher, so re-ranking visibly reorders them.
        return json.dumps(
            [
                {
                    "index": int(index),
                    "adjusted_score": min(95, 60 + 5 * int(index)),
                    "reasoning": "Re-scored against the subject.",
                }
                for index in _CANDIDATE_RE.findall(prompt)
            ]
        )
    if system.startswith(INTAKE_SYSTEM):
        return json.dumps(
            {
                "role": "background",
                "role_confidence": 0.6,
                "role_reasoning": "Provides general context.",
                "summary": "This item provides background for the subject.",
                "summary_confidence": 0.6,
                "alternative_summaries": [],
                "claims": [],
                "relevance_score": 50,
                "relevance_reasoning": "Moderately related to the subject.",
                "potential_relationships": [],
            }
        )
    return "ok"
