"""Learn per-subject preferences from recorded feedback and turn them into prompt guidance."""

from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from suggestion_engine.models.domain import (
    FeedbackAction,
    FeedbackRecord,
    ItemRole,
    RelationshipType,
    SuggestionFamily,
)
from suggestion_engine.observability.logger import get_logger
from suggestion_engine.suggestions.feedback import FeedbackRecorder

logger = get_logger("feedback_learner")

MAX_BIAS_PENALTY = 0.2
MIN_ADJUSTED_CONFIDENCE = 0.1
GUIDANCE_MIN_FREQUENCY = 2
RECONSIDER_MIN_FREQUENCY = 3
DEFAULT_SUMMARY_CHARS = 150
CONCISE_SUMMARY_CHARS = 100
LOW_ACCEPTANCE = 0.5
MIN_RATE_SAMPLES = 3
MAX_TRANSITION_ITEMS = 5

# Field holding researcher-written summary text, per family.
_SUMMARY_FIELDS = {SuggestionFamily.INTAKE: "summary", SuggestionFamily.SUMMARY: "text"}


@dataclass
class Transition:
    """A correction the researcher keeps making: suggested value -> chosen value."""

    from_value: str
    to_value: str
    frequency: int = 0
    item_ids: list[str] = field(default_factory=list)


@dataclass
class SummaryStyle:
    average_length: int = DEFAULT_SUMMARY_CHARS
    prefers_concise: bool = False
    common_openings: list[str] = field(default_factory=list)


@dataclass
class LearnedPreferences:
    subject_id: str | None
    total_feedback: int = 0
    acceptance_rate: float = 0.0
    acceptance_rates: dict[SuggestionFamily, float] = field(default_factory=dict)
    samples: dict[SuggestionFamily, int] = field(default_factory=dict)
    role_acceptance: float | None = None
    role_transitions: list[Transition] = field(default_factory=list)
    role_biases: dict[ItemRole, float] = field(default_factory=dict)
    preferred_roles: list[ItemRole] = field(default_factory=list)
    relationship_transitions: list[Transition] = field(default_factory=list)
    relationship_biases: dict[RelationshipType, float] = field(default_factory=dict)
    summary_style: SummaryStyle = field(default_factory=SummaryStyle)

    def to_dict(self) -> dict[str, Any]:
        return _plain(asdict(self))


@dataclass
class PromptAdjustment:
    role_guidance: str | None = None
    relationship_guidance: str | None = None
    summary_guidance: str | None = None
    notes: dict[SuggestionFamily, list[str]] = field(default_factory=dict)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {_plain(k): _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


class FeedbackLearner:
    """Derives preferences from the recorder's window, one subject at a time.

    Intake feedback teaches role corrections and summary style; relationship
    feedback teaches relationship-type corrections. Learned preferences are cached
    per subject until the recorder changes.
    """

    def __init__(self, recorder: FeedbackRecorder) -> None:
        self._recorder = recorder
        self._cache: dict[str | None, tuple[int, LearnedPreferences]] = {}

    def learn(self, subject_id: str | None) -> LearnedPreferences:
        cached = self._cache.get(subject_id)
        if cached is not None and cached[0] == self._recorder.version:
            return cached[1]

        records = [r for r in self._recorder.history() if subject_id is None or r.subject_id == subject_id]
        intake = [r for r in records if r.family is SuggestionFamily.INTAKE]
        relationships = [r for r in records if r.family is SuggestionFamily.RELATIONSHIP]

        role_transitions = _transitions(intake, "role", ItemRole)
        relationship_transitions = _transitions(relationships, "relationship_type", RelationshipType)
        acceptance_rates, samples = _acceptance_rates(records)

        prefs = LearnedPreferences(
            subject_id=subject_id,
            total_feedback=len(records),
            acceptance_rate=_positive_rate(records),
            acceptance_rates=acceptance_rates,
            samples=samples,
            role_acceptance=_role_acceptance(intake),
            role_transitions=role_transitions,
            role_biases=_biases(role_transitions, ItemRole),
            preferred_roles=_preferred_roles(intake),
            relationship_transitions=relationship_transitions,
            relationship_biases=_biases(relationship_transitions, RelationshipType),
            summary_style=_summary_style(records),
        )
        self._cache[subject_id] = (self._recorder.version, prefs)
        logger.debug("preferences_learned", subject_id=subject_id, records=len(records))
        return prefs

    def prompt_adjustments(self, subject_id: str | None) -> PromptAdjustment:
        prefs = self.learn(subject_id)
        adjustment = PromptAdjustment()

        hints = _transition_hints(prefs.role_transitions)
        if hints:
            adjustment.role_guidance = (
                f"Historical correction patterns: {hints}. Consider this when suggesting roles."
            )
        hints = _transition_hints(prefs.relationship_transitions)
        if hints:
            adjustment.relationship_guidance = (
                f"Historical correction patterns: {hints}. Consider this when choosing relationship types."
            )

        style = prefs.summary_style
        if style.prefers_concise:
            adjustment.summary_guidance = (
                f"The researcher prefers concise summaries (avg {style.average_length} chars)."
            )

        intake_notes = []
        if style.common_openings:
            openings = '", "'.join(style.common_openings[:3])
            intake_notes.append(f'The researcher\'s summaries often start with: "{openings}"')
        intake_samples = prefs.samples.get(SuggestionFamily.INTAKE, 0)
        if (
            prefs.role_acceptance is not None
            and intake_samples >= MIN_RATE_SAMPLES
            and prefs.role_acceptance < LOW_ACCEPTANCE
        ):
            intake_notes.append(
                f"Role suggestions have low acceptance ({round(prefs.role_acceptance * 100)}%). "
                "Be more conservative."
            )
        if intake_notes:
            adjustment.notes[SuggestionFamily.INTAKE] = intake_notes

        rate = prefs.acceptance_rates.get(SuggestionFamily.RELATIONSHIP)
        if (
            rate is not None
            and prefs.samples.get(SuggestionFamily.RELATIONSHIP, 0) >= MIN_RATE_SAMPLES
            and rate < LOW_ACCEPTANCE
        ):
            adjustment.notes[SuggestionFamily.RELATIONSHIP] = [
                f"Most relationship suggestions were dismissed ({round(rate * 100)}% kept). "
                "Only suggest well-supported relationships."
            ]
        return adjustment

    def build_prompt_context(self, subject_id: str | None, family: SuggestionFamily) -> str:
        """Guidance text for ``family`` prompts, or an empty string when nothing was learned."""
        adjustment = self.prompt_adjustments(subject_id)
        parts = []
        if family is SuggestionFamily.INTAKE:
            if adjustment.role_guidance:
                parts.append(f"[User preference - role assignment]\n{adjustment.role_guidance}")
            if adjustment.summary_guidance:
                parts.append(f"[User preference - summary style]\n{adjustment.summary_guidance}")
        elif family is SuggestionFamily.RELATIONSHIP and adjustment.relationship_guidance:
            parts.append(f"[User preference - relationship types]\n{adjustment.relationship_guidance}")
        elif family is SuggestionFamily.SUMMARY and adjustment.summary_guidance:
            parts.append(f"[User preference - summary style]\n{adjustment.summary_guidance}")

        notes = adjustment.notes.get(family)
        if notes:
            parts.append("[Additional context]\n" + "\n".join(notes))
        return "\n\n".join(parts)

    def adjust_role_confidence(self, subject_id: str | None, role: ItemRole, confidence: float) -> float:
        bias = self.learn(subject_id).role_biases.get(role, 0.0)
        return _apply_bias(confidence, bias)

    def adjust_relationship_confidence(
        self, subject_id: str | None, relationship_type: RelationshipType, confidence: float
    ) -> float:
        bias = self.learn(subject_id).relationship_biases.get(relationship_type, 0.0)
        return _apply_bias(confidence, bias)

    def reconsider_role(self, subject_id: str | None, role: ItemRole) -> ItemRole | None:
        """The role the researcher usually picks instead of ``role``, once the pattern is strong."""
        for t in self.learn(subject_id).role_transitions:
            if t.from_value == role.value and t.frequency >= RECONSIDER_MIN_FREQUENCY:
                logger.info("role_reconsidered", subject_id=subject_id, role=role.value, instead=t.to_value)
                return ItemRole(t.to_value)
        return None

    def clear_cache(self) -> None:
        self._cache.clear()


def _apply_bias(confidence: float, bias: float) -> float:
    if not bias:
        return confidence
    return round(max(MIN_ADJUSTED_CONFIDENCE, min(1.0, confidence + bias)), 4)


def _edited_value(record: FeedbackRecord, key: str) -> Any:
    if record.edited is None:
        return None
    return record.edited.get(key)


def _transitions(records: list[FeedbackRecord], key: str, kind: type[Enum]) -> list[Transition]:
    allowed = {v.value for v in kind}
    found: dict[tuple[str, str], Transition] = {}
    for r in records:
        if r.action is not FeedbackAction.EDITED:
            continue
        before, after = r.original.get(key), _edited_value(r, key)
        if before not in allowed or after not in allowed or before == after:
            continue
        t = found.setdefault((before, after), Transition(from_value=before, to_value=after))
        t.frequency += 1
        item_id = r.original.get("item_id") or r.original.get("suggested_item_id")
        if item_id and len(t.item_ids) < MAX_TRANSITION_ITEMS:
            t.item_ids.append(item_id)
    return sorted(found.values(), key=lambda t: t.frequency, reverse=True)


def _biases(transitions: list[Transition], kind: type[Enum]) -> dict:
    """Lower confidence for suggested values the researcher keeps correcting."""
    wrong = Counter()
    for t in transitions:
        wrong[t.from_value] += t.frequency
    if not wrong:
        return {}
    worst = max(wrong.values())
    return {kind(value): round(-MAX_BIAS_PENALTY * count / worst, 4) for value, count in wrong.items()}


def _positive_rate(records: list[FeedbackRecord]) -> float:
    if not records:
        return 0.0
    positive = sum(1 for r in records if r.action is not FeedbackAction.DISMISSED)
    return round(positive / len(records), 4)


def _acceptance_rates(records: list[FeedbackRecord]) -> tuple[dict, dict]:
    by_family: dict[SuggestionFamily, list[FeedbackRecord]] = {}
    for r in records:
        by_family.setdefault(r.family, []).append(r)
    rates = {family: _positive_rate(rs) for family, rs in by_family.items()}
    samples = {family: len(rs) for family, rs in by_family.items()}
    return rates, samples


def _final_role(record: FeedbackRecord) -> str | None:
    if record.action is FeedbackAction.DISMISSED:
        return None
    edited = _edited_value(record, "role")
    return edited or record.original.get("role")


def _role_acceptance(intake: list[FeedbackRecord]) -> float | None:
    if not intake:
        return None
    kept = sum(1 for r in intake if _final_role(r) == r.original.get("role"))
    return round(kept / len(intake), 4)


def _preferred_roles(intake: list[FeedbackRecord]) -> list[ItemRole]:
    allowed = {r.value for r in ItemRole}
    usage = Counter(role for role in map(_final_role, intake) if role in allowed)
    return [ItemRole(role) for role, _ in usage.most_common(3)]


def _summary_style(records: list[FeedbackRecord]) -> SummaryStyle:
    written = []
    for r in records:
        if r.action is not FeedbackAction.EDITED or r.family not in _SUMMARY_FIELDS:
            continue
        key = _SUMMARY_FIELDS[r.family]
        text = _edited_value(r, key)
        if isinstance(text, str) and text.strip() and text != r.original.get(key):
            written.append(text.strip())
    if not written:
        return SummaryStyle()

    average = sum(len(t) for t in written) / len(written)
    openings = Counter(" ".join(t.split()[:3]).lower() for t in written)
    return SummaryStyle(
        average_length=round(average),
        prefers_concise=average < CONCISE_SUMMARY_CHARS,
        common_openings=[o for o, n in openings.most_common(5) if n >= 2],
    )


def _transition_hints(transitions: list[Transition]) -> str:
    return ". ".join(
        f'Users often correct "{t.from_value}" to "{t.to_value}" ({t.frequency}x)'
        for t in transitions[:3]
        if t.frequency >= GUIDANCE_MIN_FREQUENCY
    )
