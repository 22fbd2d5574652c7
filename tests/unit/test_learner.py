"""Tests for learning prompt guidance from recorded feedback."""

from __future__ import annotations

import json

import pytest

from suggestion_engine.models.domain import FeedbackAction, ItemRole, RelationshipType, SuggestionFamily
from suggestion_engine.models.suggestions import IntakeAnalysis, RelationshipSuggestion
from suggestion_engine.suggestions.feedback import FeedbackRecorder
from suggestion_engine.suggestions.learner import FeedbackLearner, Transition


def intake(n: int, role: ItemRole = ItemRole.SUPPORTS) -> IntakeAnalysis:
    return IntakeAnalysis(
        id=f"intake-{n}",
        item_id=f"p{n}",
        role=role,
        role_confidence=0.8,
        summary=f"Model-written summary {n} that runs on for quite a while to describe the item.",
    )


def relationship(n: int, relationship_type: RelationshipType = RelationshipType.SUPPORTS) -> RelationshipSuggestion:
    return RelationshipSuggestion(
        id=f"rel-{n}",
        target_item_id="p1",
        suggested_item_id=f"p{n}",
        suggested_item_title=f"Study {n}",
        relationship_type=relationship_type,
        confidence=0.8,
    )


@pytest.fixture
def recorder():
    return FeedbackRecorder(window=50)


@pytest.fixture
def learner(recorder):
    return FeedbackLearner(recorder)


async def retype(recorder, n, before, after, subject_id="s1"):
    await recorder.record(
        relationship(n, before),
        FeedbackAction.EDITED,
        edited={"relationship_type": after.value},
        subject_id=subject_id,
    )


async def reassign(recorder, n, before, after, subject_id="s1"):
    await recorder.record(intake(n, before), FeedbackAction.EDITED, edited={"role": after.value}, subject_id=subject_id)


class TestRoleCorrections:
    async def test_transitions_and_biases(self, recorder, learner):
        for n in (1, 2, 3):
            await reassign(recorder, n, ItemRole.SUPPORTS, ItemRole.METHOD)
        await reassign(recorder, 4, ItemRole.BACKGROUND, ItemRole.OTHER)

        prefs = learner.learn("s1")
        assert prefs.role_transitions[0] == Transition("supports", "method", 3, ["p1", "p2", "p3"])
        assert prefs.role_biases == {ItemRole.SUPPORTS: -0.2, ItemRole.BACKGROUND: -0.0667}
        assert prefs.role_acceptance == 0.0

    async def test_reconsider_needs_a_repeated_pattern(self, recorder, learner):
        for n in (1, 2, 3):
            await reassign(recorder, n, ItemRole.SUPPORTS, ItemRole.METHOD)
        await reassign(recorder, 4, ItemRole.BACKGROUND, ItemRole.OTHER)

        assert learner.reconsider_role("s1", ItemRole.SUPPORTS) is ItemRole.METHOD
        assert learner.reconsider_role("s1", ItemRole.BACKGROUND) is None
        assert learner.reconsider_role("s1", ItemRole.METHOD) is None

    async def test_low_role_acceptance_adds_note(self, recorder, learner):
        for n in (1, 2, 3):
            await reassign(recorder, n, ItemRole.SUPPORTS, ItemRole.METHOD)
        context = learner.build_prompt_context("s1", SuggestionFamily.INTAKE)
        assert "[User preference - role assignment]" in context
        assert 'Users often correct "supports" to "method" (3x)' in context
        assert "Role suggestions have low acceptance (0%)" in context

    async def test_accepted_roles_count_as_kept(self, recorder, learner):
        for n in (1, 2, 3):
            await recorder.record(intake(n), FeedbackAction.ACCEPTED, subject_id="s1")
        prefs = learner.learn("s1")
        assert prefs.role_acceptance == 1.0
        assert prefs.preferred_roles == [ItemRole.SUPPORTS]
        assert learner.build_prompt_context("s1", SuggestionFamily.INTAKE) == ""


class TestRelationshipCorrections:
    async def test_guidance_needs_two_corrections(self, recorder, learner):
        await retype(recorder, 2, RelationshipType.SUPPORTS, RelationshipType.EXTENDS)
        assert learner.build_prompt_context("s1", SuggestionFamily.RELATIONSHIP) == ""

        await retype(recorder, 3, RelationshipType.SUPPORTS, RelationshipType.EXTENDS)
        context = learner.build_prompt_context("s1", SuggestionFamily.RELATIONSHIP)
        assert context.startswith("[User preference - relationship types]")
        assert 'Users often correct "supports" to "extends" (2x)' in context

    async def test_confidence_is_lowered_for_corrected_types(self, recorder, learner):
        await retype(recorder, 2, RelationshipType.SUPPORTS, RelationshipType.EXTENDS)

        assert learner.adjust_relationship_confidence("s1", RelationshipType.SUPPORTS, 0.8) == 0.6
        assert learner.adjust_relationship_confidence("s1", RelationshipType.SUPPORTS, 0.25) == 0.1
        assert learner.adjust_relationship_confidence("s1", RelationshipType.EXTENDS, 0.8) == 0.8

    async def test_unchanged_type_is_not_a_transition(self, recorder, learner):
        await retype(recorder, 2, RelationshipType.SUPPORTS, RelationshipType.SUPPORTS)
        assert learner.learn("s1").relationship_transitions == []

    async def test_mostly_dismissed_adds_note_after_enough_samples(self, recorder, learner):
        for n in (2, 3):
            await recorder.record(relationship(n), FeedbackAction.DISMISSED, subject_id="s1")
        assert learner.build_prompt_context("s1", SuggestionFamily.RELATIONSHIP) == ""

        await recorder.record(relationship(4), FeedbackAction.DISMISSED, subject_id="s1")
        context = learner.build_prompt_context("s1", SuggestionFamily.RELATIONSHIP)
        assert context == (
            "[Additional context]\nMost relationship suggestions were dismissed (0% kept). "
            "Only suggest well-supported relationships."
        )


async def test_summary_style_from_edited_summaries(recorder, learner):
    for n, text in enumerate(["This study shows faster recall.", "This study shows weaker memory."], start=1):
        await recorder.record(intake(n), FeedbackAction.EDITED, edited={"summary": text}, subject_id="s1")

    style = learner.learn("s1").summary_style
    assert style.prefers_concise
    assert style.average_length == 31
    assert style.common_openings == ["this study shows"]

    context = learner.build_prompt_context("s1", SuggestionFamily.INTAKE)
    assert "[User preference - summary style]" in context
    assert 'often start with: "this study shows"' in context
    assert "concise summaries (avg 31 chars)" in learner.build_prompt_context("s1", SuggestionFamily.SUMMARY)


async def test_subjects_are_learned_separately(recorder, learner):
    await retype(recorder, 2, RelationshipType.SUPPORTS, RelationshipType.EXTENDS, subject_id="s2")
    assert learner.learn("s1").total_feedback == 0
    assert learner.learn("s2").relationship_biases == {RelationshipType.SUPPORTS: -0.2}
    assert learner.learn(None).total_feedback == 1


async def test_cache_follows_recorder_changes(recorder, learner):
    first = learner.learn("s1")
    assert learner.learn("s1") is first

    await recorder.record(relationship(2), FeedbackAction.ACCEPTED, subject_id="s1")
    second = learner.learn("s1")
    assert second is not first
    assert second.total_feedback == 1
    assert second.acceptance_rates == {SuggestionFamily.RELATIONSHIP: 1.0}


async def test_preferences_serialize_to_plain_values(recorder, learner):
    await reassign(recorder, 1, ItemRole.SUPPORTS, ItemRole.METHOD)
    data = learner.learn("s1").to_dict()
    assert data["role_biases"] == {"supports": -0.2}
    assert data["acceptance_rates"] == {"intake": 1.0}
    assert data["role_transitions"][0]["to_value"] == "method"
    json.dumps(data)
