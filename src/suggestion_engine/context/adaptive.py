"""Adaptive behavior policy: gate features and size context by working-set size."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Tier(str, Enum):
    COLD_START = "cold-start"
    GROWING = "growing"
    ESTABLISHED = "established"
    LARGE = "large"


@dataclass(frozen=True)
class AdaptiveConfig:
    tier: Tier
    max_context_items: int
    include_long_text: bool
    auto_trigger: bool
    show_relationship_suggestions: bool
    show_role_suggestions: bool
    show_summary_suggestions: bool
    show_claim_extraction: bool
    show_gap_analysis: bool
    guidance: str
    prompt_enhancement: str


_CONFIGS = {
    Tier.COLD_START: AdaptiveConfig(
        tier=Tier.COLD_START,
        max_context_items=10,
        include_long_text=True,
        auto_trigger=False,
        show_relationship_suggestions=False,
        show_role_suggestions=False,
        show_summary_suggestions=True,
        show_claim_extraction=True,
        show_gap_analysis=False,
        guidance="Add 3+ items to unlock AI-powered role and relationship suggestions.",
        prompt_enhancement=(
            "The collection is very small. Be conservative and focus on the item itself "
            "rather than its place in the collection."
        ),
    ),
    Tier.GROWING: AdaptiveConfig(
        tier=Tier.GROWING,
        max_context_items=15,
        include_long_text=True,
        auto_trigger=True,
        show_relationship_suggestions=True,
        show_role_suggestions=True,
        show_summary_suggestions=True,
        show_claim_extraction=True,
        show_gap_analysis=True,
        guidance="AI suggestions are active. Relationships are suggested as you add items.",
        prompt_enhancement=(
            "The collection is still growing. Favor relationships that help the researcher "
            "structure it, and say so when the evidence is thin."
        ),
    ),
    Tier.ESTABLISHED: AdaptiveConfig(
        tier=Tier.ESTABLISHED,
        max_context_items=20,
        include_long_text=False,
        auto_trigger=True,
        show_relationship_suggestions=True,
        show_role_suggestions=True,
        show_summary_suggestions=True,
        show_claim_extraction=True,
        show_gap_analysis=True,
        guidance="Established collection: AI focuses on summaries and claims rather than abstracts.",
        prompt_enhancement=(
            "The collection is mature. Prioritize non-obvious relationships, contradictions "
            "and tensions over topical similarity."
        ),
    ),
    Tier.LARGE: AdaptiveConfig(
        tier=Tier.LARGE,
        max_context_items=15,
        include_long_text=False,
        auto_trigger=False,
        show_relationship_suggestions=True,
        show_role_suggestions=True,
        show_summary_suggestions=True,
        show_claim_extraction=True,
        show_gap_analysis=True,
        guidance="Large collection: AI uses selective context. Click to analyze.",
        prompt_enhancement=(
            "Only a selected subset of a large collection is shown. Do not assume that an "
            "item is missing from the collection just because it is not listed."
        ),
    ),
}


def classify(item_count: int) -> Tier:
    if item_count <= 2:
        return Tier.COLD_START
    if item_count <= 10:
        return Tier.GROWING
    if item_count <= 50:
        return Tier.ESTABLISHED
    return Tier.LARGE


def config_for(tier: Tier) -> AdaptiveConfig:
    return _CONFIGS[tier]


def policy_for(item_count: int) -> AdaptiveConfig:
    return config_for(classify(item_count))


def should_auto_trigger(item_count: int) -> bool:
    return policy_for(item_count).auto_trigger


def cold_start_message(item_count: int) -> str | None:
    """Guidance for collections too small for relationship features, else None."""
    if classify(item_count) is not Tier.COLD_START:
        return None
    remaining = 3 - item_count
    noun = "item" if remaining == 1 else "items"
    return f"Add {remaining} more {noun} to unlock AI-powered relationship suggestions."
