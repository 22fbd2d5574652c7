"""Prompt templates for claim extraction."""

from __future__ import annotations

from suggestion_engine.models.domain import RequestContext
from suggestion_engine.prompts.formatting import format_excerpts, format_subject, section

CLAIM_SYSTEM = """You are an expert research assistant helping academics identify and evaluate the claims made in academic work.

Extract the key claims from an item and classify their supporting evidence.

Key principles:
1. Focus on claims central to the item's contribution
2. Distinguish strong claims (solid evidence) from weak ones (speculative)
3. Quote verbatim snippets when possible
4. Prioritize claims relevant to the researcher's subject

Evidence types:
- experimental: lab experiments, clinical trials, empirical measurements
- computational: simulations, modeling, in silico analysis
- theoretical: proofs, logical arguments, framework development
- meta-analysis: systematic reviews, pooled analyses
- other: case studies, expert opinion, qualitative data

Strength:
- strong: clear evidence, statistical significance, replicated results
- moderate: good evidence with limitations, single study
- weak: preliminary findings, small samples, speculation"""

CLAIM_PROMPT = """RESEARCHER'S SUBJECT:
{subject}

ITEM TO ANALYZE:
Title: {title}
Authors: {authors}
Year: {year}

RESEARCHER'S SUMMARY:
"{summary}"{abstract}{excerpts}

Extract the key claims. Return a JSON array:
[
  {{
    "claim": "The specific claim (1-2 sentences)",
    "strength": "strong" | "moderate" | "weak",
    "confidence": 0.0-1.0,
    "evidence_snippets": ["Quote 1", "Quote 2"],
    "evidence_type": "experimental" | "computational" | "theoretical" | "meta-analysis" | "other",
    "source": "long_text" | "excerpts" | "combined",
    "reasoning": "Why this claim matters for the subject"
  }}
]

At most {max_suggestions} claims, ordered by relevance to the subject.
If no clear claims can be extracted, return an empty array: []"""


def build_claim_prompt(context: RequestContext, max_suggestions: int) -> str:
    target = context.target
    if target is None:
        raise ValueError("Target item is required for claim extraction")
    return CLAIM_PROMPT.format(
        subject=format_subject(context.subject),
        title=target.title,
        authors=target.authors or "Unknown",
        year=target.year or "Unknown",
        summary=target.summary or "(none yet)",
        abstract=section("ABSTRACT", target.abstract or ""),
        excerpts=section(
            "RESEARCHER'S HIGHLIGHTS (pay special attention to these)",
            format_excerpts(context.excerpts),
        ),
        max_suggestions=max_suggestions,
    )
