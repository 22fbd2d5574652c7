"""Central configuration via Pydantic Settings. All values driven by env vars."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings

from suggestion_engine.exceptions import ConfigurationError


class Settings(BaseSettings):
    # Provider
    provider_type: Literal["anthropic", "openai-compatible", "mock"] = "anthropic"
    api_key: str = ""
    base_url: str = ""  # custom endpoint override, empty means vendor default
    model_name: str = ""  # overrides every tier's model when set
    request_timeout_s: float = 60.0

    # Model tiers
    fast_model: str = "claude-3-5-haiku-20241022"
    fast_max_tokens: int = 1024
    fast_temperature: float = 0.3
    standard_model: str = "claude-sonnet-4-20250514"
    standard_max_tokens: int = 2048
    standard_temperature: float = 0.3
    advanced_model: str = "claude-sonnet-4-20250514"
    advanced_max_tokens: int = 4096
    advanced_temperature: float = 0.4

    # Request pacing / retries
    min_request_interval_ms: int = 100
    backoff_max_multiplier: float = 16.0
    backoff_decay: float = 0.8
    retry_max_attempts: int = 3
    retry_initial_delay_ms: int = 1000

    # Feature flags
    enable_relationship_suggestions: bool = True
    enable_summary_suggestions: bool = True
    enable_claim_extraction: bool = True
    enable_gap_analysis: bool = True
    enable_plan_based_gaps: bool = False
    enable_screening: bool = True
    enable_intake: bool = True
    enable_auto_connect: bool = True

    # Suggestion filtering
    confidence_threshold: float = 0.6
    max_suggestions: int = 5

    # Privacy
    send_long_text: bool = True
    send_excerpts: bool = True

    # Context budgets (estimated tokens)
    relationship_budget: int = 8000
    summary_budget: int = 4000
    claim_budget: int = 4000
    gap_budget: int = 12000
    intake_budget: int = 6000
    screening_budget: int = 8000

    # Trimming
    trim_related_floor: int = 5
    trim_claims_per_item: int = 2
    trim_target_text_chars: int = 1000

    # Background auto-connect queue
    auto_connect_min_items: int = 3
    auto_connect_max_queue_size: int = 10
    auto_connect_processing_delay_ms: int = 2000
    auto_connect_retention_s: int = 300
    auto_connect_auto_apply_confidence: float = 0.9

    # Feedback
    feedback_window: int = 100
    feedback_db_path: str = "data/feedback.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    log_json: bool = False

    model_config = {"env_file": ".env", "env_prefix": "SUGGEST_"}


def validate_settings(settings: Settings) -> Settings:
    """Reject combinations the field types alone cannot rule out."""
    problems = []
    if not 0.0 <= settings.confidence_threshold <= 1.0:
        problems.append("confidence_threshold must be within [0, 1]")
    if settings.max_suggestions < 1:
        problems.append("max_suggestions must be at least 1")
    if settings.backoff_max_multiplier < 1.0:
        problems.append("backoff_max_multiplier must be at least 1")
    if not 0.0 < settings.backoff_decay <= 1.0:
        problems.append("backoff_decay must be within (0, 1]")
    if settings.retry_max_attempts < 1:
        problems.append("retry_max_attempts must be at least 1")
    if settings.auto_connect_max_queue_size < 1:
        problems.append("auto_connect_max_queue_size must be at least 1")
    budgets = ("relationship", "summary", "claim", "gap", "intake", "screening")
    problems.extend(f"{name}_budget must be positive" for name in budgets if getattr(settings, f"{name}_budget") <= 0)
    if settings.base_url and not settings.base_url.startswith(("http://", "https://")):
        problems.append("base_url must be an http(s) URL")
    if problems:
        raise ConfigurationError("; ".join(problems))
    return settings
