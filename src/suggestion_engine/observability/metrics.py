"""Metric recording helpers for completions, suggestions and the queue."""

from __future__ import annotations

from suggestion_engine.observability.logger import get_logger
from suggestion_engine.observability.tracing import TraceContext

logger = get_logger("metrics")


def log_completion_metrics(
    model: str,
    input_tokens: int,
    output_tokens: int,
    finish_reason: str,
    latency_ms: float,
) -> None:
    logger.info(
        "completion_metrics",
        model=model,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        finish_reason=finish_reason,
        latency_ms=round(latency_ms, 2),
    )


def log_suggestion_metrics(
    trace: TraceContext,
    family: str,
    parsed: int,
    grounded: int,
    returned: int,
    context_tokens: int,
) -> None:
    logger.info(
        "suggestion_metrics",
        trace_id=trace.trace_id,
        family=family,
        parsed=parsed,
        grounded=grounded,
        returned=returned,
        context_tokens=context_tokens,
        latency_ms=round(trace.elapsed_ms, 2),
        spans=trace.span_durations(),
        failed_stages=trace.failed_stages,
    )


def log_queue_metrics(pending: int, processing: int, completed: int, failed: int) -> None:
    logger.info(
        "queue_metrics",
        pending=pending,
        processing=processing,
        completed=completed,
        failed=failed,
    )
