"""Tests for per-operation stage timing."""

from __future__ import annotations

import pytest

from suggestion_engine.observability.tracing import TraceContext


def test_repeated_stages_are_summed():
    trace = TraceContext("gap")
    with trace.span("completion", tier="standard"):
        pass
    with trace.span("completion", tier="standard"):
        pass
    with trace.span("parse"):
        pass

    durations = trace.span_durations()
    assert set(durations) == {"completion", "parse"}
    assert len(trace.stages) == 3
    assert trace.stages[0].attrs == {"tier": "standard"}


def test_failed_stage_is_recorded_and_reraised():
    trace = TraceContext("summary")
    with pytest.raises(ValueError):
        with trace.span("parse"):
            raise ValueError("bad json")
    assert trace.failed_stages == ["parse"]
    assert trace.stages[0].duration_ms >= 0.0


def test_explicit_trace_id_is_kept():
    trace = TraceContext("claim", trace_id="abc")
    assert trace.trace_id == "abc"
    assert trace.operation == "claim"
    assert trace.elapsed_ms >= 0.0
