"""Per-operation stage timing for suggestion calls."""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator
from uuid import uuid4


def _now_ms() -> float:
    return time.perf_counter() * 1000


@dataclass
class StageTiming:
    """One timed stage (assemble, completion, parse) of an operation."""

    stage: str
    offset_ms: float
    duration_ms: float = 0.0
    failed: bool = False
    attrs: dict[str, Any] = field(default_factory=dict)


class TraceContext:
    """Collects stage timings for one suggestion or analysis operation.

    A stage that runs more than once is reported as the sum of its runs.
    """

    def __init__(self, operation: str, trace_id: str | None = None) -> None:
        self.operation = operation
        self.trace_id = trace_id or uuid4().hex[:12]
        self.stages: list[StageTiming] = []
        self._origin_ms = _now_ms()

    @contextmanager
    def span(self, name: str, **attrs: Any) -> Iterator[StageTiming]:
        started = _now_ms()
        timing = StageTiming(stage=name, offset_ms=started - self._origin_ms, attrs=attrs)
        try:
            yield timing
        except BaseException:
            timing.failed = True
            raise
        finally:
            timing.duration_ms = _now_ms() - started
            self.stages.append(timing)

    @property
    def elapsed_ms(self) -> float:
        return _now_ms() - self._origin_ms

    @property
    def failed_stages(self) -> list[str]:
        return [t.stage for t in self.stages if t.failed]

    def span_durations(self) -> dict[str, float]:
        totals: dict[str, float] = {}
        for timing in self.stages:
            totals[timing.stage] = totals.get(timing.stage, 0.0) + timing.duration_ms
        return {stage: round(ms, 2) for stage, ms in totals.items()}
