"""Bounded retry helper for retryable completion errors."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeVar

from suggestion_engine.cancellation import CancellationToken, cancellable_sleep
from suggestion_engine.exceptions import AIError
from suggestion_engine.observability.logger import get_logger

logger = get_logger("retry")

T = TypeVar("T")


async def with_retry(
    operation: Callable[[int], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay_s: float = 1.0,
    cancel: CancellationToken | None = None,
    sleep: Callable[[float, CancellationToken | None], Awaitable[None]] = cancellable_sleep,
) -> T:
    """Run ``operation(attempt)`` until it succeeds or a non-retryable error occurs.

    Delays double from ``initial_delay_s``; a larger retry-after hint on the error wins.
    Non-retryable errors, cancellation included, propagate on first failure.
    """
    attempt = 0
    while True:
        try:
            return await operation(attempt)
        except AIError as e:
            attempt += 1
            if not e.retryable or attempt >= max_attempts:
                raise
            delay = initial_delay_s * (2 ** (attempt - 1))
            if e.retry_after_ms is not None:
                delay = max(delay, e.retry_after_ms / 1000)
            logger.warning(
                "retrying_after_error",
                code=e.code.value,
                attempt=attempt,
                max_attempts=max_attempts,
                delay_s=round(delay, 3),
            )
            await sleep(delay, cancel)
