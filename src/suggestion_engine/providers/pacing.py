"""Self-throttling request pacer with a multiplicative backoff multiplier."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

from suggestion_engine.cancellation import CancellationToken, cancellable_sleep
from suggestion_engine.config.settings import Settings
from suggestion_engine.observability.logger import get_logger

logger = get_logger("pacing")

SleepFn = Callable[[float, "CancellationToken | None"], Awaitable[None]]


class RequestPacer:
    """Spaces requests by ``base_interval * multiplier`` since the previous one.

    The multiplier doubles on every rate-limit rejection (up to ``max_multiplier``)
    and decays by ``decay`` on every success, never dropping below 1. A retry-after
    hint from the remote additionally blocks requests until it has elapsed.
    """

    def __init__(
        self,
        base_interval_s: float = 0.1,
        max_multiplier: float = 16.0,
        decay: float = 0.8,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFn = cancellable_sleep,
    ) -> None:
        self._base_interval_s = base_interval_s
        self._max_multiplier = max(1.0, max_multiplier)
        self._decay = decay
        self._clock = clock
        self._sleep = sleep
        self._multiplier = 1.0
        self._last_request_at: float | None = None
        self._not_before = 0.0
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> RequestPacer:
        return cls(
            base_interval_s=settings.min_request_interval_ms / 1000,
            max_multiplier=settings.backoff_max_multiplier,
            decay=settings.backoff_decay,
            **kwargs,
        )

    @property
    def multiplier(self) -> float:
        return self._multiplier

    def pending_wait(self) -> float:
        now = self._clock()
        wait = 0.0
        if self._last_request_at is not None:
            elapsed = now - self._last_request_at
            wait = self._base_interval_s * self._multiplier - elapsed
        return max(0.0, wait, self._not_before - now)

    async def acquire(self, cancel: CancellationToken | None = None) -> float:
        """Wait until the next request may be sent; returns the time slept."""
        async with self._lock:
            wait = self.pending_wait()
            if wait > 0:
                logger.debug("pacing_wait", wait_s=round(wait, 3), multiplier=self._multiplier)
                await self._sleep(wait, cancel)
            self._last_request_at = self._clock()
            return wait

    def record_success(self) -> None:
        self._multiplier = max(1.0, self._multiplier * self._decay)

    def record_rate_limited(self, retry_after_s: float | None = None) -> float:
        """Double the multiplier and return the wait reported to the caller."""
        self._multiplier = min(self._max_multiplier, self._multiplier * 2)
        hint = retry_after_s if retry_after_s is not None else self._base_interval_s * self._multiplier
        self._not_before = max(self._not_before, self._clock() + hint)
        logger.warning("rate_limited", multiplier=self._multiplier, retry_after_s=round(hint, 3))
        return hint
