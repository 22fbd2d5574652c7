"""Cooperative cancellation token shared by the provider, pacing and queue."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from suggestion_engine.exceptions import AIError

T = TypeVar("T")


class CancellationToken:
    """Caller-owned signal that aborts every suspension point it is passed to.

    Awaiting through ``run`` or ``sleep`` raises ``AIError(NETWORK_ERROR, "cancelled")``
    with ``retryable=False`` once ``cancel`` has been called.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AIError.cancelled_error()

    async def run(self, awaitable: Awaitable[T]) -> T:
        self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()
        if work in done:
            return work.result()
        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        raise AIError.cancelled_error()

    async def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            self.raise_if_cancelled()
            return
        await self.run(asyncio.sleep(seconds))


async def cancellable_sleep(seconds: float, token: CancellationToken | None = None) -> None:
    if token is None:
        if seconds > 0:
            await asyncio.sleep(seconds)
        return
    await token.sleep(seconds)


async def cancellable(awaitable: Awaitable[T], token: CancellationToken | None = None) -> T:
    if token is None:
        return await awaitable
    return await token.run(awaitable)
