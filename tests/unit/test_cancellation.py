"""Tests for cooperative cancellation across provider calls and sleeps."""

from __future__ import annotations

import asyncio

import pytest

from suggestion_engine.cancellation import CancellationToken, cancellable, cancellable_sleep
from suggestion_engine.config.settings import Settings
from suggestion_engine.exceptions import AIError, ErrorCode
from suggestion_engine.models.domain import CompletionRequest, CompletionResult, FinishReason
from suggestion_engine.providers.base import BaseProvider
from suggestion_engine.providers.pacing import RequestPacer


class HangingProvider(BaseProvider):
    name = "hanging"

    def __init__(self) -> None:
        super().__init__(Settings(_env_file=None), pacer=RequestPacer(base_interval_s=0.0))
        self.started = asyncio.Event()
        self.aborted = False

    def is_configured(self) -> bool:
        return True

    async def _send(self, request: CompletionRequest) -> CompletionResult:
        self.started.set()
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            self.aborted = True
            raise
        return CompletionResult("late", 0, 0, FinishReason.COMPLETE, "m", 0.0)


def assert_cancelled(error: AIError) -> None:
    assert error.code is ErrorCode.NETWORK_ERROR
    assert error.message == "cancelled"
    assert error.retryable is False
    assert error.cancelled is True


async def test_cancel_aborts_in_flight_completion():
    provider = HangingProvider()
    token = CancellationToken()
    call = asyncio.create_task(provider.complete(CompletionRequest(prompt="Hi", cancel=token)))
    await provider.started.wait()
    token.cancel()

    with pytest.raises(AIError) as exc_info:
        await call
    assert_cancelled(exc_info.value)
    assert provider.aborted


async def test_cancelled_token_fails_before_sending():
    provider = HangingProvider()
    token = CancellationToken()
    token.cancel()
    with pytest.raises(AIError) as exc_info:
        await provider.complete(CompletionRequest(prompt="Hi", cancel=token))
    assert_cancelled(exc_info.value)
    assert not provider.started.is_set()


async def test_cancellation_is_not_retried_by_complete_json():
    provider = HangingProvider()
    token = CancellationToken()
    call = asyncio.create_task(provider.complete_json(CompletionRequest(prompt="Hi", cancel=token)))
    await provider.started.wait()
    token.cancel()
    with pytest.raises(AIError) as exc_info:
        await call
    assert_cancelled(exc_info.value)


async def test_cancellable_sleep_is_interrupted():
    token = CancellationToken()
    asyncio.get_running_loop().call_later(0.01, token.cancel)
    with pytest.raises(AIError) as exc_info:
        await cancellable_sleep(60, token)
    assert_cancelled(exc_info.value)


async def test_cancellable_passes_result_through():
    async def work():
        return 42

    assert await cancellable(work(), CancellationToken()) == 42
    assert await cancellable(work(), None) == 42


async def test_outer_task_cancellation_propagates():
    token = CancellationToken()
    task = asyncio.create_task(token.sleep(60))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
