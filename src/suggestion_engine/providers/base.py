"""Shared provider behavior: pacing, JSON completion with retries, connection test."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import replace

from suggestion_engine.cancellation import cancellable, cancellable_sleep
from suggestion_engine.config.settings import Settings
from suggestion_engine.exceptions import AIError, ErrorCode
from suggestion_engine.generation.json_extraction import extract_json
from suggestion_engine.models.domain import CompletionRequest, CompletionResult, JSONCompletion
from suggestion_engine.observability.logger import get_logger
from suggestion_engine.observability.metrics import log_completion_metrics
from suggestion_engine.providers.pacing import RequestPacer
from suggestion_engine.providers.retry import with_retry

logger = get_logger("provider")

JSON_REMINDER = (
    "\n\nIMPORTANT: Your previous answer could not be parsed. "
    "Respond with valid JSON only, no prose and no code fences."
)


class BaseProvider(ABC):
    name = "base"

    def __init__(
        self,
        settings: Settings,
        pacer: RequestPacer | None = None,
        sleep=cancellable_sleep,
    ) -> None:
        self._settings = settings
        self._pacer = pacer or RequestPacer.from_settings(settings)
        self._sleep = sleep

    @property
    def pacer(self) -> RequestPacer:
        return self._pacer

    @property
    def default_model(self) -> str:
        return self._settings.model_name or self._settings.standard_model

    @abstractmethod
    def is_configured(self) -> bool: ...

    @abstractmethod
    async def _send(self, request: CompletionRequest) -> CompletionResult: ...

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        if not self.is_configured():
            raise AIError(ErrorCode.NOT_CONFIGURED, f"{self.name} provider has no credential configured")
        if request.cancel is not None:
            request.cancel.raise_if_cancelled()

        await self._pacer.acquire(request.cancel)
        try:
            result = await cancellable(self._send(request), request.cancel)
        except AIError as e:
            if e.code is ErrorCode.RATE_LIMITED:
                header_s = e.retry_after_ms / 1000 if e.retry_after_ms is not None else None
                e.retry_after_ms = int(round(self._pacer.record_rate_limited(header_s) * 1000))
            logger.warning(
                "completion_failed",
                provider=self.name,
                code=e.code.value,
                retryable=e.retryable,
                error=e.message,
            )
            raise

        self._pacer.record_success()
        log_completion_metrics(
            model=result.model,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            finish_reason=result.finish_reason.value,
            latency_ms=result.latency_ms,
        )
        return result

    async def complete_json(self, request: CompletionRequest) -> JSONCompletion:
        reprompt = False

        async def attempt(n: int) -> JSONCompletion:
            nonlocal reprompt
            current = replace(request, prompt=request.prompt + JSON_REMINDER) if reprompt else request
            result = await self.complete(current)
            try:
                data = extract_json(result.text)
            except AIError:
                reprompt = True
                logger.warning("json_parse_failed", attempt=n, finish_reason=result.finish_reason.value)
                raise
            return JSONCompletion(data=data, result=result)

        return await with_retry(
            attempt,
            max_attempts=self._settings.retry_max_attempts,
            initial_delay_s=self._settings.retry_initial_delay_ms / 1000,
            cancel=request.cancel,
            sleep=self._sleep,
        )

    def estimate_tokens(self, text: str) -> int:
        return math.ceil(len(text) / 4)

    async def test_connection(self) -> bool:
        try:
            result = await self.complete(
                CompletionRequest(prompt='Say "ok" and nothing else.', max_tokens=10, temperature=0.0)
            )
        except AIError as e:
            logger.warning("connection_test_failed", provider=self.name, code=e.code.value)
            return False
        return bool(result.text.strip())

    async def aclose(self) -> None:
        return None
