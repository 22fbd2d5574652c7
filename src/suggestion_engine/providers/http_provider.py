"""HTTP completion provider speaking the Anthropic messages or OpenAI-compatible chat format."""

from __future__ import annotations

import re
import time
from email.utils import parsedate_to_datetime
from functools import lru_cache

import httpx
import tiktoken

from suggestion_engine.cancellation import cancellable_sleep
from suggestion_engine.config.settings import Settings
from suggestion_engine.exceptions import AIError, ErrorCode
from suggestion_engine.models.domain import CompletionRequest, CompletionResult, FinishReason, utcnow
from suggestion_engine.observability.logger import get_logger
from suggestion_engine.providers.base import BaseProvider
from suggestion_engine.providers.pacing import RequestPacer

logger = get_logger("http_provider")

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_VERSION = "2023-06-01"

ANTHROPIC = "anthropic"
OPENAI = "openai"

_ANTHROPIC_FINISH = {
    "end_turn": FinishReason.COMPLETE,
    "max_tokens": FinishReason.LENGTH,
    "stop_sequence": FinishReason.STOP,
}
_OPENAI_FINISH = {
    "stop": FinishReason.COMPLETE,
    "length": FinishReason.LENGTH,
    "content_filter": FinishReason.STOP,
}
_CONTEXT_RE = re.compile(
    r"context[ _](?:window|length)|too long|maximum\b.*\btokens|token limit", re.IGNORECASE
)


def resolve_endpoint(settings: Settings) -> str:
    if settings.base_url:
        return settings.base_url
    if settings.provider_type == "openai-compatible":
        return OPENAI_URL
    return ANTHROPIC_URL


def detect_wire_format(url: str, provider_type: str) -> str:
    lowered = url.lower()
    if "/chat/completions" in lowered or "openai.com" in lowered:
        return OPENAI
    if "anthropic.com" in lowered or lowered.rstrip("/").endswith("/messages"):
        return ANTHROPIC
    return OPENAI if provider_type == "openai-compatible" else ANTHROPIC


def parse_retry_after(value: str | None) -> float | None:
    """Seconds from a Retry-After header (delta-seconds or HTTP date)."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    return max(0.0, (when - utcnow()).total_seconds())


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:300] or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error)
    if error:
        return str(error)
    return response.text[:300]


def map_http_error(response: httpx.Response) -> AIError:
    status = response.status_code
    message = _error_message(response)

    if status == 401:
        return AIError(ErrorCode.INVALID_API_KEY, "Invalid API key", retryable=False)
    if status == 429:
        retry_after = parse_retry_after(response.headers.get("retry-after"))
        return AIError(
            ErrorCode.RATE_LIMITED,
            f"Rate limited: {message}",
            retryable=True,
            retry_after_ms=int(retry_after * 1000) if retry_after is not None else None,
        )
    if status in (400, 413) and _CONTEXT_RE.search(message):
        return AIError(ErrorCode.CONTEXT_TOO_LONG, f"Context too long: {message}", retryable=False)
    return AIError(
        ErrorCode.PROVIDER_ERROR,
        f"Provider returned {status}: {message}",
        retryable=status >= 500,
    )


def _token_count(usage: object, key: str) -> int:
    if not isinstance(usage, dict):
        return 0
    try:
        return max(0, int(usage.get(key) or 0))
    except (TypeError, ValueError):
        return 0


@lru_cache(maxsize=1)
def _encoding():
    return tiktoken.get_encoding("cl100k_base")


class HttpCompletionProvider(BaseProvider):
    name = "http"

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient | None = None,
        pacer: RequestPacer | None = None,
        sleep=cancellable_sleep,
    ) -> None:
        super().__init__(settings, pacer=pacer, sleep=sleep)
        self._endpoint = resolve_endpoint(settings)
        self._wire_format = detect_wire_format(self._endpoint, settings.provider_type)
        self._client = client or httpx.AsyncClient(timeout=settings.request_timeout_s)
        self._owns_client = client is None
        self.name = self._wire_format

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def wire_format(self) -> str:
        return self._wire_format

    def is_configured(self) -> bool:
        return bool(self._settings.api_key.strip())

    def estimate_tokens(self, text: str) -> int:
        return len(_encoding().encode(text, disallowed_special=()))

    async def _send(self, request: CompletionRequest) -> CompletionResult:
        model = request.model or self.default_model
        if self._wire_format == ANTHROPIC:
            payload, headers = self._anthropic_request(request, model)
        else:
            payload, headers = self._openai_request(request, model)

        start = time.monotonic()
        try:
            response = await self._client.post(self._endpoint, json=payload, headers=headers)
        except httpx.TransportError as e:
            raise AIError(ErrorCode.NETWORK_ERROR, f"Network error: {e}", retryable=True) from e
        latency_ms = (time.monotonic() - start) * 1000

        if response.status_code >= 400:
            raise map_http_error(response)

        try:
            body = response.json()
        except ValueError as e:
            raise AIError(ErrorCode.PROVIDER_ERROR, "Provider returned a non-JSON body", retryable=True) from e
        if not isinstance(body, dict):
            raise AIError(ErrorCode.PROVIDER_ERROR, "Provider returned an unexpected response shape", retryable=True)

        if self._wire_format == ANTHROPIC:
            return self._anthropic_result(body, model, latency_ms)
        return self._openai_result(body, model, latency_ms)

    def _anthropic_request(self, request: CompletionRequest, model: str) -> tuple[dict, dict]:
        payload: dict = {
            "model": model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.system:
            payload["system"] = request.system
        if request.stop_sequences:
            payload["stop_sequences"] = list(request.stop_sequences)
        headers = {
            "content-type": "application/json",
            "x-api-key": self._settings.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }
        return payload, headers

    def _openai_request(self, request: CompletionRequest, model: str) -> tuple[dict, dict]:
        messages = []
        if request.system:
            messages.append({"role": "system", "content": request.system})
        messages.append({"role": "user", "content": request.prompt})
        payload: dict = {
            "model": model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": messages,
        }
        if request.stop_sequences:
            payload["stop"] = list(request.stop_sequences)
        headers = {
            "content-type": "application/json",
            "authorization": f"Bearer {self._settings.api_key}",
        }
        return payload, headers

    @staticmethod
    def _anthropic_result(body: dict, model: str, latency_ms: float) -> CompletionResult:
        blocks = body.get("content") or []
        if not isinstance(blocks, list):
            raise AIError(ErrorCode.PROVIDER_ERROR, "Provider response content is not a list", retryable=True)
        text = "".join(
            str(b.get("text") or "") for b in blocks if isinstance(b, dict) and b.get("type") == "text"
        )
        usage = body.get("usage")
        return CompletionResult(
            text=text,
            input_tokens=_token_count(usage, "input_tokens"),
            output_tokens=_token_count(usage, "output_tokens"),
            finish_reason=_ANTHROPIC_FINISH.get(body.get("stop_reason"), FinishReason.ERROR),
            model=str(body.get("model") or model),
            latency_ms=latency_ms,
        )

    @staticmethod
    def _openai_result(body: dict, model: str, latency_ms: float) -> CompletionResult:
        choices = body.get("choices") or []
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise AIError(ErrorCode.PROVIDER_ERROR, "Provider response contained no choices", retryable=True)
        choice = choices[0]
        message = choice.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        usage = body.get("usage")
        return CompletionResult(
            text=content if isinstance(content, str) else "",
            input_tokens=_token_count(usage, "prompt_tokens"),
            output_tokens=_token_count(usage, "completion_tokens"),
            finish_reason=_OPENAI_FINISH.get(choice.get("finish_reason"), FinishReason.ERROR),
            model=str(body.get("model") or model),
            latency_ms=latency_ms,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
