"""Wire-level tests for the HTTP completion provider using httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from suggestion_engine.config.settings import Settings
from suggestion_engine.exceptions import AIError, ErrorCode
from suggestion_engine.models.domain import CompletionRequest, FinishReason
from suggestion_engine.providers.base import JSON_REMINDER
from suggestion_engine.providers.http_provider import (
    ANTHROPIC,
    OPENAI,
    HttpCompletionProvider,
    detect_wire_format,
    parse_retry_after,
)
from suggestion_engine.providers.pacing import RequestPacer


def anthropic_body(text: str, stop_reason: str = "end_turn") -> dict:
    return {
        "content": [{"type": "text", "text": text}],
        "usage": {"input_tokens": 12, "output_tokens": 3},
        "stop_reason": stop_reason,
        "model": "claude-test",
    }


def openai_body(text: str, finish_reason: str = "stop") -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": text}, "finish_reason": finish_reason}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 3},
        "model": "gpt-test",
    }


class FakeClock:
    def __init__(self) -> None:
        self.now = 500.0

    def __call__(self) -> float:
        return self.now


def make_provider(handler, sleeps, **overrides) -> tuple[HttpCompletionProvider, FakeClock]:
    clock = FakeClock()

    async def advance(seconds, token=None):
        sleeps.append(seconds)
        clock.now += seconds

    options = {"api_key": "sk-test", "retry_initial_delay_ms": 1000, **overrides}
    settings = Settings(_env_file=None, **options)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    pacer = RequestPacer.from_settings(settings, clock=clock, sleep=advance)
    return HttpCompletionProvider(settings, client=client, pacer=pacer, sleep=advance), clock


async def test_anthropic_request_and_response(sleeps):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=anthropic_body("hello", "max_tokens"))

    provider, _ = make_provider(handler, sleeps)
    result = await provider.complete(
        CompletionRequest(prompt="Hi", system="Be brief", max_tokens=50, stop_sequences=("END",))
    )

    assert provider.wire_format == ANTHROPIC
    assert result.text == "hello"
    assert result.finish_reason is FinishReason.LENGTH
    assert (result.input_tokens, result.output_tokens) == (12, 3)
    request = seen[0]
    assert request.headers["x-api-key"] == "sk-test"
    assert request.headers["anthropic-version"] == "2023-06-01"
    payload = json.loads(request.content)
    assert payload["system"] == "Be brief"
    assert payload["messages"] == [{"role": "user", "content": "Hi"}]
    assert payload["stop_sequences"] == ["END"]


async def test_openai_compatible_request_and_response(sleeps):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=openai_body("hello"))

    provider, _ = make_provider(
        handler, sleeps, provider_type="openai-compatible", base_url="http://localhost:8080/v1/chat/completions"
    )
    result = await provider.complete(CompletionRequest(prompt="Hi", system="Be brief"))

    assert provider.wire_format == OPENAI
    assert result.finish_reason is FinishReason.COMPLETE
    assert seen[0].headers["authorization"] == "Bearer sk-test"
    payload = json.loads(seen[0].content)
    assert payload["messages"][0] == {"role": "system", "content": "Be brief"}


@pytest.mark.parametrize(
    "url, provider_type, expected",
    [
        ("https://api.anthropic.com/v1/messages", "openai-compatible", ANTHROPIC),
        ("https://api.openai.com/v1/chat/completions", "anthropic", OPENAI),
        ("http://localhost:11434/v1/chat/completions", "anthropic", OPENAI),
        ("https://proxy.internal/llm", "anthropic", ANTHROPIC),
        ("https://proxy.internal/llm", "openai-compatible", OPENAI),
    ],
)
def test_detect_wire_format(url, provider_type, expected):
    assert detect_wire_format(url, provider_type) == expected


def test_parse_retry_after():
    assert parse_retry_after("30") == 30.0
    assert parse_retry_after(None) is None
    assert parse_retry_after("soon") is None
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 0.0


async def test_missing_credential_raises_not_configured(sleeps):
    provider, _ = make_provider(lambda r: httpx.Response(200, json=anthropic_body("x")), sleeps, api_key=" ")
    with pytest.raises(AIError) as exc_info:
        await provider.complete(CompletionRequest(prompt="Hi"))
    assert exc_info.value.code is ErrorCode.NOT_CONFIGURED
    assert exc_info.value.retryable is False


@pytest.mark.parametrize(
    "status, body, code, retryable",
    [
        (401, {"error": {"message": "invalid x-api-key"}}, ErrorCode.INVALID_API_KEY, False),
        (400, {"error": {"message": "prompt is too long: 210000 tokens"}}, ErrorCode.CONTEXT_TOO_LONG, False),
        (400, {"error": {"message": "maximum context length is 8192 tokens"}}, ErrorCode.CONTEXT_TOO_LONG, False),
        (400, {"error": {"message": "context_length_exceeded"}}, ErrorCode.CONTEXT_TOO_LONG, False),
        (400, {"error": {"message": "invalid context field in request"}}, ErrorCode.PROVIDER_ERROR, False),
        (400, {"error": {"message": "temperature out of range"}}, ErrorCode.PROVIDER_ERROR, False),
        (404, {"error": "not found"}, ErrorCode.PROVIDER_ERROR, False),
        (500, {"error": {"message": "overloaded"}}, ErrorCode.PROVIDER_ERROR, True),
        (529, {"error": {"message": "overloaded"}}, ErrorCode.PROVIDER_ERROR, True),
    ],
)
async def test_http_errors_map_to_taxonomy(status, body, code, retryable, sleeps):
    provider, _ = make_provider(lambda r: httpx.Response(status, json=body), sleeps)
    with pytest.raises(AIError) as exc_info:
        await provider.complete(CompletionRequest(prompt="Hi"))
    assert exc_info.value.code is code
    assert exc_info.value.retryable is retryable


@pytest.mark.parametrize(
    "overrides, body",
    [
        ({}, [anthropic_body("hello")]),
        ({"provider_type": "openai-compatible"}, [openai_body("hello")]),
        ({"provider_type": "openai-compatible"}, {"choices": ["not an object"]}),
        ({}, {"content": "plain string", "stop_reason": "end_turn"}),
    ],
)
async def test_malformed_success_body_is_retryable_provider_error(overrides, body, sleeps):
    provider, _ = make_provider(lambda r: httpx.Response(200, json=body), sleeps, **overrides)
    with pytest.raises(AIError) as exc_info:
        await provider.complete(CompletionRequest(prompt="Hi"))
    assert exc_info.value.code is ErrorCode.PROVIDER_ERROR
    assert exc_info.value.retryable is True


@pytest.mark.parametrize("overrides", [{}, {"provider_type": "openai-compatible"}])
async def test_null_usage_counts_default_to_zero(overrides, sleeps):
    def handler(request):
        body = openai_body("hello") if overrides else anthropic_body("hello")
        body["usage"] = {key: None for key in body["usage"]}
        return httpx.Response(200, json=body)

    provider, _ = make_provider(handler, sleeps, **overrides)
    result = await provider.complete(CompletionRequest(prompt="Hi"))
    assert result.text == "hello"
    assert (result.input_tokens, result.output_tokens) == (0, 0)


async def test_transport_failure_is_retryable_network_error(sleeps):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    provider, _ = make_provider(handler, sleeps)
    with pytest.raises(AIError) as exc_info:
        await provider.complete(CompletionRequest(prompt="Hi"))
    assert exc_info.value.code is ErrorCode.NETWORK_ERROR
    assert exc_info.value.retryable is True
    assert exc_info.value.cancelled is False


async def test_rate_limit_carries_retry_after_and_delays_next_call(sleeps):
    responses = [
        httpx.Response(429, headers={"retry-after": "30"}, json={"error": {"message": "rate limited"}}),
        httpx.Response(200, json=anthropic_body("ok")),
    ]
    provider, clock = make_provider(lambda r: responses.pop(0), sleeps)

    with pytest.raises(AIError) as exc_info:
        await provider.complete(CompletionRequest(prompt="Hi"))
    error = exc_info.value
    assert error.code is ErrorCode.RATE_LIMITED
    assert error.retryable is True
    assert error.retry_after_ms == 30000
    assert provider.pacer.multiplier == 2.0

    start = clock.now
    result = await provider.complete(CompletionRequest(prompt="Hi"))
    assert result.text == "ok"
    assert sleeps == [pytest.approx(30.0)]
    assert clock.now - start == pytest.approx(30.0)
    assert provider.pacer.multiplier == pytest.approx(1.6)


async def test_complete_json_reprompts_after_parse_failure(sleeps):
    prompts = []
    texts = ["I cannot answer in JSON, sorry.", '```json\n[{"a":1}]\n```']

    def handler(request):
        prompts.append(json.loads(request.content)["messages"][0]["content"])
        return httpx.Response(200, json=anthropic_body(texts.pop(0)))

    provider, _ = make_provider(handler, sleeps)
    completion = await provider.complete_json(CompletionRequest(prompt="List items"))

    assert completion.data == [{"a": 1}]
    assert prompts[0] == "List items"
    assert prompts[1] == "List items" + JSON_REMINDER
    assert 1.0 in sleeps


async def test_complete_json_does_not_retry_auth_failures(sleeps):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(401, json={"error": {"message": "bad key"}})

    provider, _ = make_provider(handler, sleeps)
    with pytest.raises(AIError) as exc_info:
        await provider.complete_json(CompletionRequest(prompt="Hi"))
    assert exc_info.value.code is ErrorCode.INVALID_API_KEY
    assert len(calls) == 1


async def test_test_connection_reports_failure(sleeps):
    provider, _ = make_provider(lambda r: httpx.Response(401, json={"error": "bad key"}), sleeps)
    assert await provider.test_connection() is False


def test_estimate_tokens_uses_tokenizer(sleeps):
    provider, _ = make_provider(lambda r: httpx.Response(200, json=anthropic_body("x")), sleeps)
    assert 0 < provider.estimate_tokens("Sleep supports memory consolidation.") < 20
