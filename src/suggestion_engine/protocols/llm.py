"""Protocol for completion providers."""

from __future__ import annotations

from typing import Protocol

from suggestion_engine.models.domain import CompletionRequest, CompletionResult, JSONCompletion


class CompletionProvider(Protocol):
    name: str

    def is_configured(self) -> bool: ...

    async def complete(self, request: CompletionRequest) -> CompletionResult: ...

    async def complete_json(self, request: CompletionRequest) -> JSONCompletion: ...

    def estimate_tokens(self, text: str) -> int: ...

    async def test_connection(self) -> bool: ...

    async def aclose(self) -> None: ...
