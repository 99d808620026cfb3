"""Language-model completion clients.

The executor depends only on the ``CompletionClient`` protocol; provider SDK
objects are built once by ``build_completion_client`` and injected.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Literal, Protocol, Union

import openai
from openai import AsyncOpenAI

from .logging import get_logger
from .settings import AgentSettings
from .state import ToolCallRequest

logger = get_logger("completion")


class CompletionError(Exception):
    """The model call itself failed (outage, bad request, quota, timeout)."""

    def __init__(self, message: str, code: str = "completion_failed", retryable: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.retryable = retryable


@dataclass
class CompletionResponse:
    content: str | None = None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    finish_reason: str | None = None


@dataclass(frozen=True)
class ContentDelta:
    text: str
    type: Literal["content"] = "content"


@dataclass(frozen=True)
class ToolCallsDelta:
    calls: list[ToolCallRequest]
    type: Literal["tool_calls"] = "tool_calls"


StreamDelta = Union[ContentDelta, ToolCallsDelta]


class CompletionClient(Protocol):
    model: str

    async def complete(
        self, messages: list[dict[str, Any]], tools: list[dict[str, Any]] | None
    ) -> CompletionResponse: ...

    def stream(
        self, messages: list[dict[str, Any]], tools: list[dict[str, Any]] | None
    ) -> AsyncIterator[StreamDelta]: ...


class ToolCallAccumulator:
    """Reassembles streamed tool-call fragments keyed by call index.

    Argument fragments are concatenated in arrival order and kept as a raw
    string; nothing is parsed until the stream has ended.
    """

    def __init__(self) -> None:
        self._calls: dict[int, dict[str, str]] = {}

    def add(
        self,
        index: int,
        *,
        call_id: str | None = None,
        name: str | None = None,
        arguments: str | None = None,
    ) -> None:
        entry = self._calls.setdefault(index, {"id": "", "name": "", "arguments": ""})
        if call_id:
            entry["id"] = call_id
        if name:
            entry["name"] = name
        if arguments:
            entry["arguments"] += arguments

    def __bool__(self) -> bool:
        return bool(self._calls)

    def calls(self) -> list[ToolCallRequest]:
        return [
            ToolCallRequest(
                id=entry["id"] or f"call_{index}",
                name=entry["name"],
                arguments=entry["arguments"] or "{}",
            )
            for index, entry in sorted(self._calls.items())
        ]


def _translate_error(exc: openai.APIError) -> CompletionError:
    if isinstance(exc, openai.APITimeoutError):
        return CompletionError(f"Model request timed out: {exc}", code="timeout", retryable=True)
    if isinstance(exc, openai.APIConnectionError):
        return CompletionError(f"Model provider unreachable: {exc}", code="connection_error", retryable=True)
    if isinstance(exc, openai.RateLimitError):
        return CompletionError(f"Model rate limit exceeded: {exc}", code="rate_limited", retryable=True)
    if isinstance(exc, openai.APIStatusError):
        return CompletionError(
            f"Model request failed ({exc.status_code}): {exc.message}",
            code="provider_error",
            retryable=exc.status_code >= 500,
        )
    return CompletionError(str(exc))


class OpenAICompletionClient:
    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        model: str,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        timeout_s: float = 60.0,
    ) -> None:
        self._client = client
        self.model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._timeout_s = timeout_s

    def _params(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]] | None) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self._temperature,
            "timeout": self._timeout_s,
        }
        if self._max_tokens:
            params["max_tokens"] = self._max_tokens
        if tools:
            params["tools"] = tools
            params["tool_choice"] = "auto"
        return params

    async def complete(
        self, messages: list[dict[str, Any]], tools: list[dict[str, Any]] | None
    ) -> CompletionResponse:
        try:
            response = await self._client.chat.completions.create(**self._params(messages, tools))
        except openai.APIError as exc:
            raise _translate_error(exc) from exc

        choice = response.choices[0]
        message = choice.message
        calls = [
            ToolCallRequest(id=call.id, name=call.function.name, arguments=call.function.arguments or "{}")
            for call in (message.tool_calls or [])
        ]
        return CompletionResponse(content=message.content, tool_calls=calls, finish_reason=choice.finish_reason)

    async def stream(
        self, messages: list[dict[str, Any]], tools: list[dict[str, Any]] | None
    ) -> AsyncIterator[StreamDelta]:
        try:
            stream = await self._client.chat.completions.create(**self._params(messages, tools), stream=True)
        except openai.APIError as exc:
            raise _translate_error(exc) from exc

        accumulator = ToolCallAccumulator()
        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    yield ContentDelta(text=delta.content)
                for fragment in delta.tool_calls or []:
                    function = fragment.function
                    accumulator.add(
                        fragment.index,
                        call_id=fragment.id,
                        name=function.name if function else None,
                        arguments=function.arguments if function else None,
                    )
        except openai.APIError as exc:
            raise _translate_error(exc) from exc
        finally:
            # Release the HTTP connection even when the consumer stops early or is cancelled.
            await stream.close()

        if accumulator:
            yield ToolCallsDelta(calls=accumulator.calls())


_TIME_PATTERN = re.compile(r"\b(time|date|clock|today)\b", re.IGNORECASE)
_WORD_PATTERN = re.compile(r"\s*\S+\s*|\s+")


def word_chunks(text: str) -> list[str]:
    """Split into word-sized pieces that concatenate back to ``text``."""
    return _WORD_PATTERN.findall(text)


class MockCompletionClient:
    """Heuristic offline client: enables E2E flow without a provider key."""

    model = "mock"

    async def complete(
        self, messages: list[dict[str, Any]], tools: list[dict[str, Any]] | None
    ) -> CompletionResponse:
        last = messages[-1] if messages else {}
        tool_names = {t["function"]["name"] for t in tools or []}

        if last.get("role") == "tool":
            return CompletionResponse(content=f"Here is what I found: {last.get('content', '')}", finish_reason="stop")

        text = str(last.get("content") or "")
        if _TIME_PATTERN.search(text) and "get_current_time" in tool_names:
            call = ToolCallRequest(id=f"call_mock_{uuid.uuid4().hex[:12]}", name="get_current_time", arguments="{}")
            return CompletionResponse(tool_calls=[call], finish_reason="tool_calls")

        return CompletionResponse(
            content=f"(offline mode) I received your message: {text}",
            finish_reason="stop",
        )

    async def stream(
        self, messages: list[dict[str, Any]], tools: list[dict[str, Any]] | None
    ) -> AsyncIterator[StreamDelta]:
        response = await self.complete(messages, tools)
        if response.tool_calls:
            yield ToolCallsDelta(calls=response.tool_calls)
            return
        for word in word_chunks(response.content or ""):
            yield ContentDelta(text=word)


def build_completion_client(settings: AgentSettings) -> CompletionClient:
    if settings.mock_llm or not settings.openai_api_key:
        logger.info("completion_client", extra={"extra": {"provider": "mock", "mock_llm": settings.mock_llm}})
        return MockCompletionClient()
    client = AsyncOpenAI(api_key=settings.openai_api_key, base_url=settings.openai_base_url)
    logger.info(
        "completion_client",
        extra={"extra": {"provider": "openai", "model": settings.openai_model, "base_url": settings.openai_base_url}},
    )
    return OpenAICompletionClient(
        client,
        model=settings.openai_model,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        timeout_s=settings.openai_timeout_s,
    )
