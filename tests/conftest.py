import asyncio
import copy
from typing import Any

import pytest

from relay_agent.completion import CompletionResponse, ContentDelta, ToolCallsDelta
from relay_agent.state import ToolCallRequest
from relay_tools.registry import ToolRegistry
from relay_tools.schemas import ToolContext, ToolOutput, ToolSpec

OBJECT_SCHEMA = {"type": "object", "properties": {}}


def tool_call(name: str, arguments: str = "{}", call_id: str | None = None) -> ToolCallRequest:
    return ToolCallRequest(id=call_id or f"call_{name}", name=name, arguments=arguments)


def text(content: str) -> CompletionResponse:
    return CompletionResponse(content=content, finish_reason="stop")


def calls(*requests: ToolCallRequest) -> CompletionResponse:
    return CompletionResponse(tool_calls=list(requests), finish_reason="tool_calls")


class ScriptedCompletionClient:
    """Replays canned responses; the last one repeats once the script runs out."""

    model = "scripted"

    def __init__(self, *responses: CompletionResponse | Exception, chunk_size: int = 3) -> None:
        self._responses = list(responses)
        self._chunk_size = chunk_size
        self.requests: list[dict[str, Any]] = []

    def _next(self, messages, tools):
        self.requests.append({"messages": copy.deepcopy(messages), "tools": tools})
        index = min(len(self.requests), len(self._responses)) - 1
        response = self._responses[index]
        if isinstance(response, Exception):
            raise response
        return response

    async def complete(self, messages, tools):
        return self._next(messages, tools)

    async def stream(self, messages, tools):
        response = self._next(messages, tools)
        content = response.content or ""
        for start in range(0, len(content), self._chunk_size):
            yield ContentDelta(text=content[start : start + self._chunk_size])
        if response.tool_calls:
            yield ToolCallsDelta(calls=list(response.tool_calls))


class ToolLog:
    def __init__(self) -> None:
        self.calls: list[tuple[str, Any, ToolContext]] = []


def build_fake_registry(log: ToolLog) -> ToolRegistry:
    registry = ToolRegistry()

    async def execute_code(args, context):
        log.calls.append(("execute_code", args, context))
        return {"result": {"stdout": "4\n", "exit_code": 0}}

    async def echo(args, context):
        log.calls.append(("echo", args, context))
        return args

    async def boom(args, context):
        log.calls.append(("boom", args, context))
        raise RuntimeError("integration not connected")

    async def remember(args, context):
        log.calls.append(("remember", args, context))
        return ToolOutput(result={"seen": dict(context.state)}, state_updates=args)

    async def slow(args, context):
        log.calls.append(("slow", args, context))
        await asyncio.sleep(args.get("seconds", 5))
        return {"result": "done"}

    async def send_email(args, context):
        log.calls.append(("send_email", args, context))
        return {"result": {"sent": True}}

    registry.register(ToolSpec(name="execute_code", description="Run code.", parameters=OBJECT_SCHEMA), execute_code)
    registry.register(ToolSpec(name="echo", description="Echo arguments.", parameters=OBJECT_SCHEMA), echo)
    registry.register(ToolSpec(name="boom", description="Always fails.", parameters=OBJECT_SCHEMA), boom)
    registry.register(ToolSpec(name="remember", description="Store values.", parameters=OBJECT_SCHEMA), remember)
    registry.register(
        ToolSpec(name="slow", description="Sleeps.", parameters=OBJECT_SCHEMA, timeout_s=0.05), slow
    )
    registry.register(
        ToolSpec(
            name="send_email",
            description="Send an email.",
            parameters=OBJECT_SCHEMA,
            requires_integration=("gmail", "outlook"),
        ),
        send_email,
    )
    return registry


@pytest.fixture
def tool_log() -> ToolLog:
    return ToolLog()


@pytest.fixture
def registry(tool_log: ToolLog) -> ToolRegistry:
    return build_fake_registry(tool_log)
