"""Protocol adapter for incoming chat requests.

Keep this layer thin so protocol changes do not affect the agent loop. The
caller supplies history and integrations; nothing here persists state.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, AsyncIterator, Literal

from pydantic import BaseModel, Field

from relay_tools.registry import ToolRegistry
from relay_tools.tools import build_default_registry
from .agent import AgentExecutor
from .completion import CompletionClient, build_completion_client
from .events import TERMINAL_EVENT_TYPES
from .logging import get_logger
from .settings import AgentSettings, get_settings
from .state import AgentConfig, ConversationTurn
from .trace import TraceRecorder

logger = get_logger("handlers")


class TurnIn(BaseModel):
    role: Literal["system", "user", "assistant", "tool"]
    content: str
    tool_call_id: str | None = None


class AgentIn(BaseModel):
    name: str = "Relay Assistant"
    tools: list[str] | None = None
    system_prompt: str | None = None


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    history: list[TurnIn] = Field(default_factory=list)
    agent: AgentIn = Field(default_factory=AgentIn)
    integrations: list[dict[str, Any]] = Field(default_factory=list)
    user_id: str = "anonymous"
    context: dict[str, Any] = Field(default_factory=dict)


class ChatResponse(BaseModel):
    response: str
    execution_log: list[dict[str, Any]]
    state: dict[str, Any]
    iterations: int
    tokens_used: int
    trace_id: str


@dataclass(frozen=True)
class Runtime:
    """Process-wide collaborators, resolved once and passed down."""

    settings: AgentSettings
    registry: ToolRegistry
    completion: CompletionClient


def _enabled_tools(payload: ChatRequest, settings: AgentSettings) -> list[str]:
    # Defaults apply only when the caller did not pick tools; an empty list means none.
    return list(payload.agent.tools) if payload.agent.tools is not None else list(settings.default_tools)


@lru_cache(maxsize=1)
def get_runtime() -> Runtime:
    settings = get_settings()
    return Runtime(
        settings=settings,
        registry=build_default_registry(),
        completion=build_completion_client(settings),
    )


def build_executor(
    payload: ChatRequest,
    runtime: Runtime,
    trace: TraceRecorder,
) -> tuple[AgentExecutor, list[ConversationTurn]]:
    settings = runtime.settings
    config = AgentConfig(
        name=payload.agent.name,
        enabled_tools=frozenset(_enabled_tools(payload, settings)),
        system_prompt=payload.agent.system_prompt,
    )
    executor = AgentExecutor(
        config,
        runtime.registry,
        runtime.completion,
        integrations=payload.integrations,
        max_iterations=settings.max_iterations,
        tool_timeout_s=settings.tool_timeout_s,
        trace_id=trace.trace_id,
        trace=trace,
    )
    # Caller-supplied history, truncated to the most recent turns.
    recent = payload.history[-settings.history_limit :] if settings.history_limit > 0 else []
    history = [ConversationTurn(role=t.role, content=t.content, tool_call_id=t.tool_call_id) for t in recent]
    return executor, history


def _start_trace(payload: ChatRequest, runtime: Runtime, trace_id: str, streaming: bool) -> TraceRecorder:
    return TraceRecorder(
        trace_id,
        user_message=payload.message,
        agent=payload.agent.name,
        enabled_tools=_enabled_tools(payload, runtime.settings),
        history_turns=len(payload.history),
        streaming=streaming,
    )


def _close_trace(trace: TraceRecorder, runtime: Runtime, answer: str, log: list[dict[str, Any]]) -> None:
    trace.close(answer, log)
    if runtime.settings.trace_enabled:
        path = trace.dump(runtime.settings.trace_dir)
        logger.info("trace_written", extra={"extra": {"trace_id": trace.trace_id, "path": str(path)}})


async def handle_chat(payload: ChatRequest, trace_id: str, runtime: Runtime | None = None) -> ChatResponse:
    # Construct the executor per request; it holds per-run state only.
    runtime = runtime or get_runtime()
    trace = _start_trace(payload, runtime, trace_id, streaming=False)
    executor, history = build_executor(payload, runtime, trace)

    result = await executor.run(history, payload.message, payload.user_id, payload.context)

    log = [entry.to_dict() for entry in result.execution_log]
    _close_trace(trace, runtime, result.response, log)
    return ChatResponse(
        response=result.response,
        execution_log=log,
        state=result.state,
        iterations=result.iterations,
        tokens_used=result.tokens_used,
        trace_id=trace_id,
    )


def format_sse(event: dict[str, Any]) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False, default=str)}\n\n"


async def stream_chat(payload: ChatRequest, trace_id: str, runtime: Runtime | None = None) -> AsyncIterator[str]:
    """Frame executor events as server-sent events, then a ``done`` frame."""
    runtime = runtime or get_runtime()
    trace = _start_trace(payload, runtime, trace_id, streaming=True)
    executor, history = build_executor(payload, runtime, trace)

    full_response = ""
    try:
        async for event in executor.run_streaming(history, payload.message, payload.user_id, payload.context):
            data = event.model_dump()
            if data["type"] == "content":
                full_response += data["content"]
            elif data["type"] in TERMINAL_EVENT_TYPES and data.get("response") is not None:
                full_response = data["response"]
            yield format_sse(data)
    except Exception as exc:  # noqa: BLE001
        logger.info("stream_error", extra={"extra": {"trace_id": trace_id, "error": str(exc)}})
        yield format_sse({"type": "error", "error": str(exc)})

    _close_trace(trace, runtime, full_response, [e.to_dict() for e in executor.execution_log])
    yield format_sse({"type": "done", "trace_id": trace_id})
