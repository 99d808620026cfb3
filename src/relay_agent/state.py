"""Per-run data containers.

Everything here lives for a single ``run``/``run_streaming`` call.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal

from relay_tools.registry import ALL_TOOLS

Role = Literal["system", "user", "assistant", "tool"]


@dataclass
class TraceRecord:
    """Structured trace container for a single request."""

    trace_id: str
    started_at: str
    finished_at: str | None = None
    latency_ms: int | None = None
    request: dict[str, Any] = field(default_factory=dict)
    llm: list[dict[str, Any]] = field(default_factory=list)
    tools: list[dict[str, Any]] = field(default_factory=list)
    final: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AgentConfig:
    name: str = "Relay"
    enabled_tools: frozenset[str] = frozenset()
    system_prompt: str | None = None

    @classmethod
    def with_all_tools(cls, name: str = "Relay", system_prompt: str | None = None) -> "AgentConfig":
        return cls(name=name, enabled_tools=frozenset({ALL_TOOLS}), system_prompt=system_prompt)


@dataclass(frozen=True)
class ConversationTurn:
    role: Role
    content: str
    tool_call_id: str | None = None

    def to_message(self) -> dict[str, Any]:
        message: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_call_id is not None:
            message["tool_call_id"] = self.tool_call_id
        return message


@dataclass(frozen=True)
class ToolCallRequest:
    id: str
    name: str
    arguments: str = "{}"

    def to_openai(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class ToolCallResult:
    tool_call_id: str
    tool_name: str
    success: bool
    output: Any
    latency_ms: int | None = None

    def to_message(self) -> dict[str, Any]:
        return {
            "role": "tool",
            "tool_call_id": self.tool_call_id,
            "content": json.dumps(self.output, ensure_ascii=False, default=str),
        }


@dataclass
class ExecutionLogEntry:
    iteration: int
    tool_calls: list[str] = field(default_factory=list)
    results: list[dict[str, Any]] | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"iteration": self.iteration}
        if self.tool_calls:
            data["tool_calls"] = list(self.tool_calls)
        if self.results is not None:
            data["results"] = list(self.results)
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class RunResult:
    response: str
    execution_log: list[ExecutionLogEntry] = field(default_factory=list)
    state: dict[str, Any] = field(default_factory=dict)
    iterations: int = 0
    # Character count of every message content in the run; a rough usage figure.
    tokens_used: int = 0
