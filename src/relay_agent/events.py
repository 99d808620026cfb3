"""Streaming event records emitted by ``AgentExecutor.run_streaming``.

A stream is a sequence of non-terminal events (``content``, ``tool_start``,
``tool_result``) closed by exactly one terminal event (``complete``,
``error`` or ``max_iterations``).
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


class ContentEvent(BaseModel):
    type: Literal["content"] = "content"
    content: str


class ToolStartEvent(BaseModel):
    type: Literal["tool_start"] = "tool_start"
    tools: list[str]


class ToolResultEvent(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool: str
    success: bool
    result: Any = None


class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    response: str


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    error: str


class MaxIterationsEvent(BaseModel):
    type: Literal["max_iterations"] = "max_iterations"
    log: list[dict[str, Any]]
    response: str


AgentEvent = Annotated[
    Union[ContentEvent, ToolStartEvent, ToolResultEvent, CompleteEvent, ErrorEvent, MaxIterationsEvent],
    Field(discriminator="type"),
]

TERMINAL_EVENT_TYPES = frozenset({"complete", "error", "max_iterations"})
