"""Unified tool calling layer.

This isolates per-call concerns (argument parsing, timeouts, error capture,
tracing) from the agent loop. Every call yields exactly one result; failures
are reported as ``success=False`` rather than raised.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any

from relay_tools.registry import ToolRegistry, UnknownToolError
from relay_tools.schemas import ToolContext
from .logging import get_logger
from .state import ToolCallRequest, ToolCallResult
from .trace import TraceRecorder

logger = get_logger("tool_broker")


class ToolExecutionError(Exception):
    """A single tool call failed: bad arguments, handler exception or timeout."""


def parse_arguments(raw: str | None) -> dict[str, Any]:
    try:
        args = json.loads(raw or "{}")
    except json.JSONDecodeError as exc:
        raise ToolExecutionError(f"Invalid JSON arguments: {exc}") from exc
    if not isinstance(args, dict):
        raise ToolExecutionError("Tool arguments must be a JSON object")
    return args


class ToolBroker:
    def __init__(
        self,
        registry: ToolRegistry,
        *,
        default_timeout_s: float,
        trace_id: str | None = None,
        trace: TraceRecorder | None = None,
    ) -> None:
        self._registry = registry
        self._default_timeout_s = default_timeout_s
        self._trace_id = trace_id
        self._trace = trace

    def _timeout_for(self, name: str) -> float:
        spec = self._registry.get_tool_spec(name)
        if spec is not None and spec.timeout_s is not None:
            return spec.timeout_s
        return self._default_timeout_s

    async def call_tool(
        self, request: ToolCallRequest, context: ToolContext
    ) -> tuple[ToolCallResult, dict[str, Any] | None]:
        """Run one tool call; returns the result and any state updates."""
        start = time.time()
        timeout_s = self._timeout_for(request.name)
        state_updates: dict[str, Any] | None = None
        try:
            args = parse_arguments(request.arguments)
            output = await asyncio.wait_for(
                self._registry.execute(request.name, args, context),
                timeout=timeout_s,
            )
            state_updates = output.state_updates
            result = ToolCallResult(
                tool_call_id=request.id,
                tool_name=request.name,
                success=True,
                output=output.result,
            )
        except asyncio.TimeoutError as exc:
            # wait_for raises without a message; handlers may raise their own.
            message = str(exc) or f"Tool {request.name} timed out after {timeout_s:g}s"
            result = self._failure(request, message)
        except (ToolExecutionError, UnknownToolError) as exc:
            result = self._failure(request, str(exc))
        except Exception as exc:  # noqa: BLE001
            result = self._failure(request, str(exc) or type(exc).__name__)

        result.latency_ms = int((time.time() - start) * 1000)
        logger.info(
            "tool_call" if result.success else "tool_call_failed",
            extra={
                "extra": {
                    "trace_id": self._trace_id,
                    "tool": request.name,
                    "tool_call_id": request.id,
                    "latency_ms": result.latency_ms,
                    "ok": result.success,
                    "error": None if result.success else result.output.get("error"),
                }
            },
        )
        if self._trace is not None:
            self._trace.tool_call(result)
        return result, state_updates

    @staticmethod
    def _failure(request: ToolCallRequest, message: str) -> ToolCallResult:
        return ToolCallResult(
            tool_call_id=request.id,
            tool_name=request.name,
            success=False,
            output={"error": message},
        )
