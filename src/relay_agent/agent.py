"""Agent execution loop.

One ``AgentExecutor`` per request. The loop alternates completion calls and
tool execution until the model answers without tool calls or the iteration
ceiling is reached:

    AWAITING_COMPLETION -> (TOOL_CALLS_RECEIVED -> EXECUTING_TOOLS
    -> AWAITING_COMPLETION)* -> DONE

Failures inside the loop never escape ``run``/``run_streaming``: a failed
completion ends the run with an apology (or an ``error`` event), a failed
tool call becomes a ``success=False`` result fed back to the model.
Cancellation is not intercepted, so a dropped client connection stops the
in-flight completion or tool call.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Sequence

from pydantic import BaseModel

from relay_tools.registry import ToolRegistry
from relay_tools.schemas import ToolContext
from .completion import CompletionClient, ContentDelta, ToolCallsDelta
from .events import (
    CompleteEvent,
    ContentEvent,
    ErrorEvent,
    MaxIterationsEvent,
    ToolResultEvent,
    ToolStartEvent,
)
from .logging import get_logger
from .prompts import ERROR_RESPONSE, MAX_ITERATIONS_RESPONSE, build_system_prompt
from .state import (
    AgentConfig,
    ConversationTurn,
    ExecutionLogEntry,
    RunResult,
    ToolCallRequest,
    ToolCallResult,
)
from .tool_broker import ToolBroker
from .trace import TraceRecorder

logger = get_logger("agent")

DEFAULT_MAX_ITERATIONS = 10


class AgentExecutor:
    def __init__(
        self,
        config: AgentConfig,
        registry: ToolRegistry,
        completion: CompletionClient,
        *,
        integrations: Sequence[dict[str, Any]] = (),
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        tool_timeout_s: float = 30.0,
        trace_id: str | None = None,
        trace: TraceRecorder | None = None,
    ) -> None:
        self.config = config
        self._registry = registry
        self._completion = completion
        self._integrations = tuple(integrations)
        self.max_iterations = max_iterations
        self._trace_id = trace_id
        self._trace = trace
        self._broker = ToolBroker(registry, default_timeout_s=tool_timeout_s, trace_id=trace_id, trace=trace)

        self.state: dict[str, Any] = {}
        self.execution_log: list[ExecutionLogEntry] = []
        self.messages: list[dict[str, Any]] = []

    # -- setup -------------------------------------------------------------

    def connected_integrations(self) -> set[str]:
        # Only the type is read; credential fields stay opaque to the loop.
        return {str(item.get("integration_type")) for item in self._integrations if item.get("integration_type")}

    def tool_definitions(self) -> list[dict[str, Any]]:
        return self._registry.get_definitions(self.config.enabled_tools, self.connected_integrations())

    def build_system_prompt(self, definitions: Sequence[dict[str, Any]]) -> str:
        return build_system_prompt(self.config.name, self.config.system_prompt, definitions)

    def _start(self, history: Sequence[ConversationTurn], user_message: str) -> list[dict[str, Any]]:
        # Prompt and tool list are rebuilt on every run: availability differs per agent/request.
        definitions = self.tool_definitions()
        self.state = {}
        self.execution_log = []
        self.messages = [
            {"role": "system", "content": self.build_system_prompt(definitions)},
            *(turn.to_message() for turn in history),
            {"role": "user", "content": user_message},
        ]
        return definitions

    # -- tools -------------------------------------------------------------

    def _tool_context(self, user_id: str, request_context: dict[str, Any]) -> ToolContext:
        return ToolContext(
            user_id=user_id,
            integrations=self._integrations,
            state=dict(self.state),
            request_context=request_context,
        )

    async def _execute_one(
        self, call: ToolCallRequest, user_id: str, request_context: dict[str, Any]
    ) -> ToolCallResult:
        result, updates = await self._broker.call_tool(call, self._tool_context(user_id, request_context))
        if updates:
            # Merged before the next call runs so later calls in the batch see it.
            self.state = {**self.state, **updates}
        return result

    async def execute_tool_calls(
        self,
        calls: Sequence[ToolCallRequest],
        user_id: str,
        request_context: dict[str, Any] | None = None,
    ) -> list[ToolCallResult]:
        """Execute a batch sequentially, in request order. Never raises for tool failures."""
        request_context = request_context or {}
        return [await self._execute_one(call, user_id, request_context) for call in calls]

    # -- bookkeeping -------------------------------------------------------

    def _append_assistant_turn(self, content: str | None, calls: Sequence[ToolCallRequest]) -> None:
        message: dict[str, Any] = {"role": "assistant", "content": content or ""}
        if calls:
            message["tool_calls"] = [call.to_openai() for call in calls]
        self.messages.append(message)

    def _log_iteration(self, iteration: int, calls: Sequence[ToolCallRequest], results: Sequence[ToolCallResult]) -> None:
        self.execution_log.append(
            ExecutionLogEntry(
                iteration=iteration,
                tool_calls=[call.name for call in calls],
                results=[{"tool": r.tool_name, "success": r.success} for r in results],
            )
        )

    def _record_llm(self, iteration: int, calls: Sequence[ToolCallRequest], streamed: bool, error: str | None = None) -> None:
        model = getattr(self._completion, "model", "unknown")
        if error is None:
            logger.info(
                "llm_call",
                extra={
                    "extra": {
                        "trace_id": self._trace_id,
                        "iteration": iteration,
                        "model": model,
                        "streamed": streamed,
                        "tool_calls": [call.name for call in calls],
                    }
                },
            )
        if self._trace is None:
            return
        self._trace.llm_call(
            iteration=iteration,
            model=model,
            tool_calls=[call.name for call in calls],
            messages=self.messages,
            streamed=streamed,
            error=error,
        )

    def _completion_failed(self, iteration: int, exc: Exception, streamed: bool) -> str:
        message = str(exc) or type(exc).__name__
        logger.info(
            "llm_error",
            extra={"extra": {"trace_id": self._trace_id, "iteration": iteration, "error": message}},
        )
        self._record_llm(iteration, [], streamed, error=message)
        self.execution_log.append(ExecutionLogEntry(iteration=iteration, error=message))
        return message

    def _final_content(self, iteration: int, content: str | None) -> str:
        if not content:
            logger.warning("empty_completion", extra={"extra": {"trace_id": self._trace_id, "iteration": iteration}})
        return content or ""

    def summarize_log(self) -> str:
        lines = []
        for entry in self.execution_log:
            if entry.tool_calls:
                lines.append(f"- Executed: {', '.join(entry.tool_calls)}")
            else:
                lines.append(f"- Error: {entry.error}")
        return MAX_ITERATIONS_RESPONSE + "\n".join(lines)

    def content_size(self) -> int:
        return sum(len(message.get("content") or "") for message in self.messages)

    def _result(self, response: str, iterations: int) -> RunResult:
        logger.info(
            "run_complete",
            extra={
                "extra": {
                    "trace_id": self._trace_id,
                    "agent": self.config.name,
                    "iterations": iterations,
                    "tool_calls": sum(len(e.tool_calls) for e in self.execution_log),
                }
            },
        )
        return RunResult(
            response=response,
            execution_log=list(self.execution_log),
            state=dict(self.state),
            iterations=iterations,
            tokens_used=self.content_size(),
        )

    def _ceiling_reached(self) -> str:
        logger.warning(
            "max_iterations",
            extra={"extra": {"trace_id": self._trace_id, "max_iterations": self.max_iterations}},
        )
        return self.summarize_log()

    # -- entry points ------------------------------------------------------

    async def run(
        self,
        history: Sequence[ConversationTurn],
        user_message: str,
        user_id: str,
        context: dict[str, Any] | None = None,
    ) -> RunResult:
        """Buffered run: returns once the model answers or a limit is hit."""
        request_context = context or {}
        definitions = self._start(history, user_message)
        tools = definitions or None

        for iteration in range(1, self.max_iterations + 1):
            try:
                response = await self._completion.complete(self.messages, tools)
            except Exception as exc:  # noqa: BLE001
                message = self._completion_failed(iteration, exc, streamed=False)
                return self._result(ERROR_RESPONSE.format(error=message), iteration)

            # The model must see its own tool-call turn next round, so always append.
            self._append_assistant_turn(response.content, response.tool_calls)
            self._record_llm(iteration, response.tool_calls, streamed=False)

            if not response.tool_calls:
                return self._result(self._final_content(iteration, response.content), iteration)

            results = await self.execute_tool_calls(response.tool_calls, user_id, request_context)
            self.messages.extend(result.to_message() for result in results)
            self._log_iteration(iteration, response.tool_calls, results)

        return self._result(self._ceiling_reached(), self.max_iterations)

    async def run_streaming(
        self,
        history: Sequence[ConversationTurn],
        user_message: str,
        user_id: str,
        context: dict[str, Any] | None = None,
    ) -> AsyncIterator[BaseModel]:
        """Incremental run: yields events as they happen, ending with one terminal event."""
        request_context = context or {}
        definitions = self._start(history, user_message)
        tools = definitions or None

        for iteration in range(1, self.max_iterations + 1):
            parts: list[str] = []
            calls: list[ToolCallRequest] = []
            try:
                async for delta in self._completion.stream(self.messages, tools):
                    if isinstance(delta, ContentDelta):
                        parts.append(delta.text)
                        yield ContentEvent(content=delta.text)
                    elif isinstance(delta, ToolCallsDelta):
                        calls = list(delta.calls)
            except Exception as exc:  # noqa: BLE001
                message = self._completion_failed(iteration, exc, streamed=True)
                yield ErrorEvent(error=message)
                return

            content = "".join(parts)
            self._append_assistant_turn(content, calls)
            self._record_llm(iteration, calls, streamed=True)

            if not calls:
                final = self._result(self._final_content(iteration, content), iteration)
                yield CompleteEvent(response=final.response)
                return

            yield ToolStartEvent(tools=[call.name for call in calls])
            results: list[ToolCallResult] = []
            for call in calls:
                result = await self._execute_one(call, user_id, request_context)
                results.append(result)
                self.messages.append(result.to_message())
                yield ToolResultEvent(tool=result.tool_name, success=result.success, result=result.output)
            self._log_iteration(iteration, calls, results)

        summary = self._result(self._ceiling_reached(), self.max_iterations)
        yield MaxIterationsEvent(log=[entry.to_dict() for entry in summary.execution_log], response=summary.response)
