"""Name -> (spec, handler) registry shared by the executor and the HTTP layer."""

from __future__ import annotations

import inspect
from typing import Any, Iterable

from pydantic import BaseModel

from .schemas import ToolContext, ToolHandler, ToolOutput, ToolSpec

ALL_TOOLS = "all"


class UnknownToolError(LookupError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class ToolRegistry:
    def __init__(self) -> None:
        self._specs: dict[str, ToolSpec] = {}
        self._handlers: dict[str, ToolHandler] = {}

    def register(self, spec: ToolSpec, handler: ToolHandler) -> None:
        if spec.name in self._specs:
            raise ValueError(f"Tool already registered: {spec.name}")
        if not inspect.iscoroutinefunction(handler):
            # A timed-out call must stop; worker threads cannot be cancelled.
            raise TypeError(f"Tool handler for {spec.name} must be an async function")
        self._specs[spec.name] = spec
        self._handlers[spec.name] = handler

    def get_tool_spec(self, name: str) -> ToolSpec | None:
        return self._specs.get(name)

    def get_tool_handler(self, name: str) -> ToolHandler | None:
        return self._handlers.get(name)

    def list_tool_specs(self) -> list[ToolSpec]:
        return list(self._specs.values())

    def list_tools(self) -> list[dict[str, Any]]:
        return [
            {
                "name": spec.name,
                "description": spec.description,
                "requires_integration": list(spec.requires_integration) or False,
            }
            for spec in self._specs.values()
        ]

    def available_specs(
        self,
        enabled_tools: Iterable[str],
        connected_integrations: Iterable[str],
    ) -> list[ToolSpec]:
        """Specs that are enabled and whose integration requirement is met.

        Registration order is preserved.
        """
        enabled = set(enabled_tools)
        connected = set(connected_integrations)
        allow_all = ALL_TOOLS in enabled
        specs: list[ToolSpec] = []
        for spec in self._specs.values():
            if not allow_all and spec.name not in enabled:
                continue
            if spec.requires_integration and not connected.intersection(spec.requires_integration):
                continue
            specs.append(spec)
        return specs

    def get_definitions(
        self,
        enabled_tools: Iterable[str],
        connected_integrations: Iterable[str],
    ) -> list[dict[str, Any]]:
        return [spec.definition() for spec in self.available_specs(enabled_tools, connected_integrations)]

    async def execute(self, name: str, args: dict[str, Any], context: ToolContext) -> ToolOutput:
        """Validate ``args`` and dispatch to the handler.

        Handler errors (and argument validation errors) propagate to the caller.
        """
        spec = self._specs.get(name)
        handler = self._handlers.get(name)
        if spec is None or handler is None:
            raise UnknownToolError(name)

        payload: Any = args
        if spec.input_model is not None:
            payload = spec.input_model.model_validate(args)

        raw = await handler(payload, context)
        return _normalize_output(raw)


def _normalize_output(raw: Any) -> ToolOutput:
    if isinstance(raw, ToolOutput):
        return raw
    if isinstance(raw, BaseModel):
        return ToolOutput(result=raw.model_dump())
    if isinstance(raw, dict) and "result" in raw:
        updates = raw.get("state_updates")
        if updates is None:
            updates = raw.get("stateUpdates")
        return ToolOutput(result=raw["result"], state_updates=updates)
    return ToolOutput(result=raw)
