"""Tool declarations and argument models (single source of truth).

The registry derives model-facing schemas from these models and validates
incoming arguments against them before dispatch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal

from pydantic import BaseModel, Field


class ToolOutput(BaseModel):
    """Normalized handler return value."""
    result: Any = None
    state_updates: dict[str, Any] | None = None


@dataclass(frozen=True)
class ToolContext:
    """Request-scoped values handed to every tool handler."""
    user_id: str
    integrations: tuple[dict[str, Any], ...] = ()
    state: dict[str, Any] = field(default_factory=dict)
    request_context: dict[str, Any] = field(default_factory=dict)

    def integration(self, integration_type: str) -> dict[str, Any] | None:
        for item in self.integrations:
            if item.get("integration_type") == integration_type:
                return item
        return None


ToolHandler = Callable[[Any, ToolContext], Awaitable[Any]]


@dataclass(frozen=True)
class ToolSpec:
    """Registry metadata for one tool.

    Either ``input_model`` or ``parameters`` describes the arguments. With a
    model, arguments are validated and the handler receives the model instance;
    with a raw ``parameters`` schema the handler receives the parsed dict.
    """
    name: str
    description: str
    input_model: type[BaseModel] | None = None
    parameters: dict[str, Any] | None = None
    requires_integration: tuple[str, ...] = ()
    timeout_s: float | None = None

    def parameters_schema(self) -> dict[str, Any]:
        if self.input_model is not None:
            return self.input_model.model_json_schema()
        return self.parameters or {"type": "object", "properties": {}}

    def definition(self) -> dict[str, Any]:
        """Function-calling declaration in OpenAI tool format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema(),
            },
        }


class TimeInput(BaseModel):
    """Input for time tool."""
    timezone: str | None = Field(default=None, description="IANA timezone string, e.g. Europe/Paris")


class TimeOutput(BaseModel):
    """Output for time tool."""
    timezone: str
    iso: str
    epoch_seconds: int


class ExecuteCodeInput(BaseModel):
    """Input for code execution."""
    code: str = Field(..., description="The code to execute. Print anything you want returned.")
    language: Literal["python", "javascript"] = Field(
        default="python", description="Programming language of the code"
    )


class ExecuteCodeOutput(BaseModel):
    language: str
    exit_code: int | None
    stdout: str
    stderr: str
    truncated: bool = False


class WebSearchInput(BaseModel):
    """Input for web search."""
    query: str = Field(..., min_length=1, description="Search query")
    num_results: int = Field(default=5, ge=1, le=20, description="Number of results to return")


class SearchHit(BaseModel):
    title: str
    snippet: str
    url: str | None = None
    source: str | None = None


class WebSearchOutput(BaseModel):
    query: str
    count: int
    results: list[SearchHit]


class FetchUrlInput(BaseModel):
    """Input for URL fetching."""
    url: str = Field(..., description="URL to fetch (http or https)")
    extract: Literal["text", "html", "json", "links"] = Field(
        default="text", description="What to extract from the page"
    )


class SlackMessageInput(BaseModel):
    """Input for Slack messaging."""
    channel: str = Field(..., description="Channel id or name, e.g. #general")
    message: str = Field(..., min_length=1, description="Message text")
    thread_ts: str | None = Field(default=None, description="Reply inside this thread")
