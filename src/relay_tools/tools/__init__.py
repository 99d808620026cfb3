"""Built-in tools and the default registry."""

from __future__ import annotations

from dataclasses import replace
from functools import partial

from ..registry import ToolRegistry
from ..schemas import (
    ExecuteCodeInput,
    FetchUrlInput,
    SlackMessageInput,
    TimeInput,
    ToolSpec,
    WebSearchInput,
)
from ..settings import ToolSettings, get_settings
from .code import execute_code
from .slack import send_slack_message
from .time import get_current_time
from .web import fetch_url, web_search

DEFAULT_TOOL_SPECS: list[ToolSpec] = [
    ToolSpec(
        name="execute_code",
        description=(
            "Execute Python or JavaScript code for data analysis, calculations, or generating "
            "visualizations. Returns the output of the code execution."
        ),
        input_model=ExecuteCodeInput,
    ),
    ToolSpec(
        name="web_search",
        description="Search the web for information.",
        input_model=WebSearchInput,
    ),
    ToolSpec(
        name="fetch_url",
        description="Fetch and parse content from a URL.",
        input_model=FetchUrlInput,
    ),
    ToolSpec(
        name="get_current_time",
        description="Get the current date and time for a timezone.",
        input_model=TimeInput,
    ),
    ToolSpec(
        name="send_slack_message",
        description="Send a message to a Slack channel.",
        input_model=SlackMessageInput,
        requires_integration=("slack",),
    ),
]

_HANDLERS = {
    "execute_code": execute_code,
    "web_search": web_search,
    "fetch_url": fetch_url,
    "get_current_time": get_current_time,
    "send_slack_message": send_slack_message,
}


def build_default_registry(settings: ToolSettings | None = None) -> ToolRegistry:
    settings = settings or get_settings()
    registry = ToolRegistry()
    for spec in DEFAULT_TOOL_SPECS:
        if spec.name == "execute_code":
            # The interpreter enforces its own wall clock; leave headroom for startup.
            spec = replace(spec, timeout_s=settings.code_timeout_s + 5)
        registry.register(spec, partial(_HANDLERS[spec.name], settings=settings))
    return registry
