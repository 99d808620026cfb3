"""Prompt templates for the agent loop.

Keep prompts here so agent logic remains clean and testable.
"""

from __future__ import annotations

from typing import Any, Sequence

DEFAULT_PERSONA = "You are {name}, a helpful AI assistant."

TOOL_DIRECTIVES = (
    "IMPORTANT: You MUST use the available tools to help users. "
    "Do not say you cannot do something if a tool exists for it.\n"
    "RULES:\n"
    "1. Prefer taking action with a tool over refusing or asking the user to do it.\n"
    "2. For calculations or data work, call execute_code and run the code instead of describing it.\n"
    "3. For current information, call web_search; to read a specific page, call fetch_url.\n"
    "4. When a user mentions an uploaded file, call the matching file tool with its file ID.\n"
    "5. NEVER say \"I don't have access\" when a tool covers the request.\n"
    "6. After using a tool, explain the results."
)

NO_TOOLS_NOTE = "No tools are available for this conversation; answer from your own knowledge."

ERROR_RESPONSE = "I encountered an error while processing your request: {error}. Please try again."

MAX_ITERATIONS_RESPONSE = (
    "I completed the requested actions but exceeded the maximum number of steps. "
    "Here's what I accomplished:\n\n"
)


def build_system_prompt(name: str, custom_prompt: str | None, definitions: Sequence[dict[str, Any]]) -> str:
    """Persona (or custom prompt) + capability listing + directives."""
    base = custom_prompt or DEFAULT_PERSONA.format(name=name or "Relay")
    if not definitions:
        return f"{base}\n\n{NO_TOOLS_NOTE}"
    lines = [
        f"- {d['function']['name']}: {d['function'].get('description', '')}".rstrip()
        for d in definitions
    ]
    capabilities = "Available tools:\n" + "\n".join(lines)
    return f"{base}\n\n{capabilities}\n\n{TOOL_DIRECTIVES}"
