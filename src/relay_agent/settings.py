"""Agent server configuration."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(ENV_FILE, override=False)


class AgentSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="RELAY_", env_file=str(ENV_FILE), extra="ignore")

    host: str = "0.0.0.0"
    port: int = 7002
    log_level: str = "INFO"

    openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_API_KEY", "RELAY_OPENAI_API_KEY"),
    )
    openai_base_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_BASE_URL", "RELAY_OPENAI_BASE_URL"),
    )
    openai_model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 4000
    openai_timeout_s: float = 60.0

    max_iterations: int = Field(default=10, ge=1)
    tool_timeout_s: float = 30.0
    default_tools: list[str] = [
        "execute_code",
        "web_search",
        "fetch_url",
        "get_current_time",
    ]
    history_limit: int = 20

    mock_llm: bool = False
    trace_enabled: bool = False
    trace_dir: str = "traces"


@lru_cache(maxsize=1)
def get_settings() -> AgentSettings:
    return AgentSettings()
