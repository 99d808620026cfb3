"""Built-in tool configuration."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(ENV_FILE, override=False)


class ToolSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="RELAY_", env_file=str(ENV_FILE), extra="ignore")

    request_timeout_s: float = 15.0
    code_timeout_s: float = 30.0
    max_output_chars: int = 100_000
    max_page_chars: int = 10_000
    default_timezone: str = "UTC"

    search_base_url: str = "https://api.duckduckgo.com/"
    slack_base_url: str = "https://slack.com/api"
    user_agent: str = "Mozilla/5.0 (compatible; RelayBot/1.0)"


@lru_cache(maxsize=1)
def get_settings() -> ToolSettings:
    return ToolSettings()
