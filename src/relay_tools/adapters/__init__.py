"""Upstream API adapters used by built-in tools."""

from __future__ import annotations

from typing import Any


class AdapterError(RuntimeError):
    """Normalized upstream failure (missing credentials, HTTP errors, bad payloads)."""

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"
