"""Slack Web API adapter."""

from __future__ import annotations

from typing import Any

import httpx

from . import AdapterError


async def post_message(
    *,
    base_url: str,
    token: str | None,
    channel: str,
    text: str,
    thread_ts: str | None,
    timeout_s: float,
) -> dict[str, Any]:
    if not token:
        raise AdapterError("MISSING_CREDENTIALS", "Slack credentials not found. Please reconnect Slack.")

    body: dict[str, Any] = {"channel": channel, "text": text}
    if thread_ts:
        body["thread_ts"] = thread_ts

    try:
        async with httpx.AsyncClient(timeout=timeout_s) as client:
            resp = await client.post(
                f"{base_url}/chat.postMessage",
                json=body,
                headers={"Authorization": f"Bearer {token}"},
            )
    except httpx.RequestError as exc:
        raise AdapterError("UPSTREAM_UNAVAILABLE", str(exc)) from exc

    data = resp.json()
    # Slack reports failures with HTTP 200 and ok=false.
    if not data.get("ok"):
        raise AdapterError("UPSTREAM_ERROR", data.get("error", "Slack error"), {"status": resp.status_code})
    return data
