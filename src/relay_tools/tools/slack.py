"""Slack messaging tool (requires a connected Slack integration)."""

from __future__ import annotations

from typing import Any

from ..adapters import AdapterError
from ..adapters.slack import post_message
from ..schemas import SlackMessageInput, ToolContext, ToolOutput
from ..settings import ToolSettings


async def send_slack_message(
    payload: SlackMessageInput, context: ToolContext, *, settings: ToolSettings
) -> ToolOutput:
    integration = context.integration("slack")
    if integration is None:
        raise AdapterError("INTEGRATION_NOT_CONNECTED", "Slack not connected. Please connect Slack first.")

    data: dict[str, Any] = await post_message(
        base_url=settings.slack_base_url,
        token=integration.get("access_token"),
        channel=payload.channel,
        text=payload.message,
        thread_ts=payload.thread_ts,
        timeout_s=settings.request_timeout_s,
    )
    return ToolOutput(
        result={
            "success": True,
            "channel": data.get("channel"),
            "timestamp": data.get("ts"),
            "message": payload.message,
        },
        state_updates={"last_slack_message": {"channel": data.get("channel"), "ts": data.get("ts")}},
    )
