"""Time tool (no external dependency)."""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..schemas import TimeInput, TimeOutput, ToolContext
from ..settings import ToolSettings


async def get_current_time(payload: TimeInput, context: ToolContext, *, settings: ToolSettings) -> TimeOutput:
    # Input wins, then the caller's timezone, then the configured default.
    tz_name = payload.timezone or context.request_context.get("timezone") or settings.default_timezone
    if tz_name.upper() == "UTC":
        tz = timezone.utc
    else:
        try:
            tz = ZoneInfo(tz_name)
        except ZoneInfoNotFoundError as exc:
            raise ValueError(f"Unknown timezone: {tz_name}") from exc
    now = datetime.now(tz)
    return TimeOutput(
        timezone=tz_name,
        iso=now.isoformat(),
        epoch_seconds=int(now.timestamp()),
    )
