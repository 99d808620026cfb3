"""Per-request trace capture.

A ``TraceRecorder`` follows one chat request: every completion call, every
tool call and the final answer. With ``trace_enabled`` the record is dumped
as JSON for replay.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from .state import ToolCallResult, TraceRecord


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def summarize_messages(messages: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    # Roles and sizes only; message bodies can hold user data.
    return [{"role": m.get("role"), "content_len": len(str(m.get("content") or ""))} for m in messages]


class TraceRecorder:
    def __init__(self, trace_id: str, **request: Any) -> None:
        self.record = TraceRecord(trace_id=trace_id, started_at=now_utc_iso(), request=dict(request))
        self._t0 = time.monotonic()

    @property
    def trace_id(self) -> str:
        return self.record.trace_id

    def llm_call(
        self,
        *,
        iteration: int,
        model: str,
        tool_calls: Sequence[str],
        messages: Sequence[dict[str, Any]],
        streamed: bool,
        error: str | None = None,
    ) -> None:
        self.record.llm.append(
            {
                "iteration": iteration,
                "model": model,
                "streamed": streamed,
                "messages_summary": summarize_messages(messages),
                "tool_calls": list(tool_calls),
                "error": error,
            }
        )

    def tool_call(self, result: ToolCallResult) -> None:
        self.record.tools.append(
            {
                "tool_name": result.tool_name,
                "tool_call_id": result.tool_call_id,
                "status": "ok" if result.success else "error",
                "latency_ms": result.latency_ms,
                "output": result.output,
            }
        )

    def close(self, answer_text: str, execution_log: list[dict[str, Any]]) -> TraceRecord:
        self.record.final = {"answer_text": answer_text, "execution_log": execution_log}
        self.record.finished_at = now_utc_iso()
        self.record.latency_ms = int((time.monotonic() - self._t0) * 1000)
        return self.record

    def dump(self, trace_dir: str | Path) -> Path:
        directory = Path(trace_dir)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{self.record.started_at.replace(':', '-')}_{self.trace_id}.json"
        path.write_text(json.dumps(asdict(self.record), ensure_ascii=False, indent=2, default=str), encoding="utf-8")
        return path
