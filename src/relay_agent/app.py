"""FastAPI entry for the agent server."""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import StreamingResponse

from .handlers import ChatRequest, ChatResponse, get_runtime, handle_chat, stream_chat
from .logging import configure_logging, get_logger
from .settings import get_settings

app = FastAPI(title="Relay Agent Server", version="0.1.0")
logger = get_logger("server")


@app.on_event("startup")
def log_startup_config() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    runtime = get_runtime()
    logger.info(
        "server_config",
        extra={
            "extra": {
                "openai_model": settings.openai_model,
                "openai_key_set": bool(settings.openai_api_key),
                "mock_llm": settings.mock_llm,
                "completion_model": runtime.completion.model,
                "max_iterations": settings.max_iterations,
                "tools": [spec.name for spec in runtime.registry.list_tool_specs()],
            }
        },
    )


def _trace_id(request: Request) -> str:
    # Preserve incoming trace_id if provided, else generate one.
    return request.headers.get("x-trace-id") or str(uuid.uuid4())


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/v1/tools")
def list_tools() -> list[dict[str, Any]]:
    return get_runtime().registry.list_tools()


@app.post("/v1/chat", response_model=ChatResponse)
async def chat(payload: ChatRequest, request: Request) -> ChatResponse:
    return await handle_chat(payload, _trace_id(request))


@app.post("/v1/chat/stream")
async def chat_stream(payload: ChatRequest, request: Request) -> StreamingResponse:
    # Starlette cancels the generator when the client disconnects, which
    # propagates into the in-flight completion or tool call.
    return StreamingResponse(
        stream_chat(payload, _trace_id(request)),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
