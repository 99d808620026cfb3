import asyncio

import pytest

from conftest import tool_call
from relay_agent.trace import TraceRecorder
from relay_agent.tool_broker import ToolBroker, ToolExecutionError, parse_arguments
from relay_tools.registry import ToolRegistry
from relay_tools.schemas import ToolContext, ToolSpec

CONTEXT = ToolContext(user_id="u1")


def test_parse_arguments_accepts_objects_and_empty():
    assert parse_arguments('{"a": 1}') == {"a": 1}
    assert parse_arguments("") == {}
    assert parse_arguments(None) == {}


@pytest.mark.parametrize("raw", ['{"code": "print(', "[1, 2]"])
def test_parse_arguments_rejects_bad_payloads(raw):
    with pytest.raises(ToolExecutionError):
        parse_arguments(raw)


@pytest.mark.asyncio
async def test_successful_call_returns_result_and_state_updates(registry):
    broker = ToolBroker(registry, default_timeout_s=5)
    result, updates = await broker.call_tool(tool_call("remember", '{"k": "v"}'), CONTEXT)
    assert result.success is True
    assert result.tool_call_id == "call_remember"
    assert result.output == {"seen": {}}
    assert updates == {"k": "v"}
    assert result.latency_ms is not None


@pytest.mark.asyncio
async def test_malformed_json_is_a_failed_call_and_handler_is_not_invoked(registry, tool_log):
    broker = ToolBroker(registry, default_timeout_s=5)
    result, updates = await broker.call_tool(tool_call("echo", '{"broken'), CONTEXT)
    assert result.success is False
    assert "Invalid JSON arguments" in result.output["error"]
    assert updates is None
    assert tool_log.calls == []


@pytest.mark.asyncio
async def test_unknown_tool_is_a_failed_call(registry):
    broker = ToolBroker(registry, default_timeout_s=5)
    result, _ = await broker.call_tool(tool_call("does_not_exist"), CONTEXT)
    assert result.success is False
    assert result.output == {"error": "Unknown tool: does_not_exist"}


@pytest.mark.asyncio
async def test_handler_exception_is_captured(registry):
    broker = ToolBroker(registry, default_timeout_s=5)
    result, _ = await broker.call_tool(tool_call("boom"), CONTEXT)
    assert result.success is False
    assert result.output == {"error": "integration not connected"}


@pytest.mark.asyncio
async def test_per_tool_timeout_is_a_failed_call(registry):
    broker = ToolBroker(registry, default_timeout_s=5)
    result, _ = await broker.call_tool(tool_call("slow", '{"seconds": 2}'), CONTEXT)
    assert result.success is False
    assert "timed out" in result.output["error"]


@pytest.mark.asyncio
async def test_calls_are_recorded_on_trace(registry):
    trace = TraceRecorder("t1")
    broker = ToolBroker(registry, default_timeout_s=5, trace_id="t1", trace=trace)
    await broker.call_tool(tool_call("echo", '{"x": 1}'), CONTEXT)
    await broker.call_tool(tool_call("boom"), CONTEXT)
    assert [(t["tool_name"], t["status"]) for t in trace.record.tools] == [("echo", "ok"), ("boom", "error")]


@pytest.mark.asyncio
async def test_timed_out_call_is_stopped_before_its_side_effect():
    registry = ToolRegistry()
    sent: list[str] = []

    async def send(payload, context):
        await asyncio.sleep(0.3)
        sent.append("sent")

    registry.register(ToolSpec(name="send", description="", timeout_s=0.05), send)
    broker = ToolBroker(registry, default_timeout_s=5)

    result, _ = await broker.call_tool(tool_call("send"), CONTEXT)
    await asyncio.sleep(0.4)

    assert result.output == {"error": "Tool send timed out after 0.05s"}
    assert sent == []
