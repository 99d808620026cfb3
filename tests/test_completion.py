import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from relay_agent.completion import (
    CompletionError,
    ContentDelta,
    MockCompletionClient,
    OpenAICompletionClient,
    ToolCallAccumulator,
    ToolCallsDelta,
    build_completion_client,
    word_chunks,
)
from relay_agent.settings import AgentSettings

TOOLS = [{"type": "function", "function": {"name": "execute_code", "description": "", "parameters": {}}}]


def _fragment(index, call_id=None, name=None, arguments=None):
    return SimpleNamespace(index=index, id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


def _chunk(content=None, tool_calls=None):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content, tool_calls=tool_calls))])


class FakeStream:
    def __init__(self, chunks, fail_after=None):
        self._chunks = chunks
        self._fail_after = fail_after
        self.closed = False

    async def __aiter__(self):
        for position, chunk in enumerate(self._chunks):
            if self._fail_after is not None and position == self._fail_after:
                raise openai.APIConnectionError(request=httpx.Request("POST", "https://api.test/v1"))
            yield chunk

    async def close(self):
        self.closed = True


class FakeOpenAI:
    def __init__(self, result=None, error=None):
        self._result = result
        self._error = error
        self.params = None
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **params):
        self.params = params
        if self._error is not None:
            raise self._error
        return self._result


def test_accumulator_concatenates_fragments_per_index_in_arrival_order():
    acc = ToolCallAccumulator()
    acc.add(0, call_id="call_a", name="execute_code", arguments='{"code": "pri')
    acc.add(1, call_id="call_b", name="web_search", arguments='{"que')
    acc.add(0, arguments='nt(2+2)", ')
    acc.add(1, arguments='ry": "news"}')
    acc.add(0, arguments='"language": "python"}')

    first, second = acc.calls()
    assert (first.id, first.name) == ("call_a", "execute_code")
    assert json.loads(first.arguments) == {"code": "print(2+2)", "language": "python"}
    assert json.loads(second.arguments) == {"query": "news"}


def test_accumulator_keeps_partial_arguments_raw():
    acc = ToolCallAccumulator()
    acc.add(0, call_id="call_a", name="execute_code", arguments='{"code": "x')
    # Mid-stream the string is not valid JSON yet; it must stay unparsed.
    assert acc.calls()[0].arguments == '{"code": "x'
    with pytest.raises(json.JSONDecodeError):
        json.loads(acc.calls()[0].arguments)


@pytest.mark.asyncio
async def test_complete_returns_tool_calls_and_passes_tool_choice():
    message = SimpleNamespace(
        content="thinking out loud",
        tool_calls=[SimpleNamespace(id="call_1", function=SimpleNamespace(name="execute_code", arguments='{"code":"1"}'))],
    )
    fake = FakeOpenAI(result=SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason="tool_calls")]))
    client = OpenAICompletionClient(fake, model="gpt-test", max_tokens=100, timeout_s=5)

    response = await client.complete([{"role": "user", "content": "hi"}], TOOLS)

    assert [c.name for c in response.tool_calls] == ["execute_code"]
    assert response.tool_calls[0].arguments == '{"code":"1"}'
    assert fake.params["tool_choice"] == "auto"
    assert fake.params["timeout"] == 5
    assert fake.params["max_tokens"] == 100


@pytest.mark.asyncio
async def test_complete_without_tools_omits_tool_params():
    message = SimpleNamespace(content="4", tool_calls=None)
    fake = FakeOpenAI(result=SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason="stop")]))
    client = OpenAICompletionClient(fake, model="gpt-test")

    response = await client.complete([{"role": "user", "content": "2+2"}], None)

    assert response.content == "4"
    assert response.tool_calls == []
    assert "tools" not in fake.params
    assert "tool_choice" not in fake.params


@pytest.mark.asyncio
async def test_complete_translates_provider_errors():
    error = openai.APIConnectionError(request=httpx.Request("POST", "https://api.test/v1"))
    client = OpenAICompletionClient(FakeOpenAI(error=error), model="gpt-test")
    with pytest.raises(CompletionError) as excinfo:
        await client.complete([], None)
    assert excinfo.value.code == "connection_error"
    assert excinfo.value.retryable is True


@pytest.mark.asyncio
async def test_stream_forwards_content_and_emits_tool_calls_at_end():
    stream = FakeStream(
        [
            _chunk(content="Let me "),
            _chunk(content="check."),
            _chunk(tool_calls=[_fragment(0, "call_1", "execute_code", '{"code": ')]),
            _chunk(tool_calls=[_fragment(0, arguments='"print(4)"}')]),
            SimpleNamespace(choices=[]),
        ]
    )
    client = OpenAICompletionClient(FakeOpenAI(result=stream), model="gpt-test")

    deltas = [d async for d in client.stream([{"role": "user", "content": "hi"}], TOOLS)]

    assert deltas[:2] == [ContentDelta(text="Let me "), ContentDelta(text="check.")]
    assert isinstance(deltas[2], ToolCallsDelta)
    assert json.loads(deltas[2].calls[0].arguments) == {"code": "print(4)"}
    assert len(deltas) == 3
    assert stream.closed is True


@pytest.mark.asyncio
async def test_stream_closes_provider_stream_on_early_exit():
    stream = FakeStream([_chunk(content="a"), _chunk(content="b")])
    client = OpenAICompletionClient(FakeOpenAI(result=stream), model="gpt-test")
    gen = client.stream([], None)
    assert await gen.__anext__() == ContentDelta(text="a")
    await gen.aclose()
    assert stream.closed is True


@pytest.mark.asyncio
async def test_stream_translates_midstream_errors():
    stream = FakeStream([_chunk(content="a"), _chunk(content="b")], fail_after=1)
    client = OpenAICompletionClient(FakeOpenAI(result=stream), model="gpt-test")
    received = []
    with pytest.raises(CompletionError):
        async for delta in client.stream([], None):
            received.append(delta)
    assert received == [ContentDelta(text="a")]
    assert stream.closed is True


@pytest.mark.asyncio
async def test_mock_client_calls_time_tool_then_summarizes():
    client = MockCompletionClient()
    tools = [{"type": "function", "function": {"name": "get_current_time"}}]
    first = await client.complete([{"role": "user", "content": "What time is it?"}], tools)
    assert [c.name for c in first.tool_calls] == ["get_current_time"]

    second = await client.complete([{"role": "tool", "content": '{"iso": "x"}'}], tools)
    assert second.content.startswith("Here is what I found")


@pytest.mark.asyncio
async def test_mock_client_streams_words():
    client = MockCompletionClient()
    deltas = [d async for d in client.stream([{"role": "user", "content": "hello there"}], None)]
    assert "".join(d.text for d in deltas) == "(offline mode) I received your message: hello there"


@pytest.mark.asyncio
async def test_mock_client_keeps_no_per_request_state():
    client = MockCompletionClient()
    tools = [{"type": "function", "function": {"name": "get_current_time"}}]
    messages = [{"role": "user", "content": "what is the date today"}]
    first = await client.complete(messages, tools)
    second = await client.complete(messages, tools)
    assert first.tool_calls[0].id != second.tool_calls[0].id
    assert vars(client) == {}


@pytest.mark.parametrize("content", ["  leading space", "a  b\n\nc  ", "   ", "", "single"])
def test_word_chunks_concatenate_back_to_original(content):
    assert "".join(word_chunks(content)) == content


@pytest.mark.asyncio
async def test_mock_stream_matches_complete():
    client = MockCompletionClient()
    messages = [{"role": "user", "content": "  spaced\tout   words  "}]
    buffered = await client.complete(messages, None)
    streamed = "".join([d.text async for d in client.stream(messages, None)])
    assert streamed == buffered.content


def test_build_completion_client_uses_mock_without_key():
    settings = AgentSettings(_env_file=None, OPENAI_API_KEY=None)
    assert isinstance(build_completion_client(settings), MockCompletionClient)


def test_build_completion_client_uses_openai_with_key():
    settings = AgentSettings(_env_file=None, OPENAI_API_KEY="sk-test", mock_llm=False, openai_model="gpt-x")
    client = build_completion_client(settings)
    assert isinstance(client, OpenAICompletionClient)
    assert client.model == "gpt-x"
