"""
Model client tests — retry semantics of chat_completion, tool-argument
parsing, message conversion and streamed tool-call assembly with a fake SDK.
"""

from types import SimpleNamespace

import pytest

from codeloop_agent.core.models import ToolSchema
from codeloop_agent.core.providers.base import ClientFactory, parse_tool_arguments
from codeloop_agent.core.providers.openai_provider import OpenAIClient
from codeloop_agent.core.retry import RetryExecutor, RetryPolicy, retry_async
from codeloop_agent.core.stream_events import (
    MessageComplete,
    StreamError,
    TextDelta,
    ToolCallComplete,
    ToolCallStart,
    is_terminal,
)

from agent_helpers import NO_WAIT_RETRY, ScriptedClient, run, text_turn


def _drain(client, messages=None, tools=None, stream=True):
    async def _collect():
        return [e async for e in client.chat_completion(messages or [], tools, stream=stream)]
    return run(_collect())


NEUTRAL_HISTORY = [
    {"role": "system", "content": "sys"},
    {"role": "user", "content": "list files"},
    {"role": "assistant", "content": "Looking.", "tool_calls": [
        {"id": "call_1", "name": "list_dir", "arguments": {"path": "."}},
        {"id": "call_2", "name": "glob", "arguments": {"pattern": "*.py"}},
    ]},
    {"role": "tool", "tool_call_id": "call_1", "content": "a.py"},
    {"role": "tool", "tool_call_id": "call_2", "content": "a.py"},
    {"role": "assistant", "content": "One file."},
]


# ══════════════════════════════════════════════════════════════════
# 1. Argument parsing
# ══════════════════════════════════════════════════════════════════

class TestParseToolArguments:

    def test_valid_json(self):
        assert parse_tool_arguments('{"path": "a.txt"}') == {"path": "a.txt"}

    def test_empty(self):
        assert parse_tool_arguments("") == {}
        assert parse_tool_arguments(None) == {}

    def test_invalid_json_kept_raw(self):
        assert parse_tool_arguments('{"path": ') == {"raw_arguments": '{"path": '}

    def test_non_object_kept_raw(self):
        assert parse_tool_arguments("[1, 2]") == {"raw_arguments": "[1, 2]"}


# ══════════════════════════════════════════════════════════════════
# 2. Retry semantics
# ══════════════════════════════════════════════════════════════════

class TestChatCompletionRetry:

    def test_success_passes_events_through(self):
        events = _drain(ScriptedClient(turns=[text_turn("hi")]))
        assert isinstance(events[0], TextDelta)
        assert isinstance(events[-1], MessageComplete)
        assert sum(1 for e in events if is_terminal(e)) == 1

    def test_transient_error_then_success(self):
        client = ScriptedClient(turns=[[OSError("reset")], [TimeoutError()], text_turn("ok")])
        events = _drain(client)
        assert [e.content for e in events if isinstance(e, TextDelta)] == ["ok"]
        assert len(client.requests) == 3

    def test_retries_exhausted(self):
        client = ScriptedClient(turns=[[ConnectionError("down")]] * 4)
        events = _drain(client)
        assert len(events) == 1
        assert isinstance(events[0], StreamError)
        assert events[0].message == "down"
        assert len(client.requests) == 4

    def test_non_retryable_error(self):
        client = ScriptedClient(turns=[[ValueError("bad request")], text_turn("never")])
        events = _drain(client)
        assert events == [StreamError(message="bad request")]
        assert len(client.requests) == 1

    def test_error_without_message_uses_class_name(self):
        events = _drain(ScriptedClient(turns=[[KeyError()]]))
        assert events[0].message == "KeyError"

    def test_non_streamed_request(self):
        done = MessageComplete(text="full text")
        events = _drain(ScriptedClient(completions=[done]), stream=False)
        assert events == [done]


class TestRetryExecutor:

    def test_delays_double(self):
        executor = RetryExecutor(RetryPolicy(backoff_base=1.0))
        assert [executor.calculate_delay(a) for a in range(3)] == [1.0, 2.0, 4.0]

    def test_delay_capped(self):
        executor = RetryExecutor(RetryPolicy(backoff_base=10.0, backoff_max=15.0))
        assert executor.calculate_delay(3) == 15.0

    def test_should_retry(self):
        executor = RetryExecutor(RetryPolicy(max_retries=2))
        assert executor.should_retry(ConnectionError(), 0)
        assert not executor.should_retry(ConnectionError(), 2)
        assert not executor.should_retry(ValueError(), 0)

    def test_retry_async_raises_last_error(self):
        attempts = []

        async def flaky():
            attempts.append(1)
            raise ConnectionError(f"attempt {len(attempts)}")

        with pytest.raises(ConnectionError, match="attempt 4"):
            run(retry_async(flaky, policy=NO_WAIT_RETRY))

    def test_retry_async_success(self):
        calls = []

        async def eventually():
            calls.append(1)
            if len(calls) < 2:
                raise TimeoutError()
            return "ok"

        assert run(retry_async(eventually, policy=NO_WAIT_RETRY)) == "ok"


# ══════════════════════════════════════════════════════════════════
# 3. OpenAI client
# ══════════════════════════════════════════════════════════════════

def _chunk(content=None, tool_calls=None, finish_reason=None, usage=None):
    choices = []
    if content is not None or tool_calls is not None or finish_reason is not None:
        delta = SimpleNamespace(content=content, tool_calls=tool_calls)
        choices = [SimpleNamespace(delta=delta, finish_reason=finish_reason)]
    return SimpleNamespace(choices=choices, usage=usage)


def _tc(index, id=None, name=None, arguments=None):
    return SimpleNamespace(index=index, id=id, function=SimpleNamespace(name=name, arguments=arguments))


class _FakeCompletions:

    def __init__(self, chunks):
        self.chunks = chunks
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs

        async def _gen():
            for chunk in self.chunks:
                yield chunk
        return _gen()


class TestOpenAIClient:

    def test_convert_messages(self):
        converted = OpenAIClient._convert_messages(NEUTRAL_HISTORY)
        assert converted[0] == {"role": "system", "content": "sys"}
        assistant = converted[2]
        assert assistant["tool_calls"][0] == {
            "id": "call_1", "type": "function",
            "function": {"name": "list_dir", "arguments": '{"path": "."}'},
        }
        assert converted[3] == {"role": "tool", "tool_call_id": "call_1", "content": "a.py"}
        assert converted[-1] == {"role": "assistant", "content": "One file."}

    def test_payload_includes_tools(self):
        client = OpenAIClient(model="gpt-test", api_key="sk-test")
        schema = ToolSchema("echo", "Echo", {"type": "object", "properties": {}})
        payload = client._payload([{"role": "user", "content": "hi"}], [schema])
        assert payload["model"] == "gpt-test"
        assert payload["tool_choice"] == "auto"
        assert payload["tools"][0]["function"]["name"] == "echo"
        assert "tools" not in client._payload([{"role": "user", "content": "hi"}], None)

    def test_stream_assembles_tool_calls(self):
        usage = SimpleNamespace(prompt_tokens=40, completion_tokens=10, total_tokens=50,
                                prompt_tokens_details=None)
        chunks = [
            _chunk(content="Let me look."),
            _chunk(tool_calls=[_tc(0, id="call_a", name="read_file", arguments='{"pa')]),
            _chunk(tool_calls=[_tc(0, arguments='th": "x.py"}')]),
            _chunk(tool_calls=[_tc(1, id="call_b", name="glob", arguments='{"pattern": "*"}')]),
            _chunk(finish_reason="tool_calls"),
            _chunk(usage=usage),
        ]
        completions = _FakeCompletions(chunks)
        client = OpenAIClient(model="gpt-test", api_key="sk-test", retry_policy=NO_WAIT_RETRY)
        client._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))

        events = _drain(client, [{"role": "user", "content": "hi"}])

        assert completions.kwargs["stream"] is True
        assert events[0] == TextDelta("Let me look.")
        starts = [e for e in events if isinstance(e, ToolCallStart)]
        assert [(s.call_id, s.name) for s in starts] == [("call_a", "read_file"), ("call_b", "glob")]
        calls = [e.tool_call for e in events if isinstance(e, ToolCallComplete)]
        assert [(c.call_id, c.name, c.arguments) for c in calls] == [
            ("call_a", "read_file", {"path": "x.py"}),
            ("call_b", "glob", {"pattern": "*"}),
        ]
        final = events[-1]
        assert isinstance(final, MessageComplete)
        assert final.finish_reason == "tool_calls"
        assert final.usage.total_tokens == 50

    def test_repr_masks_key(self):
        client = OpenAIClient(model="gpt-test", api_key="sk-abcdef123456")
        assert "sk-abcdef" not in repr(client)
        assert "3456" in repr(client)


# ══════════════════════════════════════════════════════════════════
# 4. Anthropic client
# ══════════════════════════════════════════════════════════════════

class TestAnthropicClient:

    def test_convert_messages(self):
        pytest.importorskip("anthropic")
        from codeloop_agent.core.providers.anthropic_provider import AnthropicClient

        system, converted = AnthropicClient._convert_messages(NEUTRAL_HISTORY)
        assert system == "sys"
        assert [m["role"] for m in converted] == ["user", "assistant", "user", "assistant"]
        assistant = converted[1]["content"]
        assert assistant[0] == {"type": "text", "text": "Looking."}
        assert assistant[1] == {"type": "tool_use", "id": "call_1", "name": "list_dir", "input": {"path": "."}}
        tool_results = converted[2]["content"]
        assert [b["tool_use_id"] for b in tool_results] == ["call_1", "call_2"]

    def test_payload_system_outside_messages(self):
        pytest.importorskip("anthropic")
        from codeloop_agent.core.providers.anthropic_provider import AnthropicClient

        client = AnthropicClient(model="claude-test", api_key="sk-test")
        payload = client._payload(NEUTRAL_HISTORY[:2], None)
        assert payload["system"] == "sys"
        assert payload["messages"] == [{"role": "user", "content": "list files"}]


# ══════════════════════════════════════════════════════════════════
# 5. Factory
# ══════════════════════════════════════════════════════════════════

class TestClientFactory:

    def test_unknown_provider(self, config):
        config.provider = "mystery"
        with pytest.raises(ValueError, match="Unknown provider"):
            ClientFactory.create(config)

    def test_openai_compatible_base_url(self, config):
        config.provider = "groq"
        client = ClientFactory.create(config)
        assert isinstance(client, OpenAIClient)
        assert client.base_url == "https://api.groq.com/openai/v1"
