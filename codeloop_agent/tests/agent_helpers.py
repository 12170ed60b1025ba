"""
Test helpers — scripted model client, recording hooks and small builders
shared by the test modules.
"""

import asyncio
from typing import Optional

from codeloop_agent.config.settings import Config, ModelConfig
from codeloop_agent.core.approval import ApprovalPolicy
from codeloop_agent.core.hook_system import HookSystem
from codeloop_agent.core.models import TokenUsage, ToolCall, ToolInvocation
from codeloop_agent.core.providers.base import BaseModelClient
from codeloop_agent.core.retry import RetryPolicy
from codeloop_agent.core.stream_events import (
    MessageComplete,
    TextDelta,
    ToolCallComplete,
    ToolCallStart,
)
from codeloop_agent.tools.base import BaseTool

NO_WAIT_RETRY = RetryPolicy(max_retries=3, backoff_base=0.0)


def run(coro):
    """Run a coroutine to completion from a sync test."""
    return asyncio.run(coro)


def make_config(tmp_path, workspace, **overrides) -> Config:
    config = Config(
        provider="openai",
        model=ModelConfig(name="", context_window=100_000),
        cwd=str(workspace),
        data_dir=str(tmp_path / "data"),
        approval=ApprovalPolicy.YOLO,
        api_key="sk-test",
    )
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


def usage(total: int = 100) -> TokenUsage:
    return TokenUsage(prompt_tokens=total - 10, completion_tokens=10, total_tokens=total)


def text_turn(text: str, total_tokens: int = 100) -> list:
    return [TextDelta(text), MessageComplete(finish_reason="stop", usage=usage(total_tokens))]


def tool_turn(name: str, arguments: dict, call_id: Optional[str] = None, text: str = "") -> list:
    call = ToolCall(call_id or ToolCall.generate_id(), name, arguments)
    events = [TextDelta(text)] if text else []
    events += [
        ToolCallStart(call.call_id, call.name),
        ToolCallComplete(call),
        MessageComplete(finish_reason="tool_calls", usage=usage()),
    ]
    return events


class ScriptedClient(BaseModelClient):
    """
    Model client that replays scripted turns.

    ``turns`` is a list of event lists for streamed requests; an Exception in
    a list is raised at that point.  ``completions`` feeds non-streamed
    requests the same way.  Once the script runs out every request answers
    with plain text, or with ``repeat`` when set.
    """

    def __init__(self, turns=None, completions=None, repeat=None):
        super().__init__(model="scripted", retry_policy=NO_WAIT_RETRY)
        self.turns = list(turns or [])
        self.completions = list(completions or [])
        self.repeat = repeat
        self.requests: list[tuple[list[dict], Optional[list]]] = []
        self.closed = False

    async def _stream(self, messages, tools):
        self.requests.append((messages, tools))
        if self.turns:
            events = self.turns.pop(0)
        elif self.repeat is not None:
            events = self.repeat
        else:
            events = text_turn("Done.")
        for event in events:
            if isinstance(event, Exception):
                raise event
            yield event

    async def _complete(self, messages, tools):
        self.requests.append((messages, tools))
        item = self.completions.pop(0) if self.completions else MessageComplete(text="", usage=usage())
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        self.closed = True


class RecordingHooks(HookSystem):
    """HookSystem that records trigger calls instead of running commands."""

    def __init__(self):
        super().__init__()
        self.calls: list[tuple] = []

    async def trigger_before_agent(self, user_message):
        self.calls.append(("before_agent", user_message))

    async def trigger_after_agent(self, user_message, response):
        self.calls.append(("after_agent", user_message, response))

    async def trigger_before_tool(self, tool_name, params):
        self.calls.append(("before_tool", tool_name))

    async def trigger_after_tool(self, tool_name, params, result):
        self.calls.append(("after_tool", tool_name, result))

    async def trigger_on_error(self, error):
        self.calls.append(("on_error", str(error)))

    def named(self, trigger: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == trigger]


class EchoTool(BaseTool):
    """Read-only tool that echoes its ``text`` parameter."""

    name = "echo"
    description = "Echo text back"
    input_schema = {
        "type": "object",
        "properties": {"text": {"type": "string"}},
        "required": ["text"],
    }

    def __init__(self, config=None):
        super().__init__(config)
        self.calls = 0

    async def execute(self, invocation: ToolInvocation):
        self.calls += 1
        return self._success(f"echo: {invocation.params['text']}")


class ExplodingTool(BaseTool):
    name = "explode"
    description = "Always raises"

    async def execute(self, invocation: ToolInvocation):
        raise RuntimeError("kaboom")


def collect(agent, message: str) -> list:
    async def _collect():
        return [event async for event in agent.run(message)]
    return run(_collect())


def event_types(events) -> list[str]:
    return [e.type for e in events]
