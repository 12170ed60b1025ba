"""
Stream Events — typed events produced by a model client for one request.

A ``chat_completion`` call yields a finite, ordered sequence of these.
Exactly one terminal event (``MessageComplete`` or ``StreamError``) ends it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

from .models import TokenUsage, ToolCall


# ── Event types ──────────────────────────────────────────────────

@dataclass
class TextDelta:
    """A chunk of streamed text."""
    content: str
    type: str = field(default="text_delta", init=False)


@dataclass
class ToolCallStart:
    call_id: str
    name: str
    type: str = field(default="tool_call_start", init=False)


@dataclass
class ToolCallDelta:
    call_id: str
    arguments_delta: str
    type: str = field(default="tool_call_delta", init=False)


@dataclass
class ToolCallComplete:
    """A fully assembled tool call, arguments already parsed."""
    tool_call: ToolCall
    type: str = field(default="tool_call_complete", init=False)


@dataclass
class MessageComplete:
    """Terminal event. Non-streamed requests carry the full text and tool calls here."""
    finish_reason: Optional[str] = None
    usage: Optional[TokenUsage] = None
    text: Optional[str] = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    type: str = field(default="message_complete", init=False)


@dataclass
class StreamError:
    """Terminal event for a request that failed after all retries."""
    message: str
    type: str = field(default="error", init=False)


StreamEvent = Union[TextDelta, ToolCallStart, ToolCallDelta, ToolCallComplete,
                    MessageComplete, StreamError]


def is_terminal(event: StreamEvent) -> bool:
    return isinstance(event, (MessageComplete, StreamError))
