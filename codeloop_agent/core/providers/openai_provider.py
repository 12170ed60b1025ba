"""
OpenAI model client — chat completions with native function calling.
Also serves OpenAI-compatible endpoints (Gemini, Groq) through ``base_url``.
"""

from __future__ import annotations
import json
from typing import AsyncIterator, Optional

import openai
from openai import AsyncOpenAI

from .base import BaseModelClient, parse_tool_arguments
from ..models import TokenUsage, ToolCall, ToolSchema
from ..stream_events import (
    MessageComplete,
    StreamEvent,
    TextDelta,
    ToolCallComplete,
    ToolCallDelta,
    ToolCallStart,
)


def _usage_from(raw) -> Optional[TokenUsage]:
    if raw is None:
        return None
    details = getattr(raw, "prompt_tokens_details", None)
    return TokenUsage(
        prompt_tokens=getattr(raw, "prompt_tokens", 0) or 0,
        completion_tokens=getattr(raw, "completion_tokens", 0) or 0,
        total_tokens=getattr(raw, "total_tokens", 0) or 0,
        cached_tokens=(getattr(details, "cached_tokens", 0) or 0) if details else 0,
    )


class OpenAIClient(BaseModelClient):
    """OpenAI-compatible client with streamed tool-call assembly."""

    def __init__(self, model: str = "gpt-4o", api_key: Optional[str] = None,
                 base_url: Optional[str] = None, **kwargs):
        super().__init__(model=model, api_key=api_key, base_url=base_url, **kwargs)
        self._client: Optional[AsyncOpenAI] = None

    def transient_errors(self) -> tuple[type[BaseException], ...]:
        return (openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError)

    def get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    def _payload(self, messages: list[dict], tools: Optional[list[ToolSchema]]) -> dict:
        payload = {
            "model": self.model,
            "messages": self._convert_messages(messages),
            "temperature": self.temperature,
        }
        if tools:
            payload["tools"] = [t.to_openai() for t in tools]
            payload["tool_choice"] = "auto"
        return payload

    async def _stream(self, messages: list[dict],
                      tools: Optional[list[ToolSchema]]) -> AsyncIterator[StreamEvent]:
        stream = await self.get_client().chat.completions.create(
            **self._payload(messages, tools),
            stream=True,
            stream_options={"include_usage": True},
        )

        finish_reason = None
        usage = None
        tool_call_accum: dict[int, dict] = {}  # index -> {id, name, arguments}

        async for chunk in stream:
            if getattr(chunk, "usage", None):
                usage = _usage_from(chunk.usage)
            if not chunk.choices:
                continue

            choice = chunk.choices[0]
            if choice.finish_reason:
                finish_reason = choice.finish_reason
            delta = choice.delta

            if delta.content:
                yield TextDelta(content=delta.content)

            for tc_delta in delta.tool_calls or []:
                idx = tc_delta.index or 0
                accum = tool_call_accum.setdefault(
                    idx, {"id": tc_delta.id or ToolCall.generate_id(), "name": "", "arguments": ""},
                )
                if tc_delta.id:
                    accum["id"] = tc_delta.id
                if tc_delta.function and tc_delta.function.name:
                    accum["name"] = tc_delta.function.name
                    yield ToolCallStart(call_id=accum["id"], name=accum["name"])
                if tc_delta.function and tc_delta.function.arguments:
                    accum["arguments"] += tc_delta.function.arguments
                    yield ToolCallDelta(call_id=accum["id"], arguments_delta=tc_delta.function.arguments)

        for idx in sorted(tool_call_accum):
            accum = tool_call_accum[idx]
            yield ToolCallComplete(tool_call=ToolCall(
                call_id=accum["id"],
                name=accum["name"],
                arguments=parse_tool_arguments(accum["arguments"]),
            ))

        yield MessageComplete(finish_reason=finish_reason, usage=usage)

    async def _complete(self, messages: list[dict],
                        tools: Optional[list[ToolSchema]]) -> MessageComplete:
        response = await self.get_client().chat.completions.create(**self._payload(messages, tools))
        choice = response.choices[0]
        tool_calls = [
            ToolCall(
                call_id=tc.id,
                name=tc.function.name,
                arguments=parse_tool_arguments(tc.function.arguments),
            )
            for tc in choice.message.tool_calls or []
        ]
        return MessageComplete(
            finish_reason=choice.finish_reason,
            usage=_usage_from(response.usage),
            text=choice.message.content,
            tool_calls=tool_calls,
        )

    @staticmethod
    def _convert_messages(messages: list[dict]) -> list[dict]:
        """Convert provider-neutral message dicts to chat-completions format."""
        result = []
        for msg in messages:
            role = msg["role"]
            if role == "tool":
                result.append({
                    "role": "tool",
                    "tool_call_id": msg.get("tool_call_id", ""),
                    "content": msg.get("content", ""),
                })
            elif role == "assistant" and msg.get("tool_calls"):
                result.append({
                    "role": "assistant",
                    "content": msg.get("content"),
                    "tool_calls": [
                        {
                            "id": tc["id"],
                            "type": "function",
                            "function": {
                                "name": tc["name"],
                                "arguments": json.dumps(tc.get("arguments") or {}),
                            },
                        }
                        for tc in msg["tool_calls"]
                    ],
                })
            else:
                result.append({"role": role, "content": msg.get("content", "")})
        return result
