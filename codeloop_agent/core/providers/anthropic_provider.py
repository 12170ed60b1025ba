"""
Anthropic model client — Messages API with native tool_use.
"""

from __future__ import annotations
from typing import AsyncIterator, Optional

import anthropic
from anthropic import AsyncAnthropic

from .base import BaseModelClient
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
    prompt = getattr(raw, "input_tokens", 0) or 0
    completion = getattr(raw, "output_tokens", 0) or 0
    return TokenUsage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=prompt + completion,
        cached_tokens=getattr(raw, "cache_read_input_tokens", 0) or 0,
    )


class AnthropicClient(BaseModelClient):
    """Anthropic client; system prompt travels outside the message list."""

    def __init__(self, model: str = "claude-sonnet-4-5", api_key: Optional[str] = None,
                 base_url: Optional[str] = None, **kwargs):
        super().__init__(model=model, api_key=api_key, base_url=base_url, **kwargs)
        self._client: Optional[AsyncAnthropic] = None

    def transient_errors(self) -> tuple[type[BaseException], ...]:
        return (anthropic.APIConnectionError, anthropic.RateLimitError, anthropic.InternalServerError)

    def get_client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = AsyncAnthropic(
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
        system, converted = self._convert_messages(messages)
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": converted,
            "temperature": min(self.temperature, 1.0),
        }
        if system:
            payload["system"] = system
        if tools:
            payload["tools"] = [t.to_dict() for t in tools]
        return payload

    async def _stream(self, messages: list[dict],
                      tools: Optional[list[ToolSchema]]) -> AsyncIterator[StreamEvent]:
        block_ids: dict[int, str] = {}
        async with self.get_client().messages.stream(**self._payload(messages, tools)) as stream:
            async for event in stream:
                if event.type == "content_block_start" and event.content_block.type == "tool_use":
                    block_ids[event.index] = event.content_block.id
                    yield ToolCallStart(call_id=event.content_block.id, name=event.content_block.name)
                elif event.type == "content_block_delta":
                    if event.delta.type == "text_delta":
                        yield TextDelta(content=event.delta.text)
                    elif event.delta.type == "input_json_delta":
                        yield ToolCallDelta(
                            call_id=block_ids.get(event.index, ""),
                            arguments_delta=event.delta.partial_json,
                        )
            final = await stream.get_final_message()

        for block in final.content:
            if block.type == "tool_use":
                yield ToolCallComplete(tool_call=ToolCall(
                    call_id=block.id, name=block.name, arguments=dict(block.input or {}),
                ))
        yield MessageComplete(finish_reason=final.stop_reason, usage=_usage_from(final.usage))

    async def _complete(self, messages: list[dict],
                        tools: Optional[list[ToolSchema]]) -> MessageComplete:
        response = await self.get_client().messages.create(**self._payload(messages, tools))
        text_parts = []
        tool_calls = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(call_id=block.id, name=block.name,
                                           arguments=dict(block.input or {})))
        return MessageComplete(
            finish_reason=response.stop_reason,
            usage=_usage_from(response.usage),
            text="\n".join(text_parts) or None,
            tool_calls=tool_calls,
        )

    @staticmethod
    def _convert_messages(messages: list[dict]) -> tuple[str, list[dict]]:
        """Split off the system prompt; fold tool results into user turns."""
        system_parts = []
        result: list[dict] = []
        for msg in messages:
            role = msg["role"]
            if role == "system":
                system_parts.append(msg.get("content", ""))
            elif role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": msg.get("tool_call_id", ""),
                    "content": msg.get("content", ""),
                }
                # Consecutive tool results share one user message
                if result and result[-1]["role"] == "user" and isinstance(result[-1]["content"], list) \
                        and result[-1]["content"] and result[-1]["content"][0].get("type") == "tool_result":
                    result[-1]["content"].append(block)
                else:
                    result.append({"role": "user", "content": [block]})
            elif role == "assistant":
                blocks = []
                if msg.get("content"):
                    blocks.append({"type": "text", "text": msg["content"]})
                for tc in msg.get("tool_calls") or []:
                    blocks.append({
                        "type": "tool_use", "id": tc["id"], "name": tc["name"],
                        "input": tc.get("arguments") or {},
                    })
                result.append({"role": "assistant", "content": blocks or ""})
            else:
                result.append({"role": "user", "content": msg.get("content", "")})
        return "\n\n".join(p for p in system_parts if p), result
