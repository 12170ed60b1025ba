"""
Chat Compactor — turns a long conversation into a continuation summary.

The whole non-system history is rendered as a plain-text transcript (with
hard per-message ceilings so the compaction request itself stays bounded)
and sent as one non-streamed request with the compression prompt.  Any
failure yields ``(None, None)``; callers leave history untouched then.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Optional

from ..prompts.system_prompt import get_compression_prompt
from .models import TokenUsage
from .stream_events import MessageComplete, StreamError

if TYPE_CHECKING:
    from .context_manager import ContextManager
    from .providers.base import BaseModelClient

logger = logging.getLogger(__name__)


TRANSCRIPT_HEADER = "Here is the conversation that needs to be continue: \n"
SECTION_SEPARATOR = "\n\n---\n\n"


def _clip(text: str, limit: int, marker: str) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + f"\n... [{marker} truncated]"


class ChatCompactor:
    """Summarises a ContextManager's history through the model."""

    MAX_TOOL_RESULT_CHARS = 2000
    MAX_ASSISTANT_CHARS = 3000
    MAX_USER_CHARS = 1500
    MAX_TOOL_ARGS_CHARS = 500

    def __init__(self, client: BaseModelClient):
        self.client = client

    def format_history(self, messages: list[dict]) -> str:
        sections = [TRANSCRIPT_HEADER]
        for msg in messages:
            role = msg.get("role", "")
            content = msg.get("content") or ""

            if role == "system":
                continue

            if role == "tool":
                tool_id = msg.get("tool_call_id") or "unknown"
                sections.append(
                    f"[Tool Result ({tool_id})]:\n"
                    f"{_clip(content, self.MAX_TOOL_RESULT_CHARS, 'tool output')}"
                )
                continue

            if role == "assistant":
                if content:
                    sections.append(f"Assistant:\n{_clip(content, self.MAX_ASSISTANT_CHARS, 'response')}")
                if msg.get("tool_calls"):
                    details = []
                    for call in msg["tool_calls"]:
                        args = json.dumps(call.get("arguments") or {}, default=str)
                        details.append(f"  - {call.get('name', 'unknown')}({args[:self.MAX_TOOL_ARGS_CHARS]})")
                    sections.append("Assistant called tools:\n" + "\n".join(details))
                continue

            sections.append(f"User:\n{_clip(content, self.MAX_USER_CHARS, 'message')}")

        return SECTION_SEPARATOR.join(sections)

    async def compress(self, context_manager: ContextManager) -> tuple[Optional[str], Optional[TokenUsage]]:
        """Return ``(summary, usage)`` or ``(None, None)`` when compaction is skipped."""
        messages = context_manager.get_messages()
        if len(messages) < 3:
            return None, None

        request = [
            {"role": "system", "content": get_compression_prompt()},
            {"role": "user", "content": self.format_history(messages)},
        ]

        summary = ""
        usage: Optional[TokenUsage] = None
        try:
            async for event in self.client.chat_completion(request, None, stream=False):
                if isinstance(event, MessageComplete):
                    usage = event.usage
                    summary += event.text or ""
                elif isinstance(event, StreamError):
                    logger.debug(f"Compaction request failed: {event.message}")
                    return None, None
        except Exception as e:
            logger.debug(f"Compaction failed: {e}")
            return None, None

        if not summary or usage is None:
            return None, None
        return summary, usage
