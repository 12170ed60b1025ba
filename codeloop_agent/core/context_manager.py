"""
Context Manager — owns the conversation history for one session.

Tracks per-message token counts (cached at append time), the latest and
cumulative token usage reported by the model, and keeps the window in check
two ways:

  1. Compaction trigger: ``needs_compression`` reports when the latest
     request used more than 80% of the model's context window.  The agent
     then asks the ChatCompactor for a summary and calls
     ``replace_with_summary``.
  2. Tool-output pruning: ``prune_tool_outputs`` blanks the content of old
     tool results that fall outside a protected window of recent output.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Optional

from .models import Message, TokenUsage, ToolCall
from .token_counter import TokenCounter

logger = logging.getLogger(__name__)


PRUNED_PLACEHOLDER = "[Old tool result content cleared]"


class ContextManager:
    """Append-only message history plus token accounting."""

    # Fraction of the context window that triggers compaction
    COMPRESSION_THRESHOLD = 0.8

    # Most recent tool output (in tokens) that is never pruned
    PRUNE_PROTECT_TOKENS = 40_000

    # Pruning only happens when at least this many tokens would be freed
    PRUNE_MINIMUM_TOKENS = 20_000

    def __init__(
        self,
        system_prompt: Optional[str] = None,
        model_name: str = "",
        token_counter: Optional[TokenCounter] = None,
    ):
        self._system_prompt = system_prompt
        self._model_name = model_name
        self._counter = token_counter or TokenCounter(model_name)
        self._messages: list[Message] = []
        self._latest_usage: Optional[TokenUsage] = None
        self.total_usage = TokenUsage()

    # ── Appending ─────────────────────────────────────────────

    def count_tokens(self, text: Optional[str]) -> int:
        return self._counter.count(text)

    def add_user_message(self, content: str) -> None:
        self._messages.append(Message(
            role="user",
            content=content,
            token_count=self.count_tokens(content),
        ))

    def add_assistant_message(
        self,
        content: Optional[str],
        tool_calls: Optional[list[ToolCall]] = None,
    ) -> None:
        tokens = self.count_tokens(content or "")
        for call in tool_calls or []:
            tokens += self.count_tokens(call.name)
            tokens += self.count_tokens(json.dumps(call.arguments))
        self._messages.append(Message(
            role="assistant",
            content=content or None,
            tool_calls=tool_calls or None,
            token_count=tokens,
        ))

    def add_tool_result(self, tool_call_id: str, content: str) -> None:
        self._messages.append(Message(
            role="tool",
            content=content,
            tool_call_id=tool_call_id,
            token_count=self.count_tokens(content),
        ))

    # ── Reading ───────────────────────────────────────────────

    @property
    def system_prompt(self) -> Optional[str]:
        return self._system_prompt

    @property
    def messages(self) -> list[Message]:
        """History without the system prompt (live list, do not mutate)."""
        return self._messages

    @property
    def message_count(self) -> int:
        return len(self._messages)

    def get_messages(self) -> list[dict]:
        """Snapshot for a model request: system prompt first, then history."""
        result: list[dict] = []
        if self._system_prompt:
            result.append({"role": "system", "content": self._system_prompt})
        result.extend(msg.to_dict() for msg in self._messages)
        return result

    # ── Usage ────────────────────────────────────────────────

    @property
    def latest_usage(self) -> Optional[TokenUsage]:
        return self._latest_usage

    def set_latest_usage(self, usage: TokenUsage) -> None:
        self._latest_usage = usage

    def add_usage(self, usage: TokenUsage) -> None:
        self.total_usage = self.total_usage + usage

    def needs_compression(self, context_window: int) -> bool:
        if self._latest_usage is None:
            return False
        return self._latest_usage.total_tokens > context_window * self.COMPRESSION_THRESHOLD

    # ── Compaction ──────────────────────────────────────────

    def replace_with_summary(self, summary: str) -> None:
        """Discard history; keep a three-message continuation preamble."""
        restoration = (
            "# Context Restoration (Previous Session Compacted)\n\n"
            "The earlier part of this conversation was compacted to save space. "
            "Below is a summary of the work done so far. Treat it as accurate "
            "and do not redo completed steps.\n\n"
            f"{summary}"
        )
        acknowledgement = (
            "I've reviewed the summary of the previous work. I understand what has "
            "been completed and what remains, and I'll continue from where we left off."
        )
        continuation = (
            "Continue with the REMAINING work only. Do not repeat tasks that the "
            "summary marks as done. If everything is finished, say so briefly."
        )
        self._messages = []
        self._latest_usage = None
        self.add_user_message(restoration)
        self.add_assistant_message(acknowledgement)
        self.add_user_message(continuation)
        logger.info("Context compacted; history replaced with summary")

    # ── Pruning ─────────────────────────────────────────────

    def prune_tool_outputs(self) -> int:
        """
        Blank old tool outputs that fall outside the protected window.

        Walks tool messages newest to oldest, stopping at the first one that
        was already pruned.  Once the running token total passes
        PRUNE_PROTECT_TOKENS every older tool message becomes a candidate;
        candidates are only pruned if together they hold at least
        PRUNE_MINIMUM_TOKENS.  Returns the number of messages pruned.
        """
        user_messages = sum(1 for m in self._messages if m.role == "user")
        if user_messages < 2:
            return 0

        seen_tokens = 0
        prunable_tokens = 0
        candidates: list[Message] = []

        for msg in reversed(self._messages):
            if msg.role != "tool" or not msg.tool_call_id:
                continue
            if msg.pruned_at is not None:
                break
            seen_tokens += msg.token_count
            if seen_tokens > self.PRUNE_PROTECT_TOKENS:
                prunable_tokens += msg.token_count
                candidates.append(msg)

        if prunable_tokens < self.PRUNE_MINIMUM_TOKENS:
            return 0

        now = time.time()
        for msg in candidates:
            msg.content = PRUNED_PLACEHOLDER
            msg.token_count = self.count_tokens(PRUNED_PLACEHOLDER)
            msg.pruned_at = now

        logger.debug(f"Pruned {len(candidates)} tool outputs ({prunable_tokens} tokens)")
        return len(candidates)

    # ── Lifecycle ───────────────────────────────────────────

    def clear(self) -> None:
        self._messages = []
        self._latest_usage = None

    def replay(self, messages: list[dict]) -> None:
        """Rebuild history from persisted message dicts via the add_* methods."""
        for data in messages:
            role = data.get("role")
            if role == "user":
                self.add_user_message(data.get("content", ""))
            elif role == "assistant":
                calls = [ToolCall.from_dict(tc) for tc in data.get("tool_calls") or []]
                self.add_assistant_message(data.get("content"), calls or None)
            elif role == "tool":
                self.add_tool_result(data.get("tool_call_id", ""), data.get("content", ""))
            else:
                logger.warning(f"Skipping persisted message with role {role!r}")
