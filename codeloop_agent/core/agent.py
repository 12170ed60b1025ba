"""
Agent — the agentic control loop.

One call to ``run(message)`` drives a sequence of turns: query the model
(streamed), execute the tool calls it asks for, feed the results back, and
repeat until the model answers without tool calls or ``max_turns`` is hit.
Along the way the loop compacts the context when it nears the model's window,
prunes old tool output, and nudges the model when it starts looping.

Events are yielded as they happen so a caller can render partial output:

    agent_start → (text_delta* text_complete? (tool_call_start tool_call_complete)*)* → agent_end
"""

from __future__ import annotations
import logging
from typing import TYPE_CHECKING, AsyncIterator, Optional

from ..prompts.system_prompt import get_loop_breaker_prompt, get_planning_prompt
from .agent_events import TEXT_COMPLETE, AgentEvent
from .models import TokenUsage, ToolCall
from .session import Session
from .stream_events import MessageComplete, StreamError, TextDelta, ToolCallComplete

if TYPE_CHECKING:
    from ..config.settings import Config
    from .approval import ConfirmationCallback
    from .providers.base import BaseModelClient
    from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


class Agent:
    """Drives one Session through user messages."""

    def __init__(
        self,
        config: Config,
        confirmation_callback: Optional[ConfirmationCallback] = None,
        client: Optional[BaseModelClient] = None,
        registry: Optional[ToolRegistry] = None,
    ):
        self.config = config
        self.session = Session(
            config,
            client=client,
            registry=registry,
            confirmation_callback=confirmation_callback,
        )
        self._initialized = False

    async def initialize(self) -> None:
        if not self._initialized:
            await self.session.initialize()
            self._initialized = True

    async def close(self) -> None:
        await self.session.close()

    async def __aenter__(self) -> "Agent":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ── Public API ─────────────────────────────────────────

    async def run(self, message: str) -> AsyncIterator[AgentEvent]:
        """Process one user message, yielding AgentEvents."""
        await self.initialize()
        session = self.session
        context = session.context_manager

        await session.hook_system.trigger_before_agent(message)
        yield AgentEvent.agent_start(message)
        context.add_user_message(message)

        if self.config.autoplan:
            plan = await self._generate_plan(message)
            if plan:
                context.add_assistant_message(plan)
                yield AgentEvent.text_complete(plan)

        final_response: Optional[str] = None
        async for event in self._agentic_loop():
            yield event
            if event.type == TEXT_COMPLETE:
                final_response = event.data["content"]

        await session.hook_system.trigger_after_agent(message, final_response)
        yield AgentEvent.agent_end(final_response, context.total_usage.to_dict())

    # ── Internals ──────────────────────────────────────────

    async def _generate_plan(self, message: str) -> Optional[str]:
        """One non-streamed side request; None when it fails or comes back empty."""
        request = [
            {"role": "system", "content": get_planning_prompt()},
            {"role": "user", "content": message},
        ]
        plan = ""
        async for event in self.session.client.chat_completion(request, None, stream=False):
            if isinstance(event, StreamError):
                logger.info(f"Planning request failed: {event.message}")
                return None
            if isinstance(event, MessageComplete):
                plan += event.text or ""
        plan = plan.strip()
        return f"Plan:\n{plan}" if plan else None

    def _record_usage(self, usage: Optional[TokenUsage]) -> None:
        if usage is not None:
            self.session.context_manager.set_latest_usage(usage)
            self.session.context_manager.add_usage(usage)

    async def _compact_if_needed(self) -> None:
        context = self.session.context_manager
        if not context.needs_compression(self.config.model.context_window):
            return
        summary, usage = await self.session.chat_compactor.compress(context)
        if summary:
            context.replace_with_summary(summary)
            if usage is not None:
                context.add_usage(usage)
        else:
            logger.debug("Compaction skipped; keeping full history")

    async def _agentic_loop(self) -> AsyncIterator[AgentEvent]:
        session = self.session
        context = session.context_manager
        max_turns = self.config.max_turns

        for _ in range(max_turns):
            turn = session.increment_turn()
            logger.debug(f"Turn {turn}/{max_turns}")

            await self._compact_if_needed()

            schemas = session.tool_registry.get_schemas()
            response_text = ""
            tool_calls: list[ToolCall] = []
            usage: Optional[TokenUsage] = None

            async for event in session.client.chat_completion(context.get_messages(), schemas or None):
                if isinstance(event, TextDelta):
                    if event.content:
                        response_text += event.content
                        yield AgentEvent.text_delta(event.content)
                elif isinstance(event, ToolCallComplete):
                    tool_calls.append(event.tool_call)
                elif isinstance(event, StreamError):
                    await session.hook_system.trigger_on_error(RuntimeError(event.message))
                    yield AgentEvent.agent_error(event.message or "Unknown error occurred.")
                elif isinstance(event, MessageComplete):
                    usage = event.usage

            context.add_assistant_message(response_text or None, tool_calls or None)

            if response_text:
                yield AgentEvent.text_complete(response_text)
                session.loop_detector.record_action("response", text=response_text)

            if not tool_calls:
                self._record_usage(usage)
                context.prune_tool_outputs()
                return

            results: list[tuple[str, str]] = []
            for call in tool_calls:
                yield AgentEvent.tool_call_start(call.call_id, call.name, call.arguments)
                session.loop_detector.record_action("tool_call", tool_name=call.name, args=call.arguments)

                result = await session.tool_registry.invoke(
                    call.name,
                    call.arguments,
                    self.config.cwd,
                    session.hook_system,
                    session.approval_manager,
                )

                yield AgentEvent.tool_call_complete(call.call_id, call.name, result)
                results.append((call.call_id, result.to_model_output()))

            for call_id, content in results:
                context.add_tool_result(call_id, content)

            loop = session.loop_detector.check_for_loop()
            if loop:
                logger.warning(f"Loop detected: {loop}")
                context.add_user_message(get_loop_breaker_prompt(loop))

            self._record_usage(usage)
            context.prune_tool_outputs()

        yield AgentEvent.agent_error(f"Maximum turns ({max_turns}) reached")
