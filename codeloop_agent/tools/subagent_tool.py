"""
Subagent Tool — delegate a focused goal to a nested agent.

Each SubagentDefinition becomes one tool named ``subagent_<name>``.  The
nested agent runs on a copy of the parent config with its own turn limit and
tool allow-list, and is stopped once its wall-clock deadline passes.  Its
final text comes back to the parent as the tool output.
"""

from __future__ import annotations
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .base import BaseTool
from ..core.agent_events import AGENT_END, AGENT_ERROR, TEXT_COMPLETE, TOOL_CALL_START
from ..core.models import ToolConfirmation, ToolInvocation, ToolResult

if TYPE_CHECKING:
    from ..config.settings import Config
    from ..core.approval import ConfirmationCallback
    from ..core.providers.base import BaseModelClient

logger = logging.getLogger(__name__)


def _reject_confirmation(confirmation: ToolConfirmation) -> bool:
    logger.info(f"Sub-agent has no approver; rejecting {confirmation.tool_name}")
    return False


SUBAGENT_PROMPT = """You are a specialized sub-agent with a specific task to complete.

{goal_prompt}

YOUR TASK:
{goal}

IMPORTANT:
- Focus only on completing the specified task
- Do not engage in unrelated actions
- Once you have completed the task or have the answer, provide your final response
- Be concise and direct in your output"""


@dataclass
class SubagentDefinition:
    name: str
    description: str
    goal_prompt: str
    allowed_tools: Optional[list[str]] = None
    max_turns: int = 20
    timeout_seconds: float = 600


class SubagentTool(BaseTool):
    """Runs one SubagentDefinition as a nested Agent."""

    input_schema = {
        "type": "object",
        "properties": {
            "goal": {
                "type": "string",
                "description": "The specific task or goal for the subagent to accomplish",
            },
        },
        "required": ["goal"],
    }

    def __init__(
        self,
        config: Config,
        definition: SubagentDefinition,
        client: Optional[BaseModelClient] = None,
        confirmation_callback: Optional[ConfirmationCallback] = None,
    ):
        super().__init__(config)
        self.definition = definition
        self.confirmation_callback = confirmation_callback
        self.name = f"subagent_{definition.name}"
        self.description = f"Sub-agent: {definition.description}"
        self._client = client

    def is_mutating(self) -> bool:
        return True

    def build_config(self) -> Config:
        return self.config.copy(
            max_turns=self.definition.max_turns,
            allowed_tools=self.definition.allowed_tools,
        )

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        from ..core.agent import Agent

        goal = invocation.params.get("goal")
        if not goal:
            return self._error("No goal specified for sub-agent")

        prompt = SUBAGENT_PROMPT.format(goal_prompt=self.definition.goal_prompt, goal=goal)
        tools_called: list[str] = []
        final_response: Optional[str] = None
        error: Optional[str] = None
        termination = "goal"

        agent = Agent(
            self.build_config(),
            confirmation_callback=self.confirmation_callback or _reject_confirmation,
            client=self._client,
        )
        deadline = time.monotonic() + self.definition.timeout_seconds
        try:
            async with aclosing(agent.run(prompt)) as events:
                async for event in events:
                    if time.monotonic() > deadline:
                        termination = "timeout"
                        final_response = "Sub-agent timed out"
                        break
                    if event.type == TOOL_CALL_START:
                        tools_called.append(event.data["name"])
                    elif event.type == TEXT_COMPLETE:
                        final_response = event.data["content"]
                    elif event.type == AGENT_END:
                        final_response = final_response or event.data.get("response")
                    elif event.type == AGENT_ERROR:
                        termination = "error"
                        error = event.data["error"]
                        final_response = f"Sub-agent error: {error}"
                        break
        except Exception as e:
            logger.exception(f"Sub-agent {self.definition.name} failed")
            termination = "error"
            error = str(e)
            final_response = f"Sub-agent failed: {error}"
        finally:
            if self._client is None:
                await agent.close()
            else:
                await agent.session.mcp_manager.shutdown()

        output = (
            f"Sub-agent '{self.definition.name}' completed.\n"
            f"Termination: {termination}\n"
            f"Tools called: {', '.join(tools_called) if tools_called else 'None'}\n\n"
            f"Result:\n{final_response or 'No response'}"
        )
        metadata = {"termination": termination, "tools_called": tools_called}
        if error:
            return self._error(error, output, metadata=metadata)
        return self._success(output, metadata=metadata)


CODEBASE_INVESTIGATOR = SubagentDefinition(
    name="codebase_investigator",
    description="Investigates the codebase to answer questions about code structure, patterns, and implementations",
    goal_prompt=(
        "You are a codebase investigation specialist.\n"
        "Your job is to explore and understand code to answer questions.\n"
        "Use read_file, grep, glob, and list_dir to investigate.\n"
        "Do NOT modify any files."
    ),
    allowed_tools=["read_file", "grep", "glob", "list_dir"],
)

CODE_REVIEWER = SubagentDefinition(
    name="code_reviewer",
    description="Reviews code changes and provides feedback on quality, bugs, and improvements",
    goal_prompt=(
        "You are a code review specialist.\n"
        "Your job is to review code and provide constructive feedback.\n"
        "Look for bugs, code smells, security issues, and improvement opportunities.\n"
        "Use read_file, list_dir and grep to examine the code.\n"
        "Do NOT modify any files."
    ),
    allowed_tools=["read_file", "grep", "list_dir"],
    max_turns=10,
    timeout_seconds=300,
)


def get_default_subagent_definitions() -> list[SubagentDefinition]:
    return [CODEBASE_INVESTIGATOR, CODE_REVIEWER]
