"""
Tool Registry — central registry for all available tools.
Handles registration, schema retrieval, and the dispatch pipeline:

    lookup → validate → before hook → approval → execute → after hook

Every exit path fires the after-tool hook exactly once and returns exactly
one ToolResult; tool code can never crash the registry.
"""

from __future__ import annotations
import logging
from typing import TYPE_CHECKING, Optional

from .approval import ApprovalContext, ApprovalDecision, ApprovalManager
from .hook_system import HookSystem
from .models import ToolInvocation, ToolResult, ToolSchema

if TYPE_CHECKING:
    from ..config.settings import Config
    from ..tools.base import BaseTool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Central registry for all agent tools."""

    def __init__(self, allowed_tools: Optional[list[str]] = None):
        self._tools: dict[str, BaseTool] = {}
        self._mcp_tools: dict[str, BaseTool] = {}
        self.allowed_tools = list(allowed_tools) if allowed_tools else None

    def register(self, tool: BaseTool) -> None:
        """Register a tool instance."""
        self._tools[tool.name] = tool

    def register_mcp_tool(self, tool: BaseTool) -> None:
        self._mcp_tools[tool.name] = tool

    def is_allowed(self, name: str) -> bool:
        return not self.allowed_tools or name in self.allowed_tools

    def get(self, name: str) -> Optional[BaseTool]:
        """Look up a tool by name; names outside the allow-list are unknown."""
        if not self.is_allowed(name):
            return None
        return self._tools.get(name) or self._mcp_tools.get(name)

    @property
    def connected_mcp_servers(self) -> list[BaseTool]:
        return list(self._mcp_tools.values())

    def get_tools(self) -> list[BaseTool]:
        """All tools, filtered by the allow-list when one is configured."""
        tools = [*self._tools.values(), *self._mcp_tools.values()]
        return [t for t in tools if self.is_allowed(t.name)]

    def get_schemas(self) -> list[ToolSchema]:
        """Return all tool schemas for the model."""
        return [tool.get_schema() for tool in self.get_tools()]

    def list_tools(self) -> list[str]:
        return [tool.name for tool in self.get_tools()]

    async def invoke(
        self,
        name: str,
        params: dict,
        cwd: str,
        hooks: Optional[HookSystem] = None,
        approval_manager: Optional[ApprovalManager] = None,
    ) -> ToolResult:
        """Run one tool call through the full dispatch pipeline."""
        hooks = hooks or HookSystem(cwd=cwd)
        params = params or {}

        tool = self.get(name)
        if tool is None:
            result = ToolResult.error_result(f"Unknown tool: {name}", metadata={"tool_name": name})
            await hooks.trigger_after_tool(name, params, result)
            return result

        errors = tool.validate_params(params)
        if errors:
            result = ToolResult.error_result(
                f"Invalid parameters: {'; '.join(errors)}",
                metadata={"tool_name": name, "validation_errors": errors},
            )
            await hooks.trigger_after_tool(name, params, result)
            return result

        await hooks.trigger_before_tool(name, params)
        invocation = ToolInvocation(params=params, cwd=cwd)

        try:
            result = None
            if approval_manager is not None:
                result = await self._check_approval(tool, invocation, approval_manager)
            if result is None:
                result = await tool.execute(invocation)
        except Exception as e:
            logger.exception(f"Tool {name} raised")
            result = ToolResult.error_result(f"Internal error: {e}")
        await hooks.trigger_after_tool(name, params, result)
        return result

    @staticmethod
    async def _check_approval(tool: BaseTool, invocation: ToolInvocation,
                              approval_manager: ApprovalManager) -> Optional[ToolResult]:
        """Return an error result when the call may not proceed, else None."""
        confirmation = await tool.get_confirmation(invocation)
        if confirmation is None:
            return None

        context = ApprovalContext.from_confirmation(confirmation, is_mutating=tool.is_mutating())
        decision = approval_manager.check_approval(context)
        if decision == ApprovalDecision.REJECTED:
            logger.info(f"{tool.name}: rejected by {approval_manager.policy.value} policy")
            return ToolResult.error_result("Operation rejected by safety policy")
        if decision == ApprovalDecision.NEEDS_CONFIRMATION:
            if not approval_manager.request_confirmation(confirmation):
                return ToolResult.error_result("User rejected the operation")
        return None


def create_default_registry(config: Config) -> ToolRegistry:
    """Registry with every built-in tool plus the default subagents."""
    from ..tools.builtins import get_all_builtin_tools
    from ..tools.subagent_tool import SubagentTool, get_default_subagent_definitions

    registry = ToolRegistry(allowed_tools=config.allowed_tools)
    for tool_class in get_all_builtin_tools():
        registry.register(tool_class(config))
    for definition in get_default_subagent_definitions():
        registry.register(SubagentTool(config, definition))
    return registry
