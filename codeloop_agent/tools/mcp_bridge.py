"""
MCP Bridge — wraps MCP-discovered tools as agent BaseTool instances.
Each tool is registered as ``<server>__<tool>``.
"""

from __future__ import annotations
import logging
from typing import TYPE_CHECKING

from .base import BaseTool
from ..core.models import ToolConfirmation, ToolInvocation, ToolKind, ToolResult

if TYPE_CHECKING:
    from ..core.mcp_client import MCPClient, MCPToolInfo

logger = logging.getLogger(__name__)


class MCPBridgeTool(BaseTool):
    """
    Dynamic wrapper that bridges an MCP tool to the agent's tool system.
    MCP tools have unknown side effects, so they always count as mutating.
    """

    kind = ToolKind.MCP

    def __init__(self, client: MCPClient, info: MCPToolInfo):
        super().__init__()
        self.name = f"{info.server_name}__{info.name}"
        self.description = f"[MCP:{info.server_name}] {info.description}"
        schema = info.input_schema or {}
        self.input_schema = {
            "type": "object",
            "properties": schema.get("properties", {}),
            "required": schema.get("required", []),
        }
        self._client = client
        self._remote_name = info.name

    def is_mutating(self) -> bool:
        return True

    async def get_confirmation(self, invocation: ToolInvocation) -> ToolConfirmation:
        return ToolConfirmation(
            tool_name=self.name,
            params=invocation.params,
            description=f"Call MCP tool {self._remote_name} on server {self._client.name}",
        )

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        try:
            result = await self._client.call_tool(self._remote_name, invocation.params)
        except Exception as e:
            logger.error(f"MCP bridge error for {self.name}: {e}")
            return self._error(f"MCP tool failed: {e}")
        if result["is_error"]:
            return self._error(result["output"] or "MCP tool reported an error")
        return self._success(result["output"])
