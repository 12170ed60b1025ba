"""
Session — everything one conversation owns.

Wires the model client, tool registry, context manager, compactor, approval
manager, loop detector, hook system and MCP manager together, and carries the
session identity (id, timestamps, turn count) used for persistence.
"""

from __future__ import annotations
import json
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from ..prompts.system_prompt import build_system_prompt
from .approval import ApprovalManager, ConfirmationCallback
from .compaction import ChatCompactor
from .context_manager import ContextManager
from .hook_system import HookSystem
from .loop_detector import LoopDetector
from .mcp_client import MCPManager
from .models import TokenUsage
from .persistence import SessionSnapshot
from .tool_registry import ToolRegistry, create_default_registry

if TYPE_CHECKING:
    from ..config.settings import Config
    from .providers.base import BaseModelClient

logger = logging.getLogger(__name__)

USER_MEMORY_FILE = "user_memory.json"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def load_user_memory(data_dir: str) -> dict[str, str]:
    """Entries stored by the memory tool, or an empty dict."""
    path = os.path.join(data_dir, USER_MEMORY_FILE)
    if not os.path.exists(path):
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable user memory {path}: {e}")
        return {}
    entries = data.get("entries") if isinstance(data, dict) else None
    return dict(entries) if isinstance(entries, dict) else {}


class Session:
    """State and collaborators of one conversation."""

    def __init__(
        self,
        config: Config,
        client: Optional[BaseModelClient] = None,
        registry: Optional[ToolRegistry] = None,
        confirmation_callback: Optional[ConfirmationCallback] = None,
    ):
        from .providers.base import create_client

        self.config = config
        self.client = client or create_client(config)
        self.tool_registry = registry or create_default_registry(config)
        self.mcp_manager = MCPManager(config.mcp_servers, config.cwd)
        self.chat_compactor = ChatCompactor(self.client)
        self.approval_manager = ApprovalManager(config.approval, config.cwd, confirmation_callback)
        self._share_confirmation_callback(confirmation_callback)
        self.loop_detector = LoopDetector()
        self.hook_system = HookSystem(config.hooks, config.cwd, enabled=config.hooks_enabled)
        self.context_manager: Optional[ContextManager] = None

        self.session_id = str(uuid.uuid4())
        self.created_at = _now()
        self.updated_at = self.created_at
        self.turn_count = 0

    def _share_confirmation_callback(self, callback: Optional[ConfirmationCallback]) -> None:
        """Nested agents ask the same approver as this session."""
        from ..tools.subagent_tool import SubagentTool

        for tool in self.tool_registry.get_tools():
            if isinstance(tool, SubagentTool) and tool.confirmation_callback is None:
                tool.confirmation_callback = callback

    async def initialize(self) -> None:
        """Connect MCP servers, discover project tools, build the context."""
        from ..tools.discovery import ToolDiscoveryManager

        await self.mcp_manager.initialize()
        self.mcp_manager.register_tools(self.tool_registry)
        ToolDiscoveryManager(self.config, self.tool_registry).discover_all()
        self.context_manager = ContextManager(
            system_prompt=self.build_system_prompt(),
            model_name=self.config.model.name,
        )

    def build_system_prompt(self) -> str:
        return build_system_prompt(
            cwd=self.config.cwd,
            tool_names=self.tool_registry.list_tools(),
            developer_instructions=self.config.developer_instructions,
            user_instructions=self.config.user_instructions,
            user_memory=load_user_memory(self.config.data_dir),
        )

    def increment_turn(self) -> int:
        self.turn_count += 1
        self.updated_at = _now()
        return self.turn_count

    def get_stats(self) -> dict:
        cm = self.context_manager
        return {
            "session_id": self.session_id,
            "created_at": self.created_at.isoformat(),
            "turn_count": self.turn_count,
            "message_count": cm.message_count if cm else 0,
            "token_usage": cm.total_usage.to_dict() if cm else {},
            "tools_count": len(self.tool_registry.get_tools()),
            "mcp_servers": len(self.tool_registry.connected_mcp_servers),
        }

    # ── Persistence ─────────────────────────────────────────

    def to_snapshot(self) -> SessionSnapshot:
        cm = self.context_manager
        return SessionSnapshot(
            session_id=self.session_id,
            created_at=self.created_at.isoformat(),
            updated_at=self.updated_at.isoformat(),
            turn_count=self.turn_count,
            messages=[m.to_dict() for m in cm.messages] if cm else [],
            total_usage=cm.total_usage if cm else TokenUsage(),
        )

    def restore(self, snapshot: SessionSnapshot) -> None:
        """Adopt a persisted snapshot; the system prompt stays the fresh one."""
        if self.context_manager is None:
            raise RuntimeError("Session.initialize() must run before restore()")
        self.session_id = snapshot.session_id
        self.created_at = datetime.fromisoformat(snapshot.created_at) if snapshot.created_at else _now()
        self.updated_at = datetime.fromisoformat(snapshot.updated_at) if snapshot.updated_at else _now()
        self.turn_count = snapshot.turn_count
        self.context_manager.clear()
        self.context_manager.replay(snapshot.messages)
        self.context_manager.total_usage = snapshot.total_usage
        self.loop_detector.clear()

    async def close(self) -> None:
        await self.client.close()
        await self.mcp_manager.shutdown()
