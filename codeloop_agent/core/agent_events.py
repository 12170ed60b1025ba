"""
Agent Events — what ``Agent.run`` yields to its caller.

The CLI renders these; the subagent tool consumes them to build its report.
Each event serialises to a plain dict for logging or JSON output.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Optional

from .models import ToolResult


# ── Event types ──────────────────────────────────────────────────

AGENT_START = "agent_start"
AGENT_END = "agent_end"
AGENT_ERROR = "agent_error"
TEXT_DELTA = "text_delta"
TEXT_COMPLETE = "text_complete"
TOOL_CALL_START = "tool_call_start"
TOOL_CALL_COMPLETE = "tool_call_complete"


@dataclass
class AgentEvent:
    type: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {"type": self.type, "data": self.data, "timestamp": self.timestamp}

    # ── Constructors ──────────────────────────────────────

    @classmethod
    def agent_start(cls, message: str) -> "AgentEvent":
        return cls(AGENT_START, {"message": message})

    @classmethod
    def agent_end(cls, response: Optional[str] = None,
                  usage: Optional[dict] = None) -> "AgentEvent":
        return cls(AGENT_END, {"response": response, "usage": usage})

    @classmethod
    def agent_error(cls, error: str, details: Optional[dict] = None) -> "AgentEvent":
        return cls(AGENT_ERROR, {"error": error, "details": details or {}})

    @classmethod
    def text_delta(cls, content: str) -> "AgentEvent":
        return cls(TEXT_DELTA, {"content": content})

    @classmethod
    def text_complete(cls, content: str) -> "AgentEvent":
        return cls(TEXT_COMPLETE, {"content": content})

    @classmethod
    def tool_call_start(cls, call_id: str, name: str, arguments: dict) -> "AgentEvent":
        return cls(TOOL_CALL_START, {"call_id": call_id, "name": name, "arguments": arguments})

    @classmethod
    def tool_call_complete(cls, call_id: str, name: str, result: ToolResult) -> "AgentEvent":
        return cls(TOOL_CALL_COMPLETE, {
            "call_id": call_id,
            "name": name,
            "success": result.success,
            "output": result.output,
            "error": result.error,
            "metadata": result.metadata,
            "diff": result.diff.to_diff() if result.diff else None,
            "truncated": result.truncated,
            "exit_code": result.exit_code,
        })
