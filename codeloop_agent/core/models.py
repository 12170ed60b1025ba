"""
Universal data models for the agent loop.
These are provider-agnostic — each model client converts to/from its native format.
"""

from __future__ import annotations
import difflib
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Optional


# ── Conversation ────────────────────────────────────────────────

@dataclass
class ToolCall:
    """A single tool invocation requested by the model."""
    call_id: str
    name: str
    arguments: dict = field(default_factory=dict)

    @staticmethod
    def generate_id() -> str:
        return f"call_{uuid.uuid4().hex[:12]}"

    def to_dict(self) -> dict:
        return {"id": self.call_id, "name": self.name, "arguments": self.arguments}

    @classmethod
    def from_dict(cls, data: dict) -> "ToolCall":
        return cls(
            call_id=data.get("id", ""),
            name=data.get("name", ""),
            arguments=data.get("arguments") or {},
        )


@dataclass
class Message:
    """A single entry of the conversation history."""
    role: Literal["system", "user", "assistant", "tool"]
    content: Optional[str] = None
    tool_calls: Optional[list[ToolCall]] = None
    tool_call_id: Optional[str] = None
    token_count: int = 0
    pruned_at: Optional[float] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        """Provider-neutral dict; empty fields are omitted."""
        data: dict[str, Any] = {"role": self.role}
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        if self.tool_calls:
            data["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.content:
            data["content"] = self.content
        return data


@dataclass
class TokenUsage:
    """Token counts reported by the model for one request (or a running sum)."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cached_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
            cached_tokens=self.cached_tokens + other.cached_tokens,
        )

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "cached_tokens": self.cached_tokens,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "TokenUsage":
        data = data or {}
        return cls(**{k: int(data.get(k, 0) or 0) for k in cls.__dataclass_fields__})


# ── Tools ───────────────────────────────────────────────────────

class ToolKind(str, Enum):
    READ = "read"
    WRITE = "write"
    SHELL = "shell"
    NETWORK = "network"
    MEMORY = "memory"
    MCP = "mcp"


MUTATING_KINDS = frozenset({ToolKind.WRITE, ToolKind.SHELL, ToolKind.NETWORK, ToolKind.MEMORY})


@dataclass
class ToolSchema:
    """Universal tool definition for model consumption."""
    name: str
    description: str
    input_schema: dict  # JSON Schema format

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }

    def to_openai(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }


@dataclass
class FileDiff:
    """Before/after snapshot of a file touched by a write tool."""
    path: str
    old_content: str
    new_content: str
    is_new_file: bool = False
    is_deletion: bool = False

    def to_diff(self) -> str:
        old_lines = self.old_content.splitlines(keepends=True)
        new_lines = self.new_content.splitlines(keepends=True)
        old_name = "/dev/null" if self.is_new_file else self.path
        new_name = "/dev/null" if self.is_deletion else self.path
        return "".join(difflib.unified_diff(old_lines, new_lines, fromfile=old_name, tofile=new_name))


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one tool invocation. Created once, never mutated."""
    success: bool
    output: str = ""
    error: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    truncated: bool = False
    diff: Optional[FileDiff] = None
    exit_code: Optional[int] = None

    @classmethod
    def success_result(cls, output: str, **kwargs) -> "ToolResult":
        return cls(success=True, output=output, **kwargs)

    @classmethod
    def error_result(cls, error: str, output: str = "", **kwargs) -> "ToolResult":
        return cls(success=False, output=output, error=error, **kwargs)

    def to_model_output(self) -> str:
        """Text fed back to the model as the tool message content."""
        if self.success:
            return self.output
        return f"Error: {self.error}\n\nOutput:\n{self.output}"


@dataclass
class ToolInvocation:
    """Parameters plus the working directory a tool runs against."""
    params: dict
    cwd: str


@dataclass
class ToolConfirmation:
    """What a mutating tool is about to do, shown to the approver."""
    tool_name: str
    params: dict
    description: str
    diff: Optional[FileDiff] = None
    affected_paths: list[str] = field(default_factory=list)
    command: Optional[str] = None
    is_dangerous: bool = False
