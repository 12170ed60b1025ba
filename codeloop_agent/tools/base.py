"""
Base tool class — all tools inherit from this.
Defines the standard interface: name, description, kind, schema, execute().
"""

from __future__ import annotations
import os
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from ..core.models import (
    MUTATING_KINDS,
    ToolConfirmation,
    ToolInvocation,
    ToolKind,
    ToolResult,
    ToolSchema,
)

if TYPE_CHECKING:
    from ..config.settings import Config


def resolve_path(cwd: str, path: str) -> str:
    """Resolve *path* against the invocation's working directory."""
    return os.path.abspath(os.path.join(cwd, os.path.expanduser(path)))


def truncate_text(text: str, limit: int, suffix: str = "\n[Output truncated]") -> tuple[str, bool]:
    if len(text) <= limit:
        return text, False
    return text[:limit] + suffix, True


class BaseTool(ABC):
    """Abstract base class for all agent tools."""

    name: str = ""
    description: str = ""
    kind: ToolKind = ToolKind.READ
    input_schema: dict = {"type": "object", "properties": {}, "required": []}

    def __init__(self, config: Optional[Config] = None):
        self.config = config

    @abstractmethod
    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        """
        Execute the tool against ``invocation.params`` in ``invocation.cwd``.
        Must return a ToolResult; exceptions are caught by the registry.
        """

    def validate_params(self, params: dict) -> list[str]:
        """Return one error per missing required parameter."""
        errors = []
        for field_name in self.input_schema.get("required", []):
            if params.get(field_name) is None:
                errors.append(f"Parameter '{field_name}' is required")
        return errors

    def is_mutating(self) -> bool:
        return self.kind in MUTATING_KINDS

    async def get_confirmation(self, invocation: ToolInvocation) -> Optional[ToolConfirmation]:
        """Describe the pending action for the approver; None when read-only."""
        if not self.is_mutating():
            return None
        return ToolConfirmation(
            tool_name=self.name,
            params=invocation.params,
            description=f"Execute {self.name}",
        )

    def get_schema(self) -> ToolSchema:
        """Return the tool's schema for model consumption."""
        return ToolSchema(
            name=self.name,
            description=self.description,
            input_schema=self.input_schema,
        )

    def _success(self, output: str, **kwargs) -> ToolResult:
        """Helper to create a successful result."""
        return ToolResult.success_result(output, **kwargs)

    def _error(self, error: str, output: str = "", **kwargs) -> ToolResult:
        """Helper to create an error result."""
        return ToolResult.error_result(error, output, **kwargs)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, kind={self.kind.value})"
