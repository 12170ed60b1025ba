"""
List Dir Tool — Directory listing, directories suffixed with ``/``.
"""

from __future__ import annotations
import os

from .base import BaseTool, resolve_path
from ..core.models import ToolInvocation, ToolKind, ToolResult


class ListDirTool(BaseTool):
    name = "list_dir"
    description = "List entries in a directory. Directories are shown with a trailing slash."
    kind = ToolKind.READ
    input_schema = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Directory to list (defaults to the working directory)",
            },
            "include_hidden": {
                "type": "boolean",
                "description": "Include dotfiles",
            },
        },
        "required": [],
    }

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        target = resolve_path(invocation.cwd, invocation.params.get("path") or ".")
        if not os.path.exists(target):
            return self._error(f"Directory not found: {target}")
        if not os.path.isdir(target):
            return self._error(f"Path is not a directory: {target}")

        include_hidden = bool(invocation.params.get("include_hidden"))
        entries = []
        with os.scandir(target) as it:
            for entry in it:
                if not include_hidden and entry.name.startswith("."):
                    continue
                entries.append(entry.name + ("/" if entry.is_dir() else ""))
        entries.sort()
        return self._success("\n".join(entries) or "(empty)", metadata={"path": target, "entries": len(entries)})
