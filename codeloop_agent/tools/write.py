"""
Write Tool — Create or overwrite a file, reporting a diff of the change.
"""

from __future__ import annotations
import os
from pathlib import Path

from .base import BaseTool, resolve_path
from ..core.models import FileDiff, ToolConfirmation, ToolInvocation, ToolKind, ToolResult


def read_existing(path: str) -> tuple[str, bool]:
    """(content, exists) for *path*; missing paths and non-files read as empty."""
    if not os.path.isfile(path):
        return "", os.path.exists(path)
    return Path(path).read_text(encoding="utf-8", errors="replace"), True


class WriteFileTool(BaseTool):
    name = "write_file"
    description = (
        "Write content to a file. Creates the file or overwrites it completely. "
        "Use for new files or full rewrites; use edit for targeted changes."
    )
    kind = ToolKind.WRITE
    input_schema = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the file (relative to the working directory or absolute)",
            },
            "content": {
                "type": "string",
                "description": "File content to write",
            },
            "create_directories": {
                "type": "boolean",
                "description": "Create missing parent directories",
            },
        },
        "required": ["path", "content"],
    }

    async def get_confirmation(self, invocation: ToolInvocation) -> ToolConfirmation:
        target = resolve_path(invocation.cwd, invocation.params["path"])
        old_content, exists = read_existing(target)
        return ToolConfirmation(
            tool_name=self.name,
            params=invocation.params,
            description=f"{'Overwrite' if exists else 'Create'} file: {target}",
            diff=FileDiff(target, old_content, str(invocation.params["content"]), is_new_file=not exists),
            affected_paths=[target],
        )

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        params = invocation.params
        target = resolve_path(invocation.cwd, params["path"])
        content = str(params["content"])

        if os.path.isdir(target):
            return self._error(f"Path is a directory: {target}")
        if params.get("create_directories"):
            os.makedirs(os.path.dirname(target), exist_ok=True)

        try:
            old_content, exists = read_existing(target)
            with open(target, "w", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            return self._error(f"Failed to write file: {e}")

        line_count = len(content.splitlines())
        return self._success(
            f"Wrote {target} ({line_count} lines)",
            diff=FileDiff(target, old_content, content, is_new_file=not exists),
            metadata={"path": target, "is_new_file": not exists, "lines": line_count},
        )
