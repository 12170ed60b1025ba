"""
Glob Tool — File pattern matching, newest first.
"""

from __future__ import annotations
from pathlib import Path

from .base import BaseTool, resolve_path
from ..core.models import ToolInvocation, ToolKind, ToolResult

MAX_RESULTS = 500


class GlobTool(BaseTool):
    name = "glob"
    description = (
        "Find files matching a glob pattern such as '**/*.py' or 'src/**/*.ts'. "
        "Returns absolute paths sorted by modification time (newest first)."
    )
    kind = ToolKind.READ
    input_schema = {
        "type": "object",
        "properties": {
            "pattern": {
                "type": "string",
                "description": "Glob pattern to match files against",
            },
            "path": {
                "type": "string",
                "description": "Base directory to search (defaults to the working directory)",
            },
        },
        "required": ["pattern"],
    }

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        params = invocation.params
        pattern = str(params["pattern"])
        base = Path(resolve_path(invocation.cwd, params.get("path") or "."))

        if not base.is_dir():
            return self._error(f"Directory not found: {base}")

        try:
            files = [p for p in base.glob(pattern) if p.is_file()]
        except (ValueError, OSError) as e:
            return self._error(f"Glob failed: {e}")

        files.sort(key=lambda p: p.stat().st_mtime, reverse=True)
        if not files:
            return self._success("(no matches)", metadata={"matches": 0})

        lines = [str(p) for p in files[:MAX_RESULTS]]
        if len(files) > MAX_RESULTS:
            lines.append(f"\n[Showing {MAX_RESULTS} of {len(files)} matches]")
        return self._success(
            "\n".join(lines),
            truncated=len(files) > MAX_RESULTS,
            metadata={"matches": len(files)},
        )
