"""
Grep Tool — Regex search over the text files under a directory.
"""

from __future__ import annotations
import os
import re

from .base import BaseTool, resolve_path
from .read import is_binary_file
from ..core.models import ToolInvocation, ToolKind, ToolResult

SKIP_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv"}
MAX_PATTERN_LENGTH = 1000
MAX_MATCHES = 1000


class GrepTool(BaseTool):
    name = "grep"
    description = (
        "Search file contents with a regular expression. "
        "Returns matches as path:line:text."
    )
    kind = ToolKind.READ
    input_schema = {
        "type": "object",
        "properties": {
            "pattern": {
                "type": "string",
                "description": "Regex pattern to search for",
            },
            "path": {
                "type": "string",
                "description": "File or directory to search (defaults to the working directory)",
            },
            "case_insensitive": {
                "type": "boolean",
                "description": "Case-insensitive search",
            },
        },
        "required": ["pattern"],
    }

    @staticmethod
    def _iter_files(base: str):
        if os.path.isfile(base):
            yield base
            return
        for root, dirs, files in os.walk(base):
            dirs[:] = sorted(d for d in dirs if d not in SKIP_DIRS)
            for name in sorted(files):
                yield os.path.join(root, name)

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        params = invocation.params
        pattern = str(params["pattern"])
        base = resolve_path(invocation.cwd, params.get("path") or ".")

        if len(pattern) > MAX_PATTERN_LENGTH:
            return self._error(f"Pattern too long ({len(pattern)} > {MAX_PATTERN_LENGTH} chars)")
        if not os.path.exists(base):
            return self._error(f"Path not found: {base}")

        flags = re.IGNORECASE if params.get("case_insensitive") else 0
        try:
            regex = re.compile(pattern, flags)
        except re.error as e:
            return self._error(f"Invalid regex: {e}")

        results: list[str] = []
        files_searched = 0
        total = 0
        for path in self._iter_files(base):
            if is_binary_file(path):
                continue
            files_searched += 1
            try:
                with open(path, encoding="utf-8", errors="replace") as f:
                    for line_no, line in enumerate(f, start=1):
                        if regex.search(line):
                            total += 1
                            if len(results) < MAX_MATCHES:
                                results.append(f"{path}:{line_no}:{line.rstrip()}")
            except OSError:
                continue

        output = "\n".join(results) or "(no matches)"
        if total > MAX_MATCHES:
            output += f"\n\n[Showing {MAX_MATCHES} of {total} matches]"
        return self._success(
            output,
            truncated=total > MAX_MATCHES,
            metadata={"matches": total, "files_searched": files_searched},
        )
