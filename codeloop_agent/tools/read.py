"""
Read Tool — Read text files with line numbers, offset/limit support.
"""

from __future__ import annotations
import os
from pathlib import Path

from .base import BaseTool, resolve_path
from ..core.models import ToolInvocation, ToolKind, ToolResult
from ..core.token_counter import estimate_tokens

MAX_FILE_SIZE = 10 * 1024 * 1024
MAX_OUTPUT_TOKENS = 25_000


def is_binary_file(path: str) -> bool:
    """A NUL byte in the first 8KB marks a file as binary."""
    try:
        with open(path, "rb") as f:
            return b"\x00" in f.read(8192)
    except OSError:
        return False


class ReadFileTool(BaseTool):
    name = "read_file"
    description = (
        "Read the contents of a text file. Returns the content with line numbers. "
        "For large files, use offset and limit to read specific portions. "
        "Cannot read binary files."
    )
    kind = ToolKind.READ
    input_schema = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the file (relative to the working directory or absolute)",
            },
            "offset": {
                "type": "integer",
                "description": "Line number to start reading from (1-based, default 1)",
            },
            "limit": {
                "type": "integer",
                "description": "Maximum number of lines to read (default: whole file)",
            },
        },
        "required": ["path"],
    }

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        params = invocation.params
        target = resolve_path(invocation.cwd, params["path"])

        if not os.path.exists(target):
            return self._error(f"File not found: {target}")
        if not os.path.isfile(target):
            return self._error(f"Path is not a file: {target}")

        size = os.path.getsize(target)
        if size > MAX_FILE_SIZE:
            return self._error(
                f"File too large ({size / (1024 * 1024):.1f}MB). "
                f"Maximum is {MAX_FILE_SIZE // (1024 * 1024)}MB."
            )
        if is_binary_file(target):
            return self._error(f"Cannot read binary file: {Path(target).name} ({size} bytes)")

        try:
            content = Path(target).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            return self._error(f"Failed to read file: {e}")

        if not content:
            return self._success("File is empty.", metadata={"path": target, "total_lines": 0})

        lines = content.splitlines()
        total = len(lines)
        start = max(0, int(params.get("offset") or 1) - 1)
        limit = params.get("limit")
        end = min(start + int(limit), total) if limit else total

        output = "\n".join(f"{i:>6}|{line}" for i, line in enumerate(lines[start:end], start=start + 1))

        truncated = False
        max_chars = MAX_OUTPUT_TOKENS * 4
        if estimate_tokens(output) > MAX_OUTPUT_TOKENS:
            output = output[:max_chars] + f"\n... [truncated, {total} total lines]"
            truncated = True

        if start > 0 or end < total:
            output = f"Showing lines {start + 1}-{end} of {total}\n\n{output}"

        return self._success(
            output,
            truncated=truncated,
            metadata={"path": target, "total_lines": total, "shown_start": start + 1, "shown_end": end},
        )
