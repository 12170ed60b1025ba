"""
Edit Tool — Exact string replacement inside a file.

``old_string`` must match exactly and be unique unless ``replace_all`` is
set.  An empty ``old_string`` on a missing path creates the file.
"""

from __future__ import annotations
import os

from .base import BaseTool, resolve_path
from .write import read_existing
from ..core.models import FileDiff, ToolConfirmation, ToolInvocation, ToolKind, ToolResult


class EditTool(BaseTool):
    name = "edit"
    description = (
        "Edit a file by replacing text. old_string must match exactly (including whitespace "
        "and indentation) and must be unique in the file unless replace_all is true. "
        "To create a new file, pass an empty old_string."
    )
    kind = ToolKind.WRITE
    input_schema = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the file (relative to the working directory or absolute)",
            },
            "old_string": {
                "type": "string",
                "description": "Exact text to replace; empty to create a new file",
            },
            "new_string": {
                "type": "string",
                "description": "Replacement text (may be empty to delete)",
            },
            "replace_all": {
                "type": "boolean",
                "description": "Replace every occurrence (default false)",
            },
        },
        "required": ["path", "new_string"],
    }

    @staticmethod
    def _apply(content: str, old: str, new: str, replace_all: bool) -> str:
        return content.replace(old, new) if replace_all else content.replace(old, new, 1)

    async def get_confirmation(self, invocation: ToolInvocation) -> ToolConfirmation:
        params = invocation.params
        target = resolve_path(invocation.cwd, params["path"])
        old_content, exists = read_existing(target)
        if not exists:
            diff = FileDiff(target, "", str(params["new_string"]), is_new_file=True)
            description = f"Create new file: {target}"
        else:
            new_content = self._apply(
                old_content, params.get("old_string") or "", str(params["new_string"]),
                bool(params.get("replace_all")),
            )
            diff = FileDiff(target, old_content, new_content)
            description = f"Edit file: {target}"
        return ToolConfirmation(
            tool_name=self.name,
            params=params,
            description=description,
            diff=diff,
            affected_paths=[target],
        )

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        params = invocation.params
        target = resolve_path(invocation.cwd, params["path"])
        old_string = params.get("old_string") or ""
        new_string = str(params["new_string"])
        replace_all = bool(params.get("replace_all"))

        if os.path.isdir(target):
            return self._error(f"Path is a directory: {target}")
        if not os.path.exists(target):
            if old_string:
                return self._error(
                    f"File does not exist: {target}. To create a new file, use an empty old_string."
                )
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "w", encoding="utf-8") as f:
                f.write(new_string)
            return self._success(
                f"Created {target} ({len(new_string.splitlines())} lines)",
                diff=FileDiff(target, "", new_string, is_new_file=True),
                metadata={"path": target, "is_new_file": True},
            )

        old_content, _ = read_existing(target)
        if not old_string:
            return self._error(
                "old_string is empty but the file exists. Provide old_string to edit, "
                "or use write_file to overwrite."
            )

        occurrences = old_content.count(old_string)
        if occurrences == 0:
            return self._error(self._no_match_message(old_string, old_content, target))
        if occurrences > 1 and not replace_all:
            return self._error(
                f"old_string found {occurrences} times in {target}. Provide more context "
                "to make the match unique, or set replace_all=true.",
                metadata={"occurrence_count": occurrences},
            )

        new_content = self._apply(old_content, old_string, new_string, replace_all)
        if new_content == old_content:
            return self._error("No change made: old_string equals new_string")

        try:
            with open(target, "w", encoding="utf-8") as f:
                f.write(new_content)
        except OSError as e:
            return self._error(f"Failed to write file: {e}")

        replaced = occurrences if replace_all else 1
        line_diff = len(new_content.splitlines()) - len(old_content.splitlines())
        suffix = f" ({line_diff:+d} lines)" if line_diff else ""
        return self._success(
            f"Edited {target}: replaced {replaced} occurrence(s){suffix}",
            diff=FileDiff(target, old_content, new_content),
            metadata={"path": target, "replaced_count": replaced, "line_diff": line_diff},
        )

    @staticmethod
    def _no_match_message(old_string: str, content: str, target: str) -> str:
        message = f"old_string not found in {target}."
        terms = old_string.split()
        if not terms:
            return message
        similar = [
            (i, line.strip()[:80])
            for i, line in enumerate(content.splitlines(), start=1)
            if terms[0] in line
        ][:3]
        if similar:
            message += "\n\nPossible similar lines:"
            for line_no, preview in similar:
                message += f"\n  Line {line_no}: {preview}"
        message += "\n\nMake sure old_string matches exactly, including whitespace and indentation."
        return message
