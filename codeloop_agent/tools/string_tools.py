"""
String Tools — Common text manipulations without spawning a shell.

Regex actions take JavaScript-style flag letters: ``g`` replaces every match,
``i``, ``m`` and ``s`` map to the matching ``re`` flags.
"""

from __future__ import annotations
import json
import re

from .base import BaseTool
from ..core.models import ToolInvocation, ToolKind, ToolResult

ACTIONS = ["replace", "regex_replace", "extract", "split", "join", "to_upper", "to_lower", "trim"]

_FLAG_MAP = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}


def compile_pattern(pattern: str, flags: str = "") -> tuple[re.Pattern, bool]:
    """Compile *pattern*; returns (regex, global) for the given flag letters."""
    re_flags = 0
    for letter in flags:
        if letter == "g":
            continue
        if letter not in _FLAG_MAP:
            raise ValueError(f"Unsupported regex flag: {letter}")
        re_flags |= _FLAG_MAP[letter]
    return re.compile(pattern, re_flags), "g" in flags


class StringTools(BaseTool):
    name = "string_tools"
    description = (
        "Perform common string manipulations: replace, regex_replace, extract, "
        "split, join, to_upper, to_lower, trim."
    )
    kind = ToolKind.READ
    input_schema = {
        "type": "object",
        "properties": {
            "action": {
                "type": "string",
                "enum": ACTIONS,
                "description": "The action to perform",
            },
            "input": {"type": "string", "description": "Input string"},
            "pattern": {"type": "string", "description": "Substring or regular expression"},
            "replacement": {"type": "string", "description": "Replacement string"},
            "flags": {"type": "string", "description": "Regex flags, e.g. 'gi'"},
            "delimiter": {"type": "string", "description": "Delimiter for split/join (default ',')"},
            "items": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Items for join",
            },
            "index": {"type": "integer", "description": "Group index for extract (default 0)"},
        },
        "required": ["action"],
    }

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        params = invocation.params
        action = str(params["action"]).lower()
        text = str(params.get("input") or "")
        pattern = params.get("pattern")
        replacement = str(params.get("replacement") or "")
        delimiter = params.get("delimiter")
        if delimiter is None:
            delimiter = ","

        if action in ("replace", "regex_replace", "extract") and not pattern:
            return self._error(f"`pattern` required for '{action}' action")

        if action == "replace":
            return self._success(text.replace(pattern, replacement, 1))

        if action in ("regex_replace", "extract"):
            try:
                regex, replace_all = compile_pattern(pattern, str(params.get("flags") or ""))
            except (re.error, ValueError) as e:
                return self._error(f"Invalid pattern: {e}")

            if action == "regex_replace":
                # group references use \1, not $1
                try:
                    return self._success(regex.sub(replacement, text, count=0 if replace_all else 1))
                except re.error as e:
                    return self._error(f"Invalid replacement: {e}")

            match = regex.search(text)
            if match is None:
                return self._success("No match")
            try:
                group = match.group(int(params.get("index") or 0))
            except (IndexError, ValueError):
                return self._error(f"No group {params.get('index')} in pattern")
            return self._success(group or "")

        if action == "split":
            if not delimiter:
                return self._success(json.dumps(list(text)))
            return self._success(json.dumps(text.split(delimiter)))

        if action == "join":
            items = params.get("items") or []
            return self._success(delimiter.join(str(i) for i in items))

        if action == "to_upper":
            return self._success(text.upper())

        if action == "to_lower":
            return self._success(text.lower())

        if action == "trim":
            return self._success(text.strip())

        return self._error(f"Unknown action: {params['action']}")
