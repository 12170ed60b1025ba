"""
Memory Tool — Lets the agent store and retrieve knowledge across sessions.

Actions:
  set    — Store a value under a key
  get    — Retrieve a value by key
  delete — Remove an entry
  list   — Show every entry
  clear  — Remove every entry

Entries live in ``{data_dir}/user_memory.json`` as ``{"entries": {...}}``
and are injected into the system prompt of later sessions.
"""

from __future__ import annotations
import json
import logging
import os
from pathlib import Path

from .base import BaseTool
from ..core.models import ToolInvocation, ToolKind, ToolResult

logger = logging.getLogger(__name__)

MEMORY_FILE = "user_memory.json"


class MemoryTool(BaseTool):
    """Persistent key/value memory for user preferences and notes."""

    name = "memory"
    description = (
        "Store and retrieve persistent memory. Use this to remember user preferences, "
        "important context or notes. Actions: 'set', 'get', 'delete', 'list', 'clear'."
    )
    kind = ToolKind.MEMORY
    input_schema = {
        "type": "object",
        "properties": {
            "action": {
                "type": "string",
                "enum": ["set", "get", "delete", "list", "clear"],
                "description": "The action to perform.",
            },
            "key": {
                "type": "string",
                "description": "Memory key (required for set, get, delete).",
            },
            "value": {
                "type": "string",
                "description": "Value to store (required for set).",
            },
        },
        "required": ["action"],
    }

    @property
    def memory_path(self) -> Path:
        if self.config is not None:
            data_dir = Path(self.config.data_dir)
        else:
            from ..config.settings import get_data_dir
            data_dir = get_data_dir()
        return data_dir / MEMORY_FILE

    def _load(self) -> dict[str, str]:
        path = self.memory_path
        if not path.exists():
            return {}
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Resetting unreadable memory file {path}: {e}")
            return {}
        entries = data.get("entries") if isinstance(data, dict) else None
        return dict(entries) if isinstance(entries, dict) else {}

    def _save(self, entries: dict[str, str]) -> None:
        path = self.memory_path
        os.makedirs(path.parent, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({"entries": entries}, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        params = invocation.params
        action = str(params["action"]).lower()
        key = params.get("key")
        value = params.get("value")

        if action == "set":
            if not key or value is None:
                return self._error("`key` and `value` are required for 'set' action")
            entries = self._load()
            entries[key] = str(value)
            self._save(entries)
            return self._success(f"Set memory: {key}")

        if action == "get":
            if not key:
                return self._error("`key` required for 'get' action")
            entries = self._load()
            if key not in entries:
                return self._success(f"Memory not found: {key}", metadata={"found": False})
            return self._success(f"Memory found: {key}: {entries[key]}", metadata={"found": True})

        if action == "delete":
            if not key:
                return self._error("`key` required for 'delete' action")
            entries = self._load()
            if key not in entries:
                return self._success(f"Memory not found: {key}", metadata={"found": False})
            del entries[key]
            self._save(entries)
            return self._success(f"Deleted memory: {key}")

        if action == "list":
            entries = self._load()
            if not entries:
                return self._success("No memories stored", metadata={"found": False})
            lines = ["Stored memories:"] + [f"  {k}: {v}" for k, v in entries.items()]
            return self._success("\n".join(lines), metadata={"found": True})

        if action == "clear":
            count = len(self._load())
            self._save({})
            return self._success(f"Cleared {count} memory entries")

        return self._error(f"Unknown action: {params['action']}")
