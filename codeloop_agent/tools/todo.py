"""
Todos Tool — In-session task list for multi-step work.
"""

from __future__ import annotations
import uuid

from .base import BaseTool
from ..core.models import ToolInvocation, ToolKind, ToolResult


class TodosTool(BaseTool):
    name = "todos"
    description = (
        "Manage a task list for the current session. Use this to track progress on "
        "multi-step tasks. Actions: 'add', 'complete', 'list', 'clear'."
    )
    kind = ToolKind.MEMORY
    input_schema = {
        "type": "object",
        "properties": {
            "action": {
                "type": "string",
                "enum": ["add", "complete", "list", "clear"],
                "description": "The action to perform",
            },
            "id": {
                "type": "string",
                "description": "Todo ID (for complete)",
            },
            "content": {
                "type": "string",
                "description": "Todo content (for add)",
            },
        },
        "required": ["action"],
    }

    def __init__(self, config=None):
        super().__init__(config)
        self._todos: dict[str, str] = {}

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        params = invocation.params
        action = str(params["action"]).lower()

        if action == "add":
            content = params.get("content")
            if not content:
                return self._error("`content` required for 'add' action")
            todo_id = uuid.uuid4().hex[:8]
            self._todos[todo_id] = content
            return self._success(f"Added todo [{todo_id}]: {content}", metadata={"id": todo_id})

        if action == "complete":
            todo_id = params.get("id")
            if not todo_id:
                return self._error("`id` required for 'complete' action")
            if todo_id not in self._todos:
                return self._error(f"Todo not found: {todo_id}")
            content = self._todos.pop(todo_id)
            return self._success(f"Completed todo [{todo_id}]: {content}")

        if action == "list":
            if not self._todos:
                return self._success("No todos")
            lines = ["Todos:"] + [f"  [{i}] {c}" for i, c in self._todos.items()]
            return self._success("\n".join(lines))

        if action == "clear":
            count = len(self._todos)
            self._todos.clear()
            return self._success(f"Cleared {count} todos")

        return self._error(f"Unknown action: {params['action']}")
