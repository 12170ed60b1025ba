"""Built-in tool catalogue."""

from __future__ import annotations

from .base import BaseTool
from .edit import EditTool
from .glob_tool import GlobTool
from .grep_tool import GrepTool
from .list_dir import ListDirTool
from .memory_tool import MemoryTool
from .read import ReadFileTool
from .shell import ShellTool
from .string_tools import StringTools
from .todo import TodosTool
from .web_fetch import WebFetchTool
from .web_search import WebSearchTool
from .write import WriteFileTool


def get_all_builtin_tools() -> list[type[BaseTool]]:
    return [
        ReadFileTool,
        WriteFileTool,
        EditTool,
        ListDirTool,
        GlobTool,
        GrepTool,
        ShellTool,
        WebSearchTool,
        WebFetchTool,
        MemoryTool,
        TodosTool,
        StringTools,
    ]
