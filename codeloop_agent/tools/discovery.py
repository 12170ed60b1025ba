"""
Tool Discovery — loads project-local tools from ``.codeloop/tools/*.py``.

Every BaseTool subclass defined in such a module is instantiated with the
session config and registered.  Looked up in the working directory and in
the user config directory.  A module that fails to import is skipped with
a warning.
"""

from __future__ import annotations
import importlib.util
import inspect
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from .base import BaseTool

if TYPE_CHECKING:
    from ..config.settings import Config
    from ..core.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


class ToolDiscoveryManager:

    def __init__(self, config: Config, registry: ToolRegistry):
        self.config = config
        self.registry = registry

    @staticmethod
    def _load_module(path: Path):
        spec = importlib.util.spec_from_file_location(f"codeloop_user_tools.{path.stem}", path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot load {path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module

    @staticmethod
    def _find_tool_classes(module) -> list[type[BaseTool]]:
        return [
            obj for _, obj in inspect.getmembers(module, inspect.isclass)
            if issubclass(obj, BaseTool) and obj is not BaseTool
            and not inspect.isabstract(obj) and obj.__module__ == module.__name__
        ]

    def discover_from_directory(self, directory: Path) -> int:
        tool_dir = Path(directory) / ".codeloop" / "tools"
        if not tool_dir.is_dir():
            return 0
        count = 0
        for path in sorted(tool_dir.glob("*.py")):
            if path.name.startswith("__"):
                continue
            try:
                module = self._load_module(path)
            except Exception as e:
                logger.warning(f"Skipping tool module {path}: {e}")
                continue
            for tool_class in self._find_tool_classes(module):
                self.registry.register(tool_class(self.config))
                count += 1
                logger.info(f"Discovered tool {tool_class.name!r} in {path}")
        return count

    def discover_all(self) -> int:
        from ..config.settings import get_config_dir

        count = self.discover_from_directory(Path(self.config.cwd))
        # The config dir holds tools under <config dir>/.codeloop/tools as well
        count += self.discover_from_directory(get_config_dir())
        return count
