"""
Shell Tool — Execute shell commands in the invocation's working directory.

Each command runs in its own process group so a timeout can kill the whole
tree.  The child's environment is filtered through the configured
ShellEnvironmentPolicy before launch.
"""

from __future__ import annotations
import asyncio
import fnmatch
import logging
import os
import signal
from typing import Optional

from .base import BaseTool, resolve_path, truncate_text
from ..core.models import ToolConfirmation, ToolInvocation, ToolKind, ToolResult

logger = logging.getLogger(__name__)

BLOCKED_COMMANDS = [
    "rm -rf /",
    "rm -rf ~",
    "rm -rf /*",
    "dd if=/dev/zero",
    "dd if=/dev/random",
    "mkfs",
    "fdisk",
    "parted",
    ":(){ :|:& };:",
    "chmod 777 /",
    "chmod -R 777",
    "shutdown",
    "reboot",
    "halt",
    "poweroff",
    "init 0",
    "init 6",
]

MAX_OUTPUT_CHARS = 100 * 1024
DEFAULT_TIMEOUT = 120
MAX_TIMEOUT = 600


def find_blocked(command: str) -> Optional[str]:
    for blocked in BLOCKED_COMMANDS:
        if blocked in command:
            return blocked
    return None


class ShellTool(BaseTool):
    name = "shell"
    description = (
        "Execute a shell command. Use this for running system commands, scripts and CLI tools. "
        "Prefer read_file, edit, glob and grep for file operations."
    )
    kind = ToolKind.SHELL
    input_schema = {
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": "The shell command to execute",
            },
            "timeout": {
                "type": "integer",
                "description": f"Timeout in seconds (default {DEFAULT_TIMEOUT}, max {MAX_TIMEOUT})",
            },
            "cwd": {
                "type": "string",
                "description": "Working directory for the command",
            },
        },
        "required": ["command"],
    }

    async def get_confirmation(self, invocation: ToolInvocation) -> ToolConfirmation:
        command = str(invocation.params.get("command", ""))
        dangerous = find_blocked(command) is not None
        label = "Execute (BLOCKED)" if dangerous else "Execute"
        return ToolConfirmation(
            tool_name=self.name,
            params=invocation.params,
            description=f"{label}: {command}",
            command=command,
            is_dangerous=dangerous,
        )

    def build_environment(self) -> dict[str, str]:
        """Copy of os.environ minus excluded names, plus configured overrides."""
        env = dict(os.environ)
        policy = self.config.shell_environment if self.config else None
        if policy is None:
            return env
        if not policy.ignore_default_excludes:
            for pattern in policy.exclude_patterns:
                for key in list(env):
                    if fnmatch.fnmatch(key.upper(), pattern.upper()):
                        del env[key]
        env.update({k: str(v) for k, v in policy.set_vars.items()})
        return env

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        params = invocation.params
        command = str(params["command"]).strip()

        blocked = find_blocked(command)
        if blocked:
            return self._error(f"Command blocked for safety: {command}", metadata={"blocked": True})

        cwd = resolve_path(invocation.cwd, params["cwd"]) if params.get("cwd") else invocation.cwd
        if not os.path.isdir(cwd):
            return self._error(f"Working directory doesn't exist: {cwd}")

        try:
            timeout = min(max(int(params.get("timeout") or DEFAULT_TIMEOUT), 1), MAX_TIMEOUT)
        except (TypeError, ValueError):
            return self._error(f"Invalid timeout: {params.get('timeout')!r}")

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=self.build_environment(),
                start_new_session=True,
            )
        except OSError as e:
            return self._error(f"Failed to execute: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            self._kill_group(process)
            await process.wait()
            logger.warning(f"Shell command timed out after {timeout}s: {command[:80]}")
            return self._error(f"Command timed out after {timeout}s")

        stdout_str = stdout.decode("utf-8", errors="replace")
        stderr_str = stderr.decode("utf-8", errors="replace")
        code = process.returncode or 0

        output = stdout_str.rstrip() if stdout_str.strip() else ""
        if stderr_str.strip():
            output += f"\n--- stderr ---\n{stderr_str.rstrip()}"
        if code != 0:
            output += f"\nExit code: {code}"
        output, truncated = truncate_text(output, MAX_OUTPUT_CHARS, "\n... [output truncated]")

        if code != 0:
            return self._error(
                stderr_str.strip() or f"Exit code: {code}",
                output,
                truncated=truncated,
                exit_code=code,
            )
        return self._success(output, truncated=truncated, exit_code=0)

    @staticmethod
    def _kill_group(process: asyncio.subprocess.Process) -> None:
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
