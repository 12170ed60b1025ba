"""
Hook System — run user-configured shell commands at fixed trigger points.

Triggers: before_agent, after_agent, before_tool, after_tool, on_error.

Each hook is either a ``command`` (run through the shell) or an inline
``script`` (written to a temporary ``hook.sh``).  Hooks run in the agent's
working directory in their own process group; on timeout the whole group is
killed.  Context is passed through environment variables:

    AI_AGENT_TRIGGER        trigger name
    AI_AGENT_CWD            working directory
    AI_AGENT_TOOL_NAME      tool hooks only
    AI_AGENT_TOOL_PARAMS    tool hooks only, JSON
    AI_AGENT_TOOL_RESULT    after_tool only
    AI_AGENT_USER_MESSAGE   agent hooks
    AI_AGENT_RESPONSE       after_agent, when the agent produced text
    AI_AGENT_ERROR          on_error

Hook failures are logged and swallowed; they never reach the agent loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import signal
import tempfile
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .models import ToolResult

logger = logging.getLogger(__name__)


class HookTrigger(str, Enum):
    BEFORE_AGENT = "before_agent"
    AFTER_AGENT = "after_agent"
    BEFORE_TOOL = "before_tool"
    AFTER_TOOL = "after_tool"
    ON_ERROR = "on_error"


@dataclass
class HookConfig:
    name: str
    trigger: HookTrigger
    command: Optional[str] = None
    script: Optional[str] = None
    timeout_sec: float = 30
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "HookConfig":
        return cls(
            name=data.get("name", "hook"),
            trigger=HookTrigger(data["trigger"]),
            command=data.get("command"),
            script=data.get("script"),
            timeout_sec=float(data.get("timeout_sec", 30)),
            enabled=bool(data.get("enabled", True)),
        )


class HookSystem:
    """Dispatches hook commands for the agent loop and the tool registry."""

    def __init__(self, hooks: Optional[list[HookConfig]] = None, cwd: str = ".",
                 enabled: bool = False):
        self.cwd = cwd
        self.hooks = [h for h in (hooks or []) if h.enabled] if enabled else []

    # ── Process handling ───────────────────────────────────

    async def _run_command(self, command: str, timeout: float, env: dict) -> None:
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
            cwd=self.cwd,
            env=env,
            start_new_session=True,
        )
        try:
            await asyncio.wait_for(process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Hook timed out after {timeout}s: {command}")
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            await process.wait()

    async def _run_hook(self, hook: HookConfig, env: dict) -> None:
        try:
            if hook.command:
                await self._run_command(hook.command, hook.timeout_sec, env)
                return
            tmp_dir = tempfile.mkdtemp(prefix="codeloop-hook-")
            try:
                script_path = os.path.join(tmp_dir, "hook.sh")
                with open(script_path, "w", encoding="utf-8") as f:
                    f.write(f"#!/bin/bash\n{hook.script or ''}")
                os.chmod(script_path, 0o755)
                await self._run_command(script_path, hook.timeout_sec, env)
            finally:
                shutil.rmtree(tmp_dir, ignore_errors=True)
        except Exception as e:
            logger.error(f"Hook {hook.name!r} failed: {e}")

    def _build_env(self, trigger: HookTrigger, tool_name: Optional[str] = None,
                   user_message: Optional[str] = None,
                   error: Optional[BaseException] = None) -> dict:
        env = dict(os.environ)
        env["AI_AGENT_TRIGGER"] = trigger.value
        env["AI_AGENT_CWD"] = self.cwd
        if tool_name:
            env["AI_AGENT_TOOL_NAME"] = tool_name
        if user_message:
            env["AI_AGENT_USER_MESSAGE"] = user_message
        if error is not None:
            env["AI_AGENT_ERROR"] = str(error)
        return env

    async def _dispatch(self, trigger: HookTrigger, env: dict) -> None:
        for hook in self.hooks:
            if hook.trigger == trigger:
                await self._run_hook(hook, env)

    # ── Triggers ──────────────────────────────────────────

    async def trigger_before_agent(self, user_message: str) -> None:
        env = self._build_env(HookTrigger.BEFORE_AGENT, user_message=user_message)
        await self._dispatch(HookTrigger.BEFORE_AGENT, env)

    async def trigger_after_agent(self, user_message: str, response: Optional[str]) -> None:
        env = self._build_env(HookTrigger.AFTER_AGENT, user_message=user_message)
        if response:
            env["AI_AGENT_RESPONSE"] = response
        await self._dispatch(HookTrigger.AFTER_AGENT, env)

    async def trigger_before_tool(self, tool_name: str, params: dict) -> None:
        env = self._build_env(HookTrigger.BEFORE_TOOL, tool_name=tool_name)
        env["AI_AGENT_TOOL_PARAMS"] = json.dumps(params, default=str)
        await self._dispatch(HookTrigger.BEFORE_TOOL, env)

    async def trigger_after_tool(self, tool_name: str, params: dict, result: ToolResult) -> None:
        env = self._build_env(HookTrigger.AFTER_TOOL, tool_name=tool_name)
        env["AI_AGENT_TOOL_PARAMS"] = json.dumps(params, default=str)
        env["AI_AGENT_TOOL_RESULT"] = result.to_model_output()
        await self._dispatch(HookTrigger.AFTER_TOOL, env)

    async def trigger_on_error(self, error: BaseException) -> None:
        env = self._build_env(HookTrigger.ON_ERROR, error=error)
        await self._dispatch(HookTrigger.ON_ERROR, env)
