"""
Exception types raised outside the agent loop.

Inside a run, failures travel as ToolResult errors and agent_error events;
only startup problems raise.
"""

from __future__ import annotations
from typing import Optional


class AgentError(Exception):
    """Base class for errors raised by codeloop_agent."""


class ConfigError(AgentError):
    """Invalid or unreadable configuration. Fatal at startup."""

    def __init__(self, message: str, config_file: Optional[str] = None):
        super().__init__(message)
        self.config_file = config_file

    def __str__(self) -> str:
        message = super().__str__()
        if self.config_file and self.config_file not in message:
            return f"{message} ({self.config_file})"
        return message


class MCPError(AgentError):
    """A Model Context Protocol server misbehaved."""
