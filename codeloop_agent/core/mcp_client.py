"""
MCP Client — Model Context Protocol client for external tool servers.

Implements JSON-RPC over stdio to:
  1. Start a server process and run the initialize handshake
  2. Discover its tools (tools/list)
  3. Execute tool calls (tools/call)

Servers are configured under ``mcp_servers`` in the config file:

  mcp_servers:
    github:
      command: "npx"
      args: ["-y", "@modelcontextprotocol/server-github"]
      env:
        GITHUB_TOKEN: "..."
      startup_timeout_sec: 10

A server definition carries exactly one of ``command`` (stdio) or ``url``.
Only stdio is spoken here; url servers are reported as unsupported.
"""

from __future__ import annotations
import asyncio
import itertools
import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .errors import MCPError

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
REQUEST_TIMEOUT = 60


@dataclass
class MCPServerConfig:
    """Configuration for an MCP server."""
    name: str
    command: Optional[str] = None  # stdio transport
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    cwd: Optional[str] = None
    url: Optional[str] = None  # http transport
    enabled: bool = True
    startup_timeout_sec: float = 10

    @classmethod
    def from_dict(cls, name: str, data: dict, base_dir: str = ".") -> "MCPServerConfig":
        cwd = data.get("cwd")
        return cls(
            name=name,
            command=data.get("command"),
            args=[str(a) for a in data.get("args") or []],
            env={str(k): str(v) for k, v in (data.get("env") or {}).items()},
            cwd=os.path.abspath(os.path.join(base_dir, cwd)) if cwd else None,
            url=data.get("url"),
            enabled=bool(data.get("enabled", True)),
            startup_timeout_sec=float(data.get("startup_timeout_sec", 10)),
        )

    def validate(self) -> None:
        if not self.command and not self.url:
            raise ValueError("MCP Server must have either 'command' (stdio) or 'url' (http/sse)")
        if self.command and self.url:
            raise ValueError("MCP Server cannot have both 'command' (stdio) and 'url' (http/sse)")


class MCPServerStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass
class MCPToolInfo:
    """A tool advertised by an MCP server."""
    name: str
    description: str
    input_schema: dict
    server_name: str


class MCPClient:
    """One stdio connection to one MCP server."""

    def __init__(self, config: MCPServerConfig, cwd: str = "."):
        self.config = config
        self.name = config.name
        self.cwd = config.cwd or cwd
        self.status = MCPServerStatus.DISCONNECTED
        self.tools: list[MCPToolInfo] = []
        self._process: Optional[asyncio.subprocess.Process] = None
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        if self.config.url:
            self.status = MCPServerStatus.ERROR
            raise MCPError(f"MCP server '{self.name}': url transport is not supported")

        env = os.environ.copy()
        env.update(self.config.env)
        try:
            self._process = await asyncio.create_subprocess_exec(
                self.config.command, *self.config.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
                cwd=self.cwd,
                env=env,
            )
            await self._request("initialize", {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": "codeloop-agent", "version": "0.1.0"},
            })
            await self._notify("notifications/initialized", {})
            listing = await self._request("tools/list", {})
        except Exception:
            self.status = MCPServerStatus.ERROR
            await self.disconnect()
            raise

        self.tools = [
            MCPToolInfo(
                name=tool["name"],
                description=tool.get("description", ""),
                input_schema=tool.get("inputSchema") or {},
                server_name=self.name,
            )
            for tool in listing.get("tools", [])
        ]
        self.status = MCPServerStatus.CONNECTED
        logger.info(f"MCP server '{self.name}' connected with {len(self.tools)} tools")

    async def disconnect(self) -> None:
        process, self._process = self._process, None
        if process is None or process.returncode is not None:
            return
        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=5)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
        if self.status == MCPServerStatus.CONNECTED:
            self.status = MCPServerStatus.DISCONNECTED

    async def call_tool(self, tool_name: str, arguments: dict) -> dict:
        """Call *tool_name*; returns ``{"output": str, "is_error": bool}``."""
        result = await self._request("tools/call", {"name": tool_name, "arguments": arguments})
        parts = []
        for item in result.get("content", []):
            if item.get("type") == "text":
                parts.append(item.get("text", ""))
            else:
                parts.append(json.dumps(item))
        return {"output": "\n".join(parts), "is_error": bool(result.get("isError", False))}

    # ── JSON-RPC ────────────────────────────────────────────

    async def _write(self, message: dict) -> None:
        if self._process is None or self._process.stdin is None:
            raise MCPError(f"MCP server '{self.name}' is not running")
        self._process.stdin.write((json.dumps(message) + "\n").encode())
        await self._process.stdin.drain()

    async def _notify(self, method: str, params: dict) -> None:
        await self._write({"jsonrpc": "2.0", "method": method, "params": params})

    async def _request(self, method: str, params: dict) -> dict[str, Any]:
        async with self._lock:
            request_id = next(self._ids)
            await self._write({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})
            return await asyncio.wait_for(self._read_response(request_id), timeout=REQUEST_TIMEOUT)

    async def _read_response(self, request_id: int) -> dict[str, Any]:
        assert self._process is not None and self._process.stdout is not None
        while True:
            line = await self._process.stdout.readline()
            if not line:
                raise MCPError(f"MCP server '{self.name}' closed the connection")
            try:
                message = json.loads(line.decode())
            except json.JSONDecodeError:
                logger.debug(f"MCP '{self.name}': ignoring non-JSON line")
                continue
            # Server-initiated notifications and requests are ignored
            if message.get("id") != request_id:
                continue
            if "error" in message:
                raise MCPError(f"MCP '{self.name}' error: {message['error']}")
            return message.get("result") or {}


class MCPManager:
    """Owns the MCP clients of a session and registers their tools."""

    def __init__(self, servers: dict[str, MCPServerConfig], cwd: str = "."):
        self.servers = servers
        self.cwd = cwd
        self.clients: dict[str, MCPClient] = {}
        self._initialized = False

    async def initialize(self) -> None:
        if self._initialized:
            return
        for name, server in self.servers.items():
            if server.enabled:
                self.clients[name] = MCPClient(server, self.cwd)

        async def _connect(client: MCPClient) -> None:
            try:
                await asyncio.wait_for(client.connect(), timeout=client.config.startup_timeout_sec)
            except Exception as e:
                client.status = MCPServerStatus.ERROR
                logger.warning(f"MCP server '{client.name}' failed to start: {e}")

        await asyncio.gather(*(_connect(c) for c in self.clients.values()))
        self._initialized = True

    def register_tools(self, registry) -> int:
        from ..tools.mcp_bridge import MCPBridgeTool

        count = 0
        for client in self.clients.values():
            if client.status != MCPServerStatus.CONNECTED:
                continue
            for info in client.tools:
                registry.register_mcp_tool(MCPBridgeTool(client, info))
                count += 1
        return count

    async def shutdown(self) -> None:
        await asyncio.gather(*(c.disconnect() for c in self.clients.values()))
        self.clients.clear()
        self._initialized = False

    def get_all_servers(self) -> list[dict]:
        return [
            {"name": name, "status": client.status.value, "tools": len(client.tools)}
            for name, client in self.clients.items()
        ]
